"""Resolved sources and publish outcomes."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional


class SourceKind(str, Enum):
    """Kinds of upstream artifacts a package can be published from."""

    RELEASE_ASSET = "release"
    RELEASE_TAG = "releaseTag"
    GENERIC_TAG = "tag"
    LATEST_COMMIT = "latest"
    MATCHED_LATEST_COMMIT = "matchedLatest"
    MATCHED_COMMIT = "matched"


@dataclass
class ResolvedSource:
    """The single artifact chosen for a package in this run.

    ``file`` is relative to the scratch directory of the publish attempt.
    """

    kind: SourceKind
    target_version: Optional[str] = None
    ref: Optional[str] = None
    file: Optional[str] = None
    link: Optional[str] = None
    note: str = ""

    def describe(self) -> str:
        """Human readable origin, used in logs and the resolve command."""
        if self.kind == SourceKind.RELEASE_ASSET:
            return f"resolved {self.link} from release"
        if self.kind == SourceKind.RELEASE_TAG:
            return f"resolved {self.ref} from release tag"
        if self.kind == SourceKind.GENERIC_TAG:
            return f"resolved {self.ref} from tags"
        if self.kind == SourceKind.LATEST_COMMIT:
            return f"resolved {self.ref} from the very latest commit, since {self.note}"
        if self.kind == SourceKind.MATCHED_LATEST_COMMIT:
            return f"resolved {self.ref} from the very latest commit"
        return f"resolved {self.ref} from the latest commit on the last update date"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the publish job file."""
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResolvedSource":
        """Rebuild from ``to_dict`` output."""
        return cls(**{**data, "kind": SourceKind(data["kind"])})


class OutcomeStatus(str, Enum):
    """How a publish attempt ended."""

    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    ALREADY_PUBLISHED = "already_published"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class PublishOutcome:
    """Result of one publish attempt."""

    status: OutcomeStatus
    reason: str = ""
    error: Optional[str] = None

    @property
    def is_failure(self) -> bool:
        """Failed and timed out attempts count as failures."""
        return self.status in (OutcomeStatus.FAILED, OutcomeStatus.TIMED_OUT)

    @classmethod
    def skipped(cls, reason: str) -> "PublishOutcome":
        return cls(OutcomeStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, error: str) -> "PublishOutcome":
        return cls(OutcomeStatus.FAILED, error=error)
