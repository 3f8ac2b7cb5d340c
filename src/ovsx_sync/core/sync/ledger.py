"""Freshness classification and run-wide statistics.

The ledger compares the version on the primary marketplace with the one on
the secondary registry and files every package into exactly one freshness
bucket. It is created once per run, handed to every classification call and
serialized into the run report at the end.
"""

import logging
import threading
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

import semver

from ...config import DEFAULT_KNOWN_PUBLISHERS
from ...models import TrackedPackage, VersionRecord

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 3600


class FreshnessBucket(str, Enum):
    """Sync state of a package, exactly one per package."""

    UP_TO_DATE = "upToDate"
    OUTDATED = "outdated"
    UNSTABLE = "unstable"
    NOT_IN_OPEN = "notInOpen"
    NOT_IN_MS = "notInMS"


def parse_version(version: str) -> semver.Version:
    """Parse a version leniently (``1.2`` is read as ``1.2.0``)."""
    return semver.Version.parse(version.strip().lstrip("vV"), optional_minor_and_patch=True)


def compare_versions(left: str, right: str) -> int:
    """Compare two version strings in semantic version order.

    Returns:
        -1, 0 or 1 like ``cmp``
    """
    return parse_version(left).compare(parse_version(right))


@dataclass
class ExtensionStat:
    """Per-package numbers stored in the ledger buckets."""

    ms_version: Optional[str] = None
    ms_installs: Optional[int] = None
    open_version: Optional[str] = None
    days_in_between: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with report keys."""
        data: Dict[str, Any] = {
            "msInstalls": self.ms_installs,
            "msVersion": self.ms_version,
        }
        if self.open_version is not None:
            data["openVersion"] = self.open_version
        if self.days_in_between is not None:
            data["daysInBetween"] = self.days_in_between
        return data


@dataclass
class HitMiss:
    """Whether the registry picked up a recent primary update in time."""

    stat: ExtensionStat
    hit: bool

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with report keys."""
        return {**self.stat.to_dict(), "hit": self.hit}


@dataclass
class StatLedger:
    """Run-scoped aggregate of freshness buckets and failures.

    Every mutation holds ``_lock`` so the ledger can be shared by workers
    classifying packages in parallel.
    """

    known_publishers: FrozenSet[str] = frozenset(DEFAULT_KNOWN_PUBLISHERS)
    recent_window_days: int = 30
    hit_window_days: int = 2

    up_to_date: Dict[str, ExtensionStat] = dataclass_field(default_factory=dict)
    outdated: Dict[str, ExtensionStat] = dataclass_field(default_factory=dict)
    unstable: Dict[str, ExtensionStat] = dataclass_field(default_factory=dict)
    not_in_open: Dict[str, ExtensionStat] = dataclass_field(default_factory=dict)
    not_in_ms: List[str] = dataclass_field(default_factory=list)

    ms_published: Dict[str, ExtensionStat] = dataclass_field(default_factory=dict)
    hit_miss: Dict[str, HitMiss] = dataclass_field(default_factory=dict)
    failed: List[str] = dataclass_field(default_factory=list)

    _lock: threading.RLock = dataclass_field(
        default_factory=threading.RLock, repr=False, compare=False
    )

    def classify(
        self,
        package: TrackedPackage,
        ms_info: Optional[VersionRecord] = None,
        ovsx_info: Optional[VersionRecord] = None,
        now: Optional[datetime] = None,
    ) -> FreshnessBucket:
        """Put a package into its freshness bucket.

        Any earlier bucket membership of the package is cleared first, so
        calling this again after a publish moves the package instead of
        duplicating it.

        Args:
            package: Package being classified
            ms_info: Latest version on the primary marketplace, if any
            ovsx_info: Latest version on the secondary registry, if any
            now: Reference time for the recent-update window

        Returns:
            The bucket the package now belongs to
        """
        now = now or datetime.now(timezone.utc)
        package_id = package.id

        ms_version = ms_info.version if ms_info else None
        open_version = ovsx_info.version if ovsx_info else None
        stat = ExtensionStat(
            ms_version=ms_version,
            ms_installs=ms_info.install_count if ms_info else None,
            open_version=open_version,
            days_in_between=self._days_in_between(ms_info, ovsx_info),
        )

        with self._lock:
            self._clear(package_id)

            if ms_info and ms_info.publisher_name in self.known_publishers:
                self.ms_published[package_id] = ExtensionStat(
                    ms_version=ms_version, ms_installs=stat.ms_installs
                )

            if not ms_version:
                bucket = FreshnessBucket.NOT_IN_MS
                self.not_in_ms.append(package_id)
            elif not open_version:
                bucket = FreshnessBucket.NOT_IN_OPEN
                self.not_in_open[package_id] = stat
            else:
                order = compare_versions(ms_version, open_version)
                if order == 0:
                    bucket = FreshnessBucket.UP_TO_DATE
                    self.up_to_date[package_id] = stat
                elif order > 0:
                    bucket = FreshnessBucket.OUTDATED
                    self.outdated[package_id] = stat
                else:
                    bucket = FreshnessBucket.UNSTABLE
                    self.unstable[package_id] = stat

            if ms_version and self._updated_recently(ms_info, now):
                days = stat.days_in_between
                hit = days is not None and 0 < days <= self.hit_window_days
                self.hit_miss[package_id] = HitMiss(stat=stat, hit=hit)

        logger.debug(
            "%s: classified as %s (ms=%s, open=%s)",
            package_id,
            bucket.value,
            ms_version,
            open_version,
        )
        return bucket

    def bucket_of(self, package_id: str) -> Optional[FreshnessBucket]:
        """Get the current bucket of a package, if classified."""
        with self._lock:
            if package_id in self.not_in_ms:
                return FreshnessBucket.NOT_IN_MS
            for bucket, members in self._mapped_buckets().items():
                if package_id in members:
                    return bucket
        return None

    def record_failure(self, package_id: str) -> None:
        """Remember a package whose run failed."""
        with self._lock:
            if package_id not in self.failed:
                self.failed.append(package_id)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the ledger into the run report layout."""
        with self._lock:
            return {
                "upToDate": {k: v.to_dict() for k, v in self.up_to_date.items()},
                "outdated": {k: v.to_dict() for k, v in self.outdated.items()},
                "unstable": {k: v.to_dict() for k, v in self.unstable.items()},
                "notInOpen": {k: v.to_dict() for k, v in self.not_in_open.items()},
                "notInMS": list(self.not_in_ms),
                "msPublished": {k: v.to_dict() for k, v in self.ms_published.items()},
                "hitMiss": {k: v.to_dict() for k, v in self.hit_miss.items()},
                "failed": list(self.failed),
            }

    def _mapped_buckets(self) -> Dict[FreshnessBucket, Dict[str, ExtensionStat]]:
        return {
            FreshnessBucket.UP_TO_DATE: self.up_to_date,
            FreshnessBucket.OUTDATED: self.outdated,
            FreshnessBucket.UNSTABLE: self.unstable,
            FreshnessBucket.NOT_IN_OPEN: self.not_in_open,
        }

    def _clear(self, package_id: str) -> None:
        while package_id in self.not_in_ms:
            self.not_in_ms.remove(package_id)
        for members in self._mapped_buckets().values():
            members.pop(package_id, None)
        self.hit_miss.pop(package_id, None)
        self.ms_published.pop(package_id, None)

    def _updated_recently(self, ms_info: Optional[VersionRecord], now: datetime) -> bool:
        if ms_info is None or ms_info.last_updated is None:
            return False
        return now - timedelta(days=self.recent_window_days) <= ms_info.last_updated

    @staticmethod
    def _days_in_between(
        ms_info: Optional[VersionRecord], ovsx_info: Optional[VersionRecord]
    ) -> Optional[float]:
        if not ms_info or not ovsx_info:
            return None
        if ms_info.last_updated is None or ovsx_info.last_updated is None:
            return None
        delta = ovsx_info.last_updated - ms_info.last_updated
        return delta.total_seconds() / SECONDS_PER_DAY
