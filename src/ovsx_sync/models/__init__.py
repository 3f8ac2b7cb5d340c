"""Models for the ovsx-sync application."""

from .models import DEFAULT_TIMEOUT_MINUTES, PackageStore, TrackedPackage, VersionRecord
from .publishing import OutcomeStatus, PublishOutcome, ResolvedSource, SourceKind

__all__ = [
    "DEFAULT_TIMEOUT_MINUTES",
    "OutcomeStatus",
    "PackageStore",
    "PublishOutcome",
    "ResolvedSource",
    "SourceKind",
    "TrackedPackage",
    "VersionRecord",
]
