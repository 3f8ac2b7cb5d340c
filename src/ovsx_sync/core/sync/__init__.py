"""Synchronization engine.

Handles freshness classification, source resolution, isolated publishing,
batch orchestration and the store upgrade workflow.
"""

from ...models import OutcomeStatus, PublishOutcome, ResolvedSource, SourceKind
from .batch import BatchDriver, BatchResult, PackageReport, check_registry_version
from .ledger import FreshnessBucket, StatLedger, compare_versions
from .resolution import ResolutionPolicy, tag_matches
from .supervisor import PublishSupervisor
from .upgrade import UpgradeResult, UpgradeWorkflow, apply_heuristics

__all__ = [
    # Ledger
    "FreshnessBucket",
    "StatLedger",
    "compare_versions",
    # Resolution
    "ResolutionPolicy",
    "ResolvedSource",
    "SourceKind",
    "tag_matches",
    # Publishing
    "OutcomeStatus",
    "PublishOutcome",
    "PublishSupervisor",
    # Orchestration
    "BatchDriver",
    "BatchResult",
    "PackageReport",
    "check_registry_version",
    # Upgrade
    "UpgradeResult",
    "UpgradeWorkflow",
    "apply_heuristics",
]
