"""Batch driver: classify, resolve and publish every tracked package.

Per package the driver runs::

    read versions -> classify -> [skip if fresh] -> resolve -> publish
        -> re-read registry version -> reclassify

Failures of one package are recorded in the ledger and never stop the batch.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

import requests

from ...errors import TransientNetworkError
from ...models import (
    DEFAULT_TIMEOUT_MINUTES,
    OutcomeStatus,
    PublishOutcome,
    ResolvedSource,
    TrackedPackage,
    VersionRecord,
)
from ...utils.logging_config import extension_context
from .ledger import FreshnessBucket, StatLedger, compare_versions
from .resolution import ResolutionPolicy
from .supervisor import PublishSupervisor

logger = logging.getLogger(__name__)

FRESH_BUCKETS = (FreshnessBucket.UP_TO_DATE, FreshnessBucket.UNSTABLE)


class VersionOracle(Protocol):
    """Looks up the latest published version of an extension."""

    def get_version(self, extension_id: str) -> Optional[VersionRecord]: ...


@dataclass
class PackageReport:
    """What happened to one package during the run."""

    package_id: str
    bucket: Optional[FreshnessBucket] = None
    source: Optional[ResolvedSource] = None
    outcome: Optional[PublishOutcome] = None
    final_bucket: Optional[FreshnessBucket] = None


@dataclass
class BatchResult:
    """Result of a batch run."""

    ledger: StatLedger
    reports: Dict[str, PackageReport] = dataclass_field(default_factory=dict)

    @property
    def failed_ids(self) -> List[str]:
        return list(self.ledger.failed)

    @property
    def exit_code(self) -> int:
        """Non-zero when any package failed or timed out."""
        return 1 if self.ledger.failed else 0

    def get_summary(self) -> Dict[str, Any]:
        """Get counts per outcome."""
        counts: Dict[str, int] = {}
        for report in self.reports.values():
            status = report.outcome.status.value if report.outcome else "unknown"
            counts[status] = counts.get(status, 0) + 1
        return {
            "processed": len(self.reports),
            "failed": len(self.ledger.failed),
            "outcomes": counts,
        }


def check_registry_version(
    target_version: Optional[str], registry_version: Optional[str]
) -> Optional[PublishOutcome]:
    """Skip publishing when the registry already has the target or newer.

    Returns:
        A skipped outcome, or None when publishing should go ahead
    """
    if not target_version or not registry_version:
        return None
    order = compare_versions(registry_version, target_version)
    if order == 0:
        logger.info(
            "[SKIPPED] Requested version %s is already published", target_version
        )
        return PublishOutcome.skipped(f"version {target_version} already published")
    if order > 0:
        logger.warning(
            "extensions.json is out-of-date: registry version %s is already "
            "greater than specified version %s",
            registry_version,
            target_version,
        )
        return PublishOutcome.skipped(
            f"registry version {registry_version} is newer than {target_version}"
        )
    return None


class BatchDriver:
    """Drives one sync run over the tracked packages."""

    def __init__(
        self,
        ms_oracle: VersionOracle,
        ovsx_oracle: VersionOracle,
        policy: ResolutionPolicy,
        supervisor: PublishSupervisor,
        ledger: Optional[StatLedger] = None,
        dry_run: bool = False,
        max_workers: int = 1,
        default_timeout_minutes: int = DEFAULT_TIMEOUT_MINUTES,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the driver.

        Args:
            ms_oracle: Primary marketplace lookups
            ovsx_oracle: Secondary registry lookups
            policy: Resolution policy
            supervisor: Publish supervisor
            ledger: Run ledger (a fresh one when omitted)
            dry_run: Resolve but never publish
            max_workers: Packages processed in parallel
            default_timeout_minutes: Timeout for packages without their own
            clock: Returns the current time (tests pin it)
        """
        self.ms_oracle = ms_oracle
        self.ovsx_oracle = ovsx_oracle
        self.policy = policy
        self.supervisor = supervisor
        self.ledger = ledger if ledger is not None else StatLedger()
        self.dry_run = dry_run
        self.max_workers = max(1, max_workers)
        self.default_timeout_minutes = default_timeout_minutes
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def run(
        self,
        packages: Iterable[TrackedPackage],
        only_ids: Optional[Iterable[str]] = None,
    ) -> BatchResult:
        """Process all packages, or only those in ``only_ids``.

        Args:
            packages: Tracked packages in store order
            only_ids: Optional re-verification filter

        Returns:
            BatchResult with per-package reports
        """
        selected = list(packages)
        if only_ids is not None:
            wanted = set(only_ids)
            selected = [p for p in selected if p.id in wanted]
        logger.info("Processing %d extensions", len(selected))

        result = BatchResult(ledger=self.ledger)
        if self.max_workers == 1:
            reports = [self.process(package) for package in selected]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                reports = list(executor.map(self.process, selected))

        for report in reports:
            result.reports[report.package_id] = report
        return result

    def process(self, package: TrackedPackage) -> PackageReport:
        """Run the whole per-package pipeline."""
        with extension_context(package.id):
            return self._process(package)

    def _process(self, package: TrackedPackage) -> PackageReport:
        report = PackageReport(package_id=package.id)
        try:
            now = self.clock()
            ms_info = self._read_version(self.ms_oracle, package.id)
            ovsx_info = self._read_version(self.ovsx_oracle, package.id)
            report.bucket = self.ledger.classify(package, ms_info, ovsx_info, now)
            report.final_bucket = report.bucket

            if report.bucket in FRESH_BUCKETS:
                report.outcome = PublishOutcome.skipped(report.bucket.value)
                return report

            report.source = self.policy.resolve(package, ms_info, now)
            if self.dry_run:
                report.outcome = PublishOutcome.skipped("dry run")
                return report

            report.outcome = check_registry_version(
                report.source.target_version,
                ovsx_info.version if ovsx_info else None,
            )
            if report.outcome is None:
                report.outcome = self.supervisor.attempt(
                    package,
                    report.source,
                    package.effective_timeout(self.default_timeout_minutes),
                )

            if report.outcome.is_failure:
                self._record_failure(package, report.outcome.error)
            elif report.outcome.status != OutcomeStatus.SKIPPED:
                ovsx_info = self._read_version(self.ovsx_oracle, package.id)
                report.final_bucket = self.ledger.classify(
                    package, ms_info, ovsx_info, self.clock()
                )
        except Exception as e:
            report.outcome = PublishOutcome.failed(str(e))
            self._record_failure(package, str(e), exc_info=True)
        return report

    def finalize(
        self,
        result: BatchResult,
        report_path: Path,
        failed_log_path: Optional[Path] = None,
    ) -> int:
        """Write the run report and failed ids.

        Returns:
            Process exit code for the run
        """
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(json.dumps(result.ledger.to_dict()), encoding="utf-8")
        logger.info("Wrote run report to %s", report_path)

        if failed_log_path is not None:
            failed_log_path.parent.mkdir(parents=True, exist_ok=True)
            failed_log_path.write_text(", ".join(result.failed_ids), encoding="utf-8")
        if result.failed_ids:
            logger.error("Failed extensions: %s", ", ".join(result.failed_ids))
        return result.exit_code

    def _record_failure(
        self, package: TrackedPackage, error: Optional[str], exc_info: bool = False
    ) -> None:
        self.ledger.record_failure(package.id)
        logger.error(
            "[FAIL] Could not process extension: %s\n%s",
            json.dumps(package.to_store_dict(), indent=2),
            error,
            exc_info=exc_info,
        )

    @staticmethod
    def _read_version(
        oracle: VersionOracle, extension_id: str
    ) -> Optional[VersionRecord]:
        """Read a version, treating lookup failures as "not published"."""
        try:
            return oracle.get_version(extension_id)
        except (TransientNetworkError, requests.exceptions.RequestException) as e:
            logger.warning("%s: version lookup failed: %s", extension_id, e)
            return None
