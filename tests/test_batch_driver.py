"""Tests for the batch driver."""

import json
import logging
from unittest.mock import Mock

import pytest

from ovsx_sync.core.sync import (
    BatchDriver,
    FreshnessBucket,
    PublishSupervisor,
    ResolutionPolicy,
    StatLedger,
    check_registry_version,
)
from ovsx_sync.errors import TransientNetworkError, UnresolvableError
from ovsx_sync.models import OutcomeStatus, PublishOutcome, ResolvedSource, SourceKind
from ovsx_sync.utils.logging_config import ExtensionFilter

from conftest import NOW, make_package, make_record


class FakeOracle:
    """Version oracle answering from a dict that tests can update."""

    def __init__(self, versions):
        self.versions = dict(versions)
        self.calls = []

    def get_version(self, extension_id):
        self.calls.append(extension_id)
        version = self.versions.get(extension_id)
        if isinstance(version, Exception):
            raise version
        return make_record(version) if version else None


@pytest.fixture
def policy():
    """Policy resolving every package to a release tag of the MS version."""
    mock = Mock(spec=ResolutionPolicy)
    mock.resolve.side_effect = lambda package, primary, now: ResolvedSource(
        kind=SourceKind.RELEASE_TAG,
        target_version=primary.version if primary else None,
        ref=f"v{primary.version}" if primary else "main",
    )
    return mock


@pytest.fixture
def supervisor():
    """Supervisor mock succeeding by default."""
    mock = Mock(spec=PublishSupervisor)
    mock.attempt.return_value = PublishOutcome(OutcomeStatus.SUCCEEDED)
    return mock


def make_driver(ms, ovsx, policy, supervisor, **kwargs):
    """Driver with a fixed clock."""
    return BatchDriver(
        ms_oracle=ms,
        ovsx_oracle=ovsx,
        policy=policy,
        supervisor=supervisor,
        ledger=StatLedger(known_publishers=frozenset()),
        clock=lambda: NOW,
        **kwargs,
    )


class TestCheckRegistryVersion:
    """Pre-publish comparison with the registry."""

    def test_same_version_skipped(self):
        """Already on the registry."""
        outcome = check_registry_version("1.2.0", "1.2.0")
        assert outcome.status == OutcomeStatus.SKIPPED

    def test_registry_newer_skipped(self, caplog):
        """Registry ahead of the target means the store is out of date."""
        outcome = check_registry_version("1.2.0", "1.3.0")

        assert outcome.status == OutcomeStatus.SKIPPED
        assert "out-of-date" in caplog.text

    def test_registry_older_proceeds(self):
        """Registry behind: publish."""
        assert check_registry_version("1.2.0", "1.1.0") is None
        assert check_registry_version("1.2.0", None) is None
        assert check_registry_version(None, "1.1.0") is None


class TestProcess:
    """Per-package pipeline."""

    def test_outdated_package_published_and_reclassified(self, policy, supervisor):
        """An outdated package is published and moves to upToDate."""
        ms = FakeOracle({"redhat.java": "1.3.0"})
        ovsx = FakeOracle({"redhat.java": "1.2.0"})

        def publish(package, source, timeout_minutes):
            ovsx.versions[package.id] = "1.3.0"
            return PublishOutcome(OutcomeStatus.SUCCEEDED)

        supervisor.attempt.side_effect = publish
        driver = make_driver(ms, ovsx, policy, supervisor)

        report = driver.process(make_package())

        assert report.bucket == FreshnessBucket.OUTDATED
        assert report.final_bucket == FreshnessBucket.UP_TO_DATE
        assert driver.ledger.bucket_of("redhat.java") == FreshnessBucket.UP_TO_DATE
        assert driver.ledger.outdated == {}
        assert ovsx.calls == ["redhat.java", "redhat.java"]

    def test_up_to_date_package_untouched(self, policy, supervisor):
        """Nothing is resolved or published for fresh packages."""
        driver = make_driver(
            FakeOracle({"redhat.java": "1.2.0"}),
            FakeOracle({"redhat.java": "1.2.0"}),
            policy,
            supervisor,
        )

        report = driver.process(make_package())

        assert report.outcome.status == OutcomeStatus.SKIPPED
        policy.resolve.assert_not_called()
        supervisor.attempt.assert_not_called()

    def test_unstable_package_untouched(self, policy, supervisor):
        """A registry ahead of the primary is only observed."""
        driver = make_driver(
            FakeOracle({"redhat.java": "1.2.0"}),
            FakeOracle({"redhat.java": "1.3.0"}),
            policy,
            supervisor,
        )

        report = driver.process(make_package())

        assert report.bucket == FreshnessBucket.UNSTABLE
        supervisor.attempt.assert_not_called()

    def test_dry_run_resolves_only(self, policy, supervisor):
        """Dry runs never reach the supervisor."""
        driver = make_driver(
            FakeOracle({"redhat.java": "1.3.0"}),
            FakeOracle({}),
            policy,
            supervisor,
            dry_run=True,
        )

        report = driver.process(make_package())

        assert report.outcome.reason == "dry run"
        assert report.source.ref == "v1.3.0"
        supervisor.attempt.assert_not_called()

    def test_logs_tagged_with_extension(self, policy, supervisor):
        """Records logged while a package is processed carry its id."""
        seen = []

        def attempt(package, source, timeout_minutes):
            record = logging.LogRecord("ovsx_sync", logging.INFO, __file__, 1, "", None, None)
            ExtensionFilter().filter(record)
            seen.append(record.extension)
            return PublishOutcome(OutcomeStatus.SUCCEEDED)

        supervisor.attempt.side_effect = attempt
        driver = make_driver(
            FakeOracle({"redhat.java": "1.3.0"}), FakeOracle({}), policy, supervisor
        )

        driver.process(make_package())

        assert seen == ["redhat.java"]

    def test_pinned_version_already_on_registry(self, policy, supervisor):
        """The pre-check skips targets the registry already has."""
        policy.resolve.side_effect = None
        policy.resolve.return_value = ResolvedSource(
            kind=SourceKind.RELEASE_TAG, target_version="1.2.0", ref="v1.2.0"
        )
        driver = make_driver(
            FakeOracle({"redhat.java": "1.3.0"}),
            FakeOracle({"redhat.java": "1.2.0"}),
            policy,
            supervisor,
        )

        report = driver.process(make_package(version="1.2.0"))

        assert report.outcome.status == OutcomeStatus.SKIPPED
        supervisor.attempt.assert_not_called()

    def test_package_timeout_passed_to_supervisor(self, policy, supervisor):
        """Per-package timeouts override the default."""
        driver = make_driver(
            FakeOracle({"redhat.java": "1.3.0"}),
            FakeOracle({}),
            policy,
            supervisor,
            default_timeout_minutes=5,
        )

        driver.process(make_package(timeout=12))

        assert supervisor.attempt.call_args.args[2] == 12

    def test_oracle_failure_means_no_record(self, policy, supervisor):
        """A lookup that keeps failing is treated as not published."""
        driver = make_driver(
            FakeOracle({"redhat.java": "1.3.0"}),
            FakeOracle({"redhat.java": TransientNetworkError("down")}),
            policy,
            supervisor,
        )

        report = driver.process(make_package())

        assert report.bucket == FreshnessBucket.NOT_IN_OPEN


class TestRun:
    """Whole runs."""

    def test_failures_do_not_stop_the_run(self, policy, supervisor):
        """Every package is processed; failures are collected."""
        packages = [make_package("a.one"), make_package("b.two"), make_package("c.three")]
        outcomes = {
            "a.one": PublishOutcome.failed("build broke"),
            "b.two": PublishOutcome(OutcomeStatus.TIMED_OUT, error="timeout after 5 mins"),
            "c.three": PublishOutcome(OutcomeStatus.ALREADY_PUBLISHED),
        }
        supervisor.attempt.side_effect = lambda package, source, timeout: outcomes[package.id]
        versions = {p.id: "2.0.0" for p in packages}
        driver = make_driver(FakeOracle(versions), FakeOracle({}), policy, supervisor)

        result = driver.run(packages)

        assert set(result.reports) == {"a.one", "b.two", "c.three"}
        assert result.failed_ids == ["a.one", "b.two"]
        assert result.exit_code == 1

    def test_resolution_error_is_a_failure(self, policy, supervisor):
        """Errors raised while resolving fail only that package."""
        policy.resolve.side_effect = UnresolvableError("a.one: failed to resolve")
        driver = make_driver(
            FakeOracle({"a.one": "1.0.0"}), FakeOracle({}), policy, supervisor
        )

        result = driver.run([make_package("a.one")])

        assert result.reports["a.one"].outcome.status == OutcomeStatus.FAILED
        assert result.failed_ids == ["a.one"]

    def test_only_ids_filter(self, policy, supervisor):
        """Re-verification runs only the listed packages."""
        packages = [make_package("a.one"), make_package("b.two")]
        ms = FakeOracle({"a.one": "1.0.0", "b.two": "1.0.0"})
        driver = make_driver(ms, FakeOracle({}), policy, supervisor)

        result = driver.run(packages, only_ids=["b.two"])

        assert list(result.reports) == ["b.two"]
        assert ms.calls == ["b.two"]

    def test_parallel_run(self, policy, supervisor):
        """Worker threads share one ledger."""
        packages = [make_package(f"pub.ext{i}") for i in range(10)]
        ms = FakeOracle({p.id: "1.0.0" for p in packages})
        driver = make_driver(ms, FakeOracle({}), policy, supervisor, max_workers=4)

        result = driver.run(packages)

        assert len(result.reports) == 10
        assert result.exit_code == 0
        assert supervisor.attempt.call_count == 10

    def test_successful_run_exit_code(self, policy, supervisor):
        """Nothing failed: exit code 0."""
        driver = make_driver(
            FakeOracle({"a.one": "1.0.0"}), FakeOracle({"a.one": "1.0.0"}), policy, supervisor
        )
        assert driver.run([make_package("a.one")]).exit_code == 0


class TestFinalize:
    """Report and failed-id files."""

    def test_writes_report_and_failed_log(self, tmp_path, policy, supervisor):
        """The ledger report and the failed ids are written."""
        supervisor.attempt.return_value = PublishOutcome.failed("boom")
        driver = make_driver(
            FakeOracle({"a.one": "1.0.0", "b.two": "2.0.0"}),
            FakeOracle({"b.two": "2.0.0"}),
            policy,
            supervisor,
        )
        result = driver.run([make_package("a.one"), make_package("b.two")])

        code = driver.finalize(result, tmp_path / "stat.json", tmp_path / "failed.log")

        report = json.loads((tmp_path / "stat.json").read_text())
        assert code == 1
        assert report["failed"] == ["a.one"]
        assert "b.two" in report["upToDate"]
        assert (tmp_path / "failed.log").read_text() == "a.one"
