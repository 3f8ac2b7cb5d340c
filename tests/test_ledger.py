"""Tests for the freshness ledger."""

import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from ovsx_sync.core.sync.ledger import (
    FreshnessBucket,
    StatLedger,
    compare_versions,
)

from conftest import NOW, make_package, make_record


@pytest.fixture
def ledger():
    """Ledger with a small publisher allowlist."""
    return StatLedger(known_publishers=frozenset({"redhat"}))


def memberships(ledger, package_id):
    """Count how many buckets contain the package."""
    count = sum(
        package_id in members
        for members in (
            ledger.up_to_date,
            ledger.outdated,
            ledger.unstable,
            ledger.not_in_open,
        )
    )
    return count + ledger.not_in_ms.count(package_id)


class TestCompareVersions:
    """Semantic version ordering."""

    def test_numeric_components_not_lexicographic(self):
        """1.10.0 is newer than 1.9.0."""
        assert compare_versions("1.10.0", "1.9.0") == 1

    def test_prerelease_is_older(self):
        """A prerelease sorts before its release."""
        assert compare_versions("1.0.0-beta.1", "1.0.0") == -1

    def test_short_versions(self):
        """Missing minor/patch components are read as zero."""
        assert compare_versions("2.1", "2.1.0") == 0


class TestClassify:
    """Bucket assignment."""

    def test_equal_versions_up_to_date(self, ledger):
        """Same version on both sides."""
        package = make_package()
        bucket = ledger.classify(package, make_record("1.2.0"), make_record("1.2.0"), NOW)

        assert bucket == FreshnessBucket.UP_TO_DATE
        assert "redhat.java" in ledger.up_to_date

    def test_primary_newer_outdated(self, ledger):
        """Primary ahead of the registry."""
        bucket = ledger.classify(
            make_package(), make_record("1.3.0"), make_record("1.2.0"), NOW
        )
        assert bucket == FreshnessBucket.OUTDATED

    def test_registry_newer_unstable(self, ledger):
        """Registry ahead of the primary."""
        bucket = ledger.classify(
            make_package(), make_record("1.2.0"), make_record("1.3.0-next"), NOW
        )
        assert bucket == FreshnessBucket.UNSTABLE

    def test_missing_in_registry(self, ledger):
        """No registry record."""
        bucket = ledger.classify(make_package(), make_record("1.2.0"), None, NOW)
        assert bucket == FreshnessBucket.NOT_IN_OPEN
        assert ledger.not_in_open["redhat.java"].open_version is None

    def test_missing_in_primary(self, ledger):
        """No primary record goes to the not-in-MS list."""
        bucket = ledger.classify(make_package(), None, make_record("1.0.0"), NOW)
        assert bucket == FreshnessBucket.NOT_IN_MS
        assert ledger.not_in_ms == ["redhat.java"]

    def test_reclassify_moves_package(self, ledger):
        """A second classification replaces the first membership."""
        package = make_package()
        ledger.classify(package, make_record("1.3.0"), make_record("1.2.0"), NOW)
        ledger.classify(package, make_record("1.3.0"), make_record("1.3.0"), NOW)

        assert memberships(ledger, package.id) == 1
        assert ledger.bucket_of(package.id) == FreshnessBucket.UP_TO_DATE
        assert package.id not in ledger.outdated

    def test_reclassify_from_not_in_ms(self, ledger):
        """The not-in-MS list is also cleared on reclassification."""
        package = make_package()
        ledger.classify(package, None, None, NOW)
        ledger.classify(package, make_record("1.0.0"), None, NOW)

        assert ledger.not_in_ms == []
        assert memberships(ledger, package.id) == 1

    def test_bucket_of_unknown(self, ledger):
        """Unclassified packages have no bucket."""
        assert ledger.bucket_of("nobody.nothing") is None


class TestSideTables:
    """Publisher allowlist and hit/miss statistics."""

    def test_known_publisher_recorded(self, ledger):
        """Allowlisted publishers land in msPublished."""
        ledger.classify(make_package(), make_record("1.0.0"), None, NOW)
        assert ledger.ms_published["redhat.java"].ms_version == "1.0.0"

    def test_unknown_publisher_not_recorded(self, ledger):
        """Other publishers do not."""
        ledger.classify(
            make_package(), make_record("1.0.0", publisher="someone"), None, NOW
        )
        assert ledger.ms_published == {}

    def test_hit_when_registry_caught_up_quickly(self, ledger):
        """Registry updated a day after the primary."""
        ms = make_record("1.2.0", days_ago=3)
        ovsx = make_record("1.2.0", days_ago=2)
        ledger.classify(make_package(), ms, ovsx, NOW)

        assert ledger.hit_miss["redhat.java"].hit is True

    def test_miss_when_registry_late(self, ledger):
        """Registry updated more than two days after the primary."""
        ms = make_record("1.2.0", days_ago=10)
        ovsx = make_record("1.2.0", days_ago=5)
        ledger.classify(make_package(), ms, ovsx, NOW)

        assert ledger.hit_miss["redhat.java"].hit is False

    def test_old_primary_update_not_tracked(self, ledger):
        """Updates outside the recent window are not hit/miss candidates."""
        ms = make_record("1.2.0", days_ago=60)
        ledger.classify(make_package(), ms, make_record("1.2.0", days_ago=59), NOW)

        assert "redhat.java" not in ledger.hit_miss


class TestReport:
    """Report serialization."""

    def test_report_layout(self, ledger):
        """Report carries every bucket and the failures."""
        ledger.classify(make_package("a.one"), make_record("1.0.0"), make_record("1.0.0"), NOW)
        ledger.classify(make_package("b.two"), None, None, NOW)
        ledger.record_failure("c.three")
        ledger.record_failure("c.three")

        report = json.loads(json.dumps(ledger.to_dict()))

        assert set(report) == {
            "upToDate",
            "outdated",
            "unstable",
            "notInOpen",
            "notInMS",
            "msPublished",
            "hitMiss",
            "failed",
        }
        assert report["upToDate"]["a.one"]["msVersion"] == "1.0.0"
        assert report["upToDate"]["a.one"]["openVersion"] == "1.0.0"
        assert report["notInMS"] == ["b.two"]
        assert report["failed"] == ["c.three"]

    def test_parallel_classification(self, ledger):
        """Concurrent classifications keep one membership per package."""
        packages = [make_package(f"pub.ext{i}") for i in range(50)]

        def classify(package):
            ledger.classify(package, make_record("2.0.0"), make_record("1.0.0"), NOW)
            ledger.classify(package, make_record("2.0.0"), make_record("2.0.0"), NOW)

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(classify, packages))

        assert len(ledger.up_to_date) == 50
        assert ledger.outdated == {}
