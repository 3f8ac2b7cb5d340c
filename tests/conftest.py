"""Shared fixtures for ovsx-sync tests."""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from ovsx_sync.models import TrackedPackage, VersionRecord
from ovsx_sync.services import GitHubService

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_package(package_id: str = "redhat.java", **fields) -> TrackedPackage:
    """Build a tracked package, with a GitHub repository by default."""
    fields.setdefault("repository", "https://github.com/redhat-developer/vscode-java")
    return TrackedPackage(id=package_id, **fields)


def make_record(
    version: str, days_ago: float = 1, publisher: str = "redhat", installs: int = 100
) -> VersionRecord:
    """Build a marketplace version record updated ``days_ago`` before NOW."""
    return VersionRecord(
        version=version,
        last_updated=NOW - timedelta(days=days_ago),
        install_count=installs,
        publisher_name=publisher,
    )


@pytest.fixture
def now():
    """Fixed reference time."""
    return NOW


@pytest.fixture
def enumerator():
    """GitHub enumerator mock that knows nothing by default."""
    mock = Mock(spec=GitHubService)
    mock.get_releases.return_value = []
    mock.get_tags.return_value = []
    mock.get_latest_commit.return_value = None
    mock.get_commit_before.return_value = None
    mock.get_version_at.return_value = None
    return mock
