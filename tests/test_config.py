"""Tests for environment configuration."""

from pathlib import Path

import pytest

from ovsx_sync.cli.commands.init import init_driver
from ovsx_sync.config import DEFAULT_KNOWN_PUBLISHERS, Config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate configuration from the caller's environment."""
    for name in (
        "OVSX_PAT",
        "DRY_RUN",
        "FAILED_EXTENSIONS",
        "OVSX_SYNC_MAX_WORKERS",
        "OVSX_SYNC_KNOWN_PUBLISHERS",
        "OVSX_SYNC_DEFAULT_TIMEOUT_MINUTES",
        "OVSX_SYNC_STALENESS_DAYS",
        "OVSX_SYNC_RECENT_WINDOW_DAYS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OVSX_SYNC_WORK_DIR", str(tmp_path / "scratch"))


class TestConfig:
    """Configuration values."""

    def test_defaults(self, tmp_path):
        """Defaults match the documented values."""
        config = Config()

        assert config.registry_url == "https://open-vsx.org"
        assert config.default_timeout_minutes == 5
        assert config.staleness_days == 30
        assert config.recent_window_days == 30
        assert config.hit_window_days == 2
        assert config.report_path == Path("/tmp/stat.json")
        assert config.known_publishers == frozenset(DEFAULT_KNOWN_PUBLISHERS)
        assert config.dry_run is False
        assert config.failed_extensions is None
        assert (tmp_path / "scratch").is_dir()

    def test_overrides(self, monkeypatch):
        """Environment variables override defaults."""
        monkeypatch.setenv("DRY_RUN", "1")
        monkeypatch.setenv("FAILED_EXTENSIONS", "a.one, b.two,")
        monkeypatch.setenv("OVSX_SYNC_MAX_WORKERS", "0")
        monkeypatch.setenv("OVSX_SYNC_KNOWN_PUBLISHERS", "redhat")
        monkeypatch.setenv("OVSX_SYNC_DEFAULT_TIMEOUT_MINUTES", "12")

        config = Config()

        assert config.dry_run is True
        assert config.failed_extensions == ["a.one", "b.two"]
        assert config.max_workers == 1
        assert config.known_publishers == frozenset({"redhat"})
        assert config.default_timeout_minutes == 12

    def test_recent_window_independent_of_staleness(self, monkeypatch):
        """The hit/miss window and the staleness threshold are set separately."""
        monkeypatch.setenv("OVSX_SYNC_STALENESS_DAYS", "45")
        monkeypatch.setenv("OVSX_SYNC_RECENT_WINDOW_DAYS", "14")

        driver = init_driver(Config())

        assert driver.ledger.recent_window_days == 14
        assert driver.policy.staleness_days == 45
