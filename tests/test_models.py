"""Tests for the data models."""

from datetime import datetime, timezone

from ovsx_sync.models import TrackedPackage, VersionRecord

import pytest
from pydantic import ValidationError


class TestTrackedPackage:
    """Tracked package fields."""

    def test_namespace_and_name(self):
        """The id splits at the first dot."""
        package = TrackedPackage(id="ms-python.python.extra")

        assert package.namespace == "ms-python"
        assert package.name == "python.extra"

    def test_invalid_id(self):
        """Ids need a namespace and a name."""
        with pytest.raises(ValidationError):
            TrackedPackage(id="python")

    @pytest.mark.parametrize("raw,expected", [(10, 10), ("15", 15), ("soon", 5), (2.5, 5), (None, 5)])
    def test_timeout_fallback(self, raw, expected):
        """Timeouts that are not whole numbers fall back to the default."""
        assert TrackedPackage(id="a.b", timeout=raw).effective_timeout() == expected

    def test_store_keys_and_unknown_fields(self):
        """Serialization uses store keys and keeps unknown ones."""
        package = TrackedPackage.model_validate(
            {
                "id": "a.b",
                "prepublish": "npm run build",
                "extensionFile": "*.vsix",
                "version": "1.0.0",
                "note": "keep me",
            }
        )

        assert package.prepublish_command == "npm run build"
        assert package.to_store_dict() == {
            "id": "a.b",
            "prepublish": "npm run build",
            "extensionFile": "*.vsix",
            "version": "1.0.0",
            "note": "keep me",
        }


class TestVersionRecord:
    """Marketplace version records."""

    def test_naive_timestamp_is_utc(self):
        """Timestamps without zone are read as UTC."""
        record = VersionRecord(version="1.0.0", last_updated=datetime(2024, 1, 1))

        assert record.last_updated.tzinfo == timezone.utc
