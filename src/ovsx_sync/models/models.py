"""Data models for the ovsx-sync application."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_TIMEOUT_MINUTES = 5


class TrackedPackage(BaseModel):
    """An extension tracked for re-publishing to the secondary registry.

    Field aliases match the keys of the ``extensions.json`` store. Keys the
    model does not know about are kept so a rewrite of the store does not
    lose them.
    """

    id: str
    repository: Optional[str] = None
    checkout_ref: Optional[str] = Field(default=None, alias="checkout")
    location: Optional[str] = None
    prepublish_command: Optional[str] = Field(default=None, alias="prepublish")
    extension_file_glob: Optional[str] = Field(default=None, alias="extensionFile")
    pinned_version: Optional[str] = Field(default=None, alias="version")
    download_url: Optional[str] = Field(default=None, alias="download")
    timeout_minutes: Optional[int] = Field(default=None, alias="timeout")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Require a ``namespace.name`` identifier."""
        namespace, _, name = v.partition(".")
        if not namespace or not name:
            raise ValueError(f"extension id must be 'namespace.name', got {v!r}")
        return v

    @field_validator("timeout_minutes", mode="before")
    @classmethod
    def validate_timeout(cls, v: Any) -> Optional[int]:
        """Drop timeouts that are not whole numbers."""
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, int):
            return v
        if isinstance(v, float) and v.is_integer():
            return int(v)
        if isinstance(v, str) and v.strip().isdigit():
            return int(v.strip())
        return None

    @property
    def namespace(self) -> str:
        """Publisher namespace, the part of the id before the first dot."""
        return self.id.split(".", 1)[0]

    @property
    def name(self) -> str:
        """Extension name without namespace."""
        return self.id.split(".", 1)[1]

    def effective_timeout(self, default: int = DEFAULT_TIMEOUT_MINUTES) -> int:
        """Get the publish timeout in minutes."""
        if self.timeout_minutes is None:
            return default
        return self.timeout_minutes

    def to_store_dict(self) -> Dict[str, Any]:
        """Serialize with store keys, omitting unset fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class PackageStore(BaseModel):
    """The tracked-package store document."""

    extensions: List[TrackedPackage] = Field(default_factory=list)

    def get(self, package_id: str) -> Optional[TrackedPackage]:
        """Find a package by id."""
        for package in self.extensions:
            if package.id == package_id:
                return package
        return None

    def to_store_dict(self) -> Dict[str, Any]:
        """Serialize the whole document."""
        return {"extensions": [p.to_store_dict() for p in self.extensions]}


class VersionRecord(BaseModel):
    """Latest version of a package as reported by one marketplace."""

    version: str
    last_updated: Optional[datetime] = None
    install_count: Optional[int] = None
    publisher_name: Optional[str] = None

    @field_validator("last_updated")
    @classmethod
    def validate_last_updated(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Treat naive timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v
