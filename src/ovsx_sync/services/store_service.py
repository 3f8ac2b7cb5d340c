"""Reading and rewriting the tracked-package store (``extensions.json``)."""

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Union

from pydantic import ValidationError

from ..errors import StoreError
from ..models import PackageStore, TrackedPackage

logger = logging.getLogger(__name__)


class StoreService:
    """File-backed access to the tracked-package store."""

    def __init__(self, path: Union[Path, str]) -> None:
        """Initialize the store service.

        Args:
            path: Path of the store document
        """
        self.path = Path(path)

    @property
    def backup_path(self) -> Path:
        """Location of the pre-rewrite copy."""
        return self.path.with_name(self.path.name + ".old")

    def load(self) -> PackageStore:
        """Read the whole store.

        Raises:
            StoreError: If the file is missing or malformed
        """
        try:
            with open(self.path, "r", encoding="utf-8") as file:
                data = json.load(file)
            return PackageStore.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise StoreError(f"Cannot read {self.path}: {e}") from e

    def load_packages(self) -> List[TrackedPackage]:
        """Read just the package list."""
        return self.load().extensions

    def save(self, store: PackageStore) -> None:
        """Replace the store atomically.

        The document goes to a temporary file next to the store and is then
        renamed over it, so readers never see a partial file.
        """
        content = json.dumps(store.to_store_dict(), indent=2) + "\n"
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file:
                file.write(content)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StoreError(f"Cannot write {self.path}: {e}") from e
        logger.debug("Wrote %d packages to %s", len(store.extensions), self.path)

    def backup(self) -> Path:
        """Copy the current store aside before a rewrite."""
        shutil.copy2(self.path, self.backup_path)
        logger.debug("Backed up %s to %s", self.path, self.backup_path)
        return self.backup_path

    def restore(self) -> None:
        """Put the pre-rewrite copy back verbatim."""
        os.replace(self.backup_path, self.path)
        logger.info("Restored %s from %s", self.path, self.backup_path)
