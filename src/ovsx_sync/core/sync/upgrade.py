"""Upgrade workflow: move pinned packages in the store to newer upstream versions.

Packages pinned to a version are re-pointed at the newest release (or tag) of
their repository, and packages re-published from a GitHub release download
are re-pointed at the newest ``.vsix`` asset. The store is rewritten in one
go; if that fails the previous copy is restored verbatim.
"""

import logging
import re
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from pathlib import Path
from typing import FrozenSet, List, Optional, Tuple

import requests

from ...errors import OvsxSyncError, UnresolvableError, UpgradeError
from ...models import PackageStore, TrackedPackage
from ...services.store_service import StoreService
from .ledger import compare_versions
from .resolution import ReleaseEnumerator, newest_tag, pick_vsix, version_from_tag

logger = logging.getLogger(__name__)

GITHUB_RELEASE_DOWNLOAD = re.compile(r"https://github\.com/.*/releases/download/")

# Packages whose upstream releases confuse the upgrade heuristics
DONT_UPGRADE: FrozenSet[str] = frozenset(
    {
        "file-icons.file-icons",
        "DotJoshJohnson.xml",
        "wingrunr21.vscode-ruby",
        "andreweinand.mock-debug",
        "DigitalBrainstem.javascript-ejs-support",
        "ecmel.vscode-html-css",
        "ms-vscode.atom-keybindings",
        "wmaurer.change-case",
        "jebbs.plantuml",
        "ms-vscode.hexeditor",
        "mtxr.sqltools",
        "lextudio.restructuredtext",
        "haskell.haskell",
        "miguelsolorio.fluent-icons",
        "eamodio.tsl-problem-matcher",
        "vscode-org-mode.org-mode",
        "amazonwebservices.aws-toolkit-vscode",
        "johnsoncodehk.vscode-typescript-vue-plugin",
        "johnsoncodehk.volar",
    }
)

UPGRADE_ERRORS = (OvsxSyncError, requests.exceptions.RequestException, ValueError)


@dataclass
class UpgradeResult:
    """Outcome of an upgrade run."""

    upgraded: List[str] = dataclass_field(default_factory=list)
    failed_ids: List[str] = dataclass_field(default_factory=list)


def apply_heuristics(
    original: TrackedPackage, upgraded: TrackedPackage
) -> TrackedPackage:
    """Clean up an upgraded repository entry.

    - version bumped while publishing from the default branch: unpin it
    - checkout moved but version unchanged: keep the original checkout
    """
    updates = {}
    if (
        upgraded.pinned_version
        and upgraded.pinned_version != original.pinned_version
        and not upgraded.checkout_ref
    ):
        updates["pinned_version"] = None
    if (
        upgraded.checkout_ref != original.checkout_ref
        and upgraded.pinned_version == original.pinned_version
    ):
        updates["checkout_ref"] = original.checkout_ref
    if not updates:
        return upgraded
    return upgraded.model_copy(update=updates)


class UpgradeWorkflow:
    """Rewrites the tracked-package store with upgraded pins."""

    def __init__(
        self,
        store: StoreService,
        enumerator: ReleaseEnumerator,
        dont_upgrade: FrozenSet[str] = DONT_UPGRADE,
        failed_log_path: Optional[Path] = None,
    ) -> None:
        """Initialize the workflow.

        Args:
            store: Store to rewrite
            enumerator: Release/tag source for repositories
            dont_upgrade: Ids that are never touched
            failed_log_path: Where to write the failed ids
        """
        self.store = store
        self.enumerator = enumerator
        self.dont_upgrade = dont_upgrade
        self.failed_log_path = failed_log_path

    def select(
        self, packages: List[TrackedPackage], extension_filter: Optional[str] = None
    ) -> Tuple[List[TrackedPackage], List[TrackedPackage]]:
        """Split packages into repository and download candidates.

        Returns:
            Tuple of (repository candidates, download candidates)
        """
        eligible = [
            p
            for p in packages
            if (not extension_filter or extension_filter in p.id)
            and p.id not in self.dont_upgrade
        ]
        repositories = [p for p in eligible if p.pinned_version and not p.download_url]
        downloads = [
            p
            for p in eligible
            if p.download_url and GITHUB_RELEASE_DOWNLOAD.match(p.download_url)
        ]
        return repositories, downloads

    def run(self, extension_filter: Optional[str] = None) -> UpgradeResult:
        """Upgrade the store.

        Args:
            extension_filter: Only upgrade ids containing this substring

        Returns:
            UpgradeResult with upgraded and failed ids

        Raises:
            UpgradeError: If the rewrite failed; the store was restored
        """
        document = self.store.load()
        packages = document.extensions
        repositories, downloads = self.select(packages, extension_filter)
        logger.info(
            "Upgrading %d repositories and %d downloads",
            len(repositories),
            len(downloads),
        )

        result = UpgradeResult()
        self.store.backup()
        try:
            replacements = {}
            for package in repositories:
                try:
                    replacements[package.id] = self.upgrade_repository(package)
                except UPGRADE_ERRORS as e:
                    logger.error("%s: failed to upgrade repository: %s", package.id, e)
                    result.failed_ids.append(package.id)

            for package in downloads:
                try:
                    replacements[package.id] = self.upgrade_download(package)
                except UPGRADE_ERRORS as e:
                    logger.error("%s: failed to upgrade downloads: %s", package.id, e)
                    result.failed_ids.append(package.id)

            originals = {p.id: p for p in repositories}
            rewritten = []
            for package in packages:
                upgraded = replacements.get(package.id, package)
                original = originals.get(package.id)
                if original is not None and not upgraded.download_url:
                    upgraded = apply_heuristics(original, upgraded)
                if upgraded != package:
                    result.upgraded.append(package.id)
                rewritten.append(upgraded)

            self.store.save(PackageStore(extensions=rewritten))
            if result.failed_ids:
                logger.error("failed extensions: %s", ", ".join(result.failed_ids))
        except Exception as e:
            logger.error("[FAIL] Could not upgrade %s!", self.store.path)
            self.store.restore()
            raise UpgradeError(f"Could not upgrade {self.store.path}: {e}") from e
        finally:
            self._write_failed_log(result.failed_ids)
        return result

    def upgrade_repository(self, package: TrackedPackage) -> TrackedPackage:
        """Point a package at the newest release (or tag) of its repository.

        Raises:
            UnresolvableError: If the repository has no usable release or tag
        """
        repository = str(package.repository)
        ref = None
        stable = [r for r in self.enumerator.get_releases(repository) if not r.prerelease]
        if stable:
            ref = stable[0].tag_name
        else:
            tag = newest_tag(self.enumerator.get_tags(repository))
            if tag is not None:
                ref = tag.name
        if ref is None:
            raise UnresolvableError(f"{package.id}: no release or tag found")

        version = self.enumerator.get_version_at(
            repository, ref, package.location
        ) or version_from_tag(ref)
        if not version:
            raise UnresolvableError(f"{package.id}: cannot tell the version of {ref}")

        logger.info("%s: upgrading to %s (%s)", package.id, version, ref)
        return package.model_copy(update={"checkout_ref": ref, "pinned_version": version})

    def upgrade_download(self, package: TrackedPackage) -> TrackedPackage:
        """Point a package at the newest ``.vsix`` release asset, if newer."""
        url = str(package.download_url)
        repository = re.sub(r"/releases/download/.*$", "", url)
        for release in self.enumerator.get_releases(repository):
            if release.prerelease:
                continue
            version = version_from_tag(release.tag_name)
            asset = pick_vsix(release.assets, package.name)
            if version is None or asset is None:
                continue
            if package.pinned_version and compare_versions(
                version, package.pinned_version
            ) <= 0:
                break
            logger.info("%s: upgrading download to %s", package.id, asset.download_url)
            return package.model_copy(
                update={"download_url": asset.download_url, "pinned_version": version}
            )
        return package

    def _write_failed_log(self, failed_ids: List[str]) -> None:
        if self.failed_log_path is None:
            return
        self.failed_log_path.parent.mkdir(parents=True, exist_ok=True)
        self.failed_log_path.write_text(", ".join(failed_ids), encoding="utf-8")
