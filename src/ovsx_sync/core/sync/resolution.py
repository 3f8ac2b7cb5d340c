"""Resolution policy: which upstream artifact to publish for a package.

The policy is a strict priority chain. Each rule looks at what the release
enumerator reports and either produces a ``ResolvedSource`` or passes. The
first rule that produces one wins:

1. a ``.vsix`` asset attached to the release of the target version
2. the tag of that release
3. a plain tag matching the target version
4. the latest commit, when the primary marketplace has no record of the
   package or its record is older than the staleness threshold
5. the latest commit, when its manifest version equals the primary version
6. the newest commit made before the primary version was last updated

A package pinned to a ``.vsix`` download URL resolves to that file before any
rule runs, and a pinned ``checkout`` ref is used after rule 3.
"""

import logging
import posixpath
import re
from datetime import datetime, timedelta, timezone
from functools import cached_property
from typing import Callable, List, Optional, Protocol, Sequence
from urllib.parse import unquote, urlparse

import semver

from ...errors import MissingRepositoryError, UnresolvableError
from ...models import ResolvedSource, SourceKind, TrackedPackage, VersionRecord
from ...services.github_service import (
    AssetInfo,
    CommitInfo,
    ReleaseInfo,
    TagInfo,
)
from .ledger import parse_version

logger = logging.getLogger(__name__)

DOWNLOAD_DIR = "download"
VERSION_SUFFIX = re.compile(r"(\d+(?:\.\d+){0,2}(?:-[0-9A-Za-z.-]+)?)$")


class ReleaseEnumerator(Protocol):
    """What the policy needs to know about a repository."""

    def get_releases(self, repository: str) -> List[ReleaseInfo]: ...

    def get_tags(self, repository: str) -> List[TagInfo]: ...

    def get_latest_commit(
        self, repository: str, ref: Optional[str] = None
    ) -> Optional[CommitInfo]: ...

    def get_commit_before(
        self, repository: str, until: datetime, ref: Optional[str] = None
    ) -> Optional[CommitInfo]: ...

    def get_version_at(
        self, repository: str, ref: str, location: Optional[str] = None
    ) -> Optional[str]: ...


def tag_matches(tag: str, version: str) -> bool:
    """Check whether a tag names the given version.

    ``1.2.0``, ``v1.2.0``, ``release/1.2.0`` and ``ext-v1.2.0`` all match
    ``1.2.0``; ``11.2.0`` and ``1.2.0-beta`` do not.
    """
    pattern = rf"(?:^|[^0-9A-Za-z.])[vV]?{re.escape(version)}$"
    return re.search(pattern, tag) is not None


def version_from_tag(tag: str) -> Optional[str]:
    """Extract the trailing version of a tag name."""
    match = VERSION_SUFFIX.search(tag)
    return match.group(1) if match else None


def _sort_key(tag: str) -> Optional[semver.Version]:
    version = version_from_tag(tag)
    if version is None:
        return None
    try:
        return parse_version(version)
    except ValueError:
        return None


def newest_tag(tags: Sequence[TagInfo]) -> Optional[TagInfo]:
    """Pick the tag carrying the highest version."""
    versioned = []
    for tag in tags:
        key = _sort_key(tag.name)
        if key is not None:
            versioned.append((key, tag))
    if not versioned:
        return None
    return max(versioned, key=lambda item: item[0])[1]


def pick_vsix(assets: Sequence[AssetInfo], name: str) -> Optional[AssetInfo]:
    """Choose the extension package among release assets."""
    candidates = [a for a in assets if a.name.lower().endswith(".vsix")]
    if not candidates:
        return None
    for asset in candidates:
        if name.lower() in asset.name.lower():
            return asset
    return candidates[0]


class ResolutionContext:
    """Lazily fetched repository facts for one resolution.

    Each enumerator query runs at most once, and only when a rule needs it.
    """

    def __init__(
        self,
        enumerator: ReleaseEnumerator,
        package: TrackedPackage,
        primary: Optional[VersionRecord],
        now: datetime,
        staleness_days: int,
    ) -> None:
        """Initialize the context."""
        self.enumerator = enumerator
        self.package = package
        self.primary = primary
        self.now = now
        self.staleness_days = staleness_days
        self.repository: str = package.repository or ""

    @property
    def target_version(self) -> Optional[str]:
        """Version the release and tag rules look for."""
        if self.package.pinned_version:
            return self.package.pinned_version
        if self.primary:
            return self.primary.version
        return None

    @property
    def is_stale(self) -> bool:
        """Primary record missing or older than the staleness threshold."""
        if self.primary is None:
            return True
        if self.primary.last_updated is None:
            return False
        threshold = self.now - timedelta(days=self.staleness_days)
        return self.primary.last_updated < threshold

    @cached_property
    def releases(self) -> List[ReleaseInfo]:
        return self.enumerator.get_releases(self.repository)

    @cached_property
    def tags(self) -> List[TagInfo]:
        return self.enumerator.get_tags(self.repository)

    @cached_property
    def latest_commit(self) -> Optional[CommitInfo]:
        return self.enumerator.get_latest_commit(self.repository)

    @cached_property
    def target_release(self) -> Optional[ReleaseInfo]:
        """Release of the target version, or the newest stable release."""
        version = self.target_version
        if version is None:
            stable = [r for r in self.releases if not r.prerelease]
            return stable[0] if stable else None
        for release in self.releases:
            if tag_matches(release.tag_name, version):
                return release
        return None

    @cached_property
    def target_tag(self) -> Optional[TagInfo]:
        """Tag of the target version, or the highest versioned tag."""
        version = self.target_version
        if version is not None:
            for tag in self.tags:
                if tag_matches(tag.name, version):
                    return tag
            return None
        return newest_tag(self.tags)

    def version_at(self, ref: str) -> Optional[str]:
        return self.enumerator.get_version_at(
            self.repository, ref, self.package.location
        )

    def version_for_tag(self, tag: str) -> Optional[str]:
        return self.target_version or version_from_tag(tag)


Rule = Callable[[ResolutionContext], Optional[ResolvedSource]]


def from_download_url(ctx: ResolutionContext) -> Optional[ResolvedSource]:
    url = ctx.package.download_url
    if not url:
        return None
    filename = posixpath.basename(unquote(urlparse(url).path))
    if filename in ("", ".", ".."):
        filename = "extension.vsix"
    return ResolvedSource(
        kind=SourceKind.RELEASE_ASSET,
        target_version=ctx.target_version,
        file=f"{DOWNLOAD_DIR}/{filename}",
        link=url,
    )


def from_release_asset(ctx: ResolutionContext) -> Optional[ResolvedSource]:
    release = ctx.target_release
    if release is None:
        return None
    asset = pick_vsix(release.assets, ctx.package.name)
    if asset is None:
        return None
    return ResolvedSource(
        kind=SourceKind.RELEASE_ASSET,
        target_version=ctx.version_for_tag(release.tag_name),
        file=f"{DOWNLOAD_DIR}/{asset.name}",
        link=asset.download_url,
    )


def from_release_tag(ctx: ResolutionContext) -> Optional[ResolvedSource]:
    release = ctx.target_release
    if release is None:
        return None
    return ResolvedSource(
        kind=SourceKind.RELEASE_TAG,
        target_version=ctx.version_for_tag(release.tag_name),
        ref=release.tag_name,
    )


def from_tag(ctx: ResolutionContext) -> Optional[ResolvedSource]:
    tag = ctx.target_tag
    if tag is None:
        return None
    return ResolvedSource(
        kind=SourceKind.GENERIC_TAG,
        target_version=ctx.version_for_tag(tag.name),
        ref=tag.name,
    )


def from_pinned_checkout(ctx: ResolutionContext) -> Optional[ResolvedSource]:
    ref = ctx.package.checkout_ref
    if not ref:
        return None
    return ResolvedSource(
        kind=SourceKind.GENERIC_TAG,
        target_version=ctx.target_version or ctx.version_at(ref),
        ref=ref,
    )


def from_latest_commit(ctx: ResolutionContext) -> Optional[ResolvedSource]:
    if not ctx.is_stale:
        return None
    commit = ctx.latest_commit
    if commit is None:
        return None
    if ctx.primary is None:
        note = "it is not published to MS marketplace"
    else:
        note = "it is not actively maintained"
    version = ctx.version_at(commit.sha) or (ctx.primary.version if ctx.primary else None)
    return ResolvedSource(
        kind=SourceKind.LATEST_COMMIT,
        target_version=version,
        ref=commit.sha,
        note=note,
    )


def from_matched_latest_commit(ctx: ResolutionContext) -> Optional[ResolvedSource]:
    if ctx.primary is None:
        return None
    commit = ctx.latest_commit
    if commit is None:
        return None
    if ctx.version_at(commit.sha) != ctx.primary.version:
        return None
    return ResolvedSource(
        kind=SourceKind.MATCHED_LATEST_COMMIT,
        target_version=ctx.primary.version,
        ref=commit.sha,
    )


def from_matched_commit(ctx: ResolutionContext) -> Optional[ResolvedSource]:
    if ctx.primary is None or ctx.primary.last_updated is None:
        return None
    commit = ctx.enumerator.get_commit_before(
        ctx.repository, ctx.primary.last_updated
    )
    if commit is None:
        return None
    return ResolvedSource(
        kind=SourceKind.MATCHED_COMMIT,
        target_version=ctx.primary.version,
        ref=commit.sha,
    )


DEFAULT_RULES: Sequence[Rule] = (
    from_download_url,
    from_release_asset,
    from_release_tag,
    from_tag,
    from_pinned_checkout,
    from_latest_commit,
    from_matched_latest_commit,
    from_matched_commit,
)


class ResolutionPolicy:
    """Picks one publishable source per package."""

    def __init__(
        self,
        enumerator: ReleaseEnumerator,
        staleness_days: int = 30,
        rules: Sequence[Rule] = DEFAULT_RULES,
    ) -> None:
        """Initialize the policy.

        Args:
            enumerator: Release/tag/commit source for repositories
            staleness_days: Age after which a primary record counts as
                not actively maintained
            rules: Ordered rules, the first match wins
        """
        self.enumerator = enumerator
        self.staleness_days = staleness_days
        self.rules = tuple(rules)

    def resolve(
        self,
        package: TrackedPackage,
        primary: Optional[VersionRecord] = None,
        now: Optional[datetime] = None,
    ) -> ResolvedSource:
        """Resolve the artifact to publish.

        Args:
            package: Package to resolve
            primary: Current version on the primary marketplace, if known
            now: Reference time for the staleness check

        Returns:
            The chosen ResolvedSource

        Raises:
            MissingRepositoryError: If the package has no repository
            UnresolvableError: If no rule produced a source
        """
        if not package.repository:
            raise MissingRepositoryError(f"{package.id}: repository not specified")

        ctx = ResolutionContext(
            self.enumerator,
            package,
            primary,
            now or datetime.now(timezone.utc),
            self.staleness_days,
        )
        for rule in self.rules:
            source = rule(ctx)
            if source is not None:
                logger.info("%s: %s", package.id, source.describe())
                return source

        raise UnresolvableError(f"{package.id}: failed to resolve")
