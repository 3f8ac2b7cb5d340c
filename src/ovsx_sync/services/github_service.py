"""Release, tag and commit enumeration for GitHub hosted repositories."""

import json
import logging
import posixpath
import re
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

import requests

from ..errors import UnresolvableError
from .http_client import HttpClient

logger = logging.getLogger(__name__)

REPOSITORY_PATTERN = re.compile(
    r"github\.com[/:](?P<owner>[^/]+)/(?P<repo>[^/#?]+?)(?:\.git)?/?(?:[#?].*)?$"
)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class AssetInfo:
    """A file attached to a release."""

    name: str
    download_url: str


@dataclass
class ReleaseInfo:
    """A published (non-draft) release."""

    tag_name: str
    name: str = ""
    prerelease: bool = False
    published_at: Optional[datetime] = None
    assets: List[AssetInfo] = dataclass_field(default_factory=list)


@dataclass
class TagInfo:
    """A plain VCS tag."""

    name: str
    sha: str


@dataclass
class CommitInfo:
    """A commit with its committer timestamp."""

    sha: str
    date: Optional[datetime] = None


def parse_repository(url: str) -> Tuple[str, str]:
    """Split a GitHub repository URL into owner and repository name.

    Raises:
        UnresolvableError: If the URL does not point at GitHub
    """
    match = REPOSITORY_PATTERN.search(url.strip())
    if not match:
        raise UnresolvableError(f"not a GitHub repository: {url}")
    return match.group("owner"), match.group("repo")


class GitHubService(HttpClient):
    """Enumerates releases, tags and commits through the GitHub REST API."""

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        max_retries: int = 5,
        base_delay: float = 1.0,
        timeout: float = 30,
        max_pages: int = 3,
    ) -> None:
        """Initialize the GitHub client.

        Args:
            api_url: REST API root
            token: Optional token, raises the rate limit
            session: Optional requests session
            max_retries: Maximum number of retry attempts
            base_delay: Base delay in seconds between retries
            timeout: Per-request timeout in seconds
            max_pages: Upper bound of pages fetched from list endpoints
        """
        headers = {"Accept": "application/vnd.github+json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        super().__init__(
            api_url,
            session=session,
            max_retries=max_retries,
            base_delay=base_delay,
            timeout=timeout,
            headers=headers,
        )
        self.max_pages = max_pages

    def _paginate(
        self, path: str, params: Optional[Dict[str, Any]] = None
    ) -> Iterator[Dict[str, Any]]:
        url: Optional[str] = path
        query: Optional[Dict[str, Any]] = {"per_page": 100, **(params or {})}
        for _ in range(self.max_pages):
            if url is None:
                return
            response = self.request("GET", url, params=query)
            if response.status_code == 404:
                return
            yield from response.json()
            url = response.links.get("next", {}).get("url")
            # The next link already carries the query string
            query = None

    def get_releases(self, repository: str) -> List[ReleaseInfo]:
        """Get published releases, newest first."""
        owner, repo = parse_repository(repository)
        releases = []
        for item in self._paginate(f"repos/{owner}/{repo}/releases"):
            if item.get("draft"):
                continue
            releases.append(
                ReleaseInfo(
                    tag_name=item["tag_name"],
                    name=item.get("name") or "",
                    prerelease=bool(item.get("prerelease")),
                    published_at=_parse_timestamp(item.get("published_at")),
                    assets=[
                        AssetInfo(
                            name=asset["name"],
                            download_url=asset["browser_download_url"],
                        )
                        for asset in item.get("assets") or []
                    ],
                )
            )
        logger.debug("%s: found %d releases", repository, len(releases))
        return releases

    def get_tags(self, repository: str) -> List[TagInfo]:
        """Get the repository tags in the order GitHub lists them."""
        owner, repo = parse_repository(repository)
        return [
            TagInfo(name=item["name"], sha=item["commit"]["sha"])
            for item in self._paginate(f"repos/{owner}/{repo}/tags")
        ]

    def get_latest_commit(
        self, repository: str, ref: Optional[str] = None
    ) -> Optional[CommitInfo]:
        """Get the head commit of ``ref`` (default branch when None)."""
        return self._first_commit(repository, ref=ref)

    def get_commit_before(
        self, repository: str, until: datetime, ref: Optional[str] = None
    ) -> Optional[CommitInfo]:
        """Get the newest commit made at or before ``until``."""
        return self._first_commit(repository, ref=ref, until=until)

    def _first_commit(
        self,
        repository: str,
        ref: Optional[str] = None,
        until: Optional[datetime] = None,
    ) -> Optional[CommitInfo]:
        owner, repo = parse_repository(repository)
        params: Dict[str, Any] = {"per_page": 1}
        if ref:
            params["sha"] = ref
        if until:
            params["until"] = until.isoformat()
        response = self.request("GET", f"repos/{owner}/{repo}/commits", params=params)
        if response.status_code == 404:
            return None
        commits = response.json()
        if not commits:
            return None
        commit = commits[0]
        committer = (commit.get("commit") or {}).get("committer") or {}
        return CommitInfo(sha=commit["sha"], date=_parse_timestamp(committer.get("date")))

    def get_version_at(
        self, repository: str, ref: str, location: Optional[str] = None
    ) -> Optional[str]:
        """Read the ``package.json`` version at a given ref.

        Args:
            repository: Repository URL
            ref: Commit sha, tag or branch
            location: Optional subdirectory holding the extension

        Returns:
            The version string, or None if there is no readable manifest
        """
        owner, repo = parse_repository(repository)
        manifest = "package.json"
        if location and posixpath.normpath(location) != ".":
            manifest = f"{posixpath.normpath(location).strip('/')}/package.json"
        response = self.request(
            "GET",
            f"repos/{owner}/{repo}/contents/{manifest}",
            params={"ref": ref},
            headers={"Accept": "application/vnd.github.raw+json"},
        )
        if response.status_code == 404:
            return None
        try:
            version = json.loads(response.text).get("version")
        except (json.JSONDecodeError, AttributeError):
            logger.warning("%s: unreadable %s at %s", repository, manifest, ref)
            return None
        return version or None
