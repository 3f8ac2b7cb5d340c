"""Services talking to the outside world: galleries, GitHub and the store."""

from .github_service import (
    AssetInfo,
    CommitInfo,
    GitHubService,
    ReleaseInfo,
    TagInfo,
    parse_repository,
)
from .http_client import HttpClient
from .marketplace_service import MarketplaceService
from .store_service import StoreService

__all__ = [
    "AssetInfo",
    "CommitInfo",
    "GitHubService",
    "HttpClient",
    "MarketplaceService",
    "ReleaseInfo",
    "StoreService",
    "TagInfo",
    "parse_repository",
]
