"""Version lookups against VS Code compatible extension galleries.

Both the Visual Studio Marketplace and Open VSX expose the same
``extensionquery`` endpoint, so a single client serves as the version oracle
for either side.
"""

import logging
from typing import Any, Dict, Optional

import requests

from ..models import VersionRecord
from .http_client import HttpClient

logger = logging.getLogger(__name__)

# ExtensionQueryFlags of the gallery API
INCLUDE_VERSIONS = 0x1
INCLUDE_STATISTICS = 0x100
INCLUDE_LATEST_VERSION_ONLY = 0x200

# ExtensionQueryFilterType.Name
FILTER_EXTENSION_NAME = 7

GALLERY_API_VERSION = "3.0-preview.1"


class MarketplaceService(HttpClient):
    """Queries one gallery for the published version of an extension."""

    def __init__(
        self,
        base_url: str,
        name: str = "marketplace",
        session: Optional[requests.Session] = None,
        max_retries: int = 5,
        base_delay: float = 1.0,
        timeout: float = 30,
    ) -> None:
        """Initialize the gallery client.

        Args:
            base_url: Gallery root, e.g. ``https://open-vsx.org/vscode/gallery``
            name: Label used in log messages
            session: Optional requests session
            max_retries: Maximum number of retry attempts
            base_delay: Base delay in seconds between retries
            timeout: Per-request timeout in seconds
        """
        super().__init__(
            base_url,
            session=session,
            max_retries=max_retries,
            base_delay=base_delay,
            timeout=timeout,
            headers={
                "Accept": f"application/json;api-version={GALLERY_API_VERSION}",
                "Content-Type": "application/json",
            },
        )
        self.name = name

    def get_version(self, extension_id: str) -> Optional[VersionRecord]:
        """Get the latest published version of an extension.

        Args:
            extension_id: ``namespace.name`` identifier

        Returns:
            VersionRecord, or None when the gallery has never published it

        Raises:
            TransientNetworkError: If the gallery keeps failing
        """
        body = {
            "filters": [
                {
                    "criteria": [
                        {"filterType": FILTER_EXTENSION_NAME, "value": extension_id}
                    ],
                    "pageNumber": 1,
                    "pageSize": 1,
                }
            ],
            "flags": INCLUDE_VERSIONS | INCLUDE_STATISTICS | INCLUDE_LATEST_VERSION_ONLY,
        }
        response = self.request("POST", "extensionquery", json=body)
        if response.status_code == 404:
            return None

        extension = self._first_extension(response.json())
        if extension is None:
            logger.debug("%s: not found on %s", extension_id, self.name)
            return None
        return self.parse_extension(extension)

    @staticmethod
    def _first_extension(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for result in payload.get("results") or []:
            for extension in result.get("extensions") or []:
                return extension
        return None

    @staticmethod
    def parse_extension(extension: Dict[str, Any]) -> Optional[VersionRecord]:
        """Build a VersionRecord from a gallery extension entry."""
        versions = extension.get("versions") or []
        if not versions or not versions[0].get("version"):
            return None
        latest = versions[0]

        install_count = None
        for statistic in extension.get("statistics") or []:
            if statistic.get("statisticName") == "install":
                install_count = int(statistic.get("value") or 0)
                break

        publisher = extension.get("publisher") or {}
        return VersionRecord(
            version=latest["version"],
            last_updated=latest.get("lastUpdated"),
            install_count=install_count,
            publisher_name=publisher.get("publisherName"),
        )
