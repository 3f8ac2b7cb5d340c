"""Shared HTTP plumbing for the marketplace and GitHub services."""

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from ..errors import TransientNetworkError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = (429,)


def _is_retryable(error: requests.exceptions.HTTPError) -> bool:
    response = error.response
    if response is None:
        return False
    return 500 <= response.status_code < 600 or response.status_code in RETRYABLE_STATUS


class HttpClient:
    """Base class holding a ``requests`` session with bounded retries."""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        max_retries: int = 5,
        base_delay: float = 1.0,
        timeout: float = 30,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: URL prefix for relative request paths
            session: Optional preconfigured session (tests pass a mock)
            max_retries: Maximum number of retry attempts
            base_delay: Base delay in seconds (doubles each retry)
            timeout: Per-request timeout in seconds
            headers: Headers added to every request
        """
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        if headers:
            self.session.headers.update(headers)
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.timeout = timeout

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _retry_api_call(self, func: Callable[[], Any]) -> Any:
        """Retry API calls with exponential backoff for transient errors.

        Connection errors, timeouts and 5xx/429 responses are retried.
        Other HTTP errors propagate unchanged.

        Raises:
            TransientNetworkError: If all retries fail
        """
        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries + 1):
            try:
                return func()
            except requests.exceptions.HTTPError as e:
                if not _is_retryable(e):
                    raise
                last_error = e
            except (
                requests.exceptions.ConnectionError,
                requests.exceptions.Timeout,
            ) as e:
                last_error = e

            if attempt < self.max_retries:
                delay = self.base_delay * (2**attempt)
                logger.warning(
                    "Request failed (%s), retrying in %.1fs... (attempt %d/%d)",
                    last_error,
                    delay,
                    attempt + 1,
                    self.max_retries,
                )
                time.sleep(delay)

        raise TransientNetworkError(
            f"Request failed after {self.max_retries} retries: {last_error}"
        ) from last_error

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Send a request, raising for error statuses except 404.

        A 404 response is returned as is so callers can treat it as absence.
        """
        kwargs.setdefault("timeout", self.timeout)
        url = self._url(path)

        def _send() -> requests.Response:
            response = self.session.request(method, url, **kwargs)
            if response.status_code != 404:
                response.raise_for_status()
            return response

        return self._retry_api_call(_send)
