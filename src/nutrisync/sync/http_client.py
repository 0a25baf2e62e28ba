"""HTTP transport for the NutriSync API.

Every response is classified into one of four outcomes: data, an auth
failure, a missing resource, or a failure. Only transient failures (5xx,
connection errors, timeouts) are retried.
"""

import gzip
import json
import logging
from typing import Optional

import requests

from .. import __version__
from ..errors import RemoteAuthError, RemoteStoreError
from .retry import RetryConfig, RetryExhausted, retry_with_backoff

__all__ = [
    "RemoteApiClient",
    "NotFound",
]

logger = logging.getLogger(__name__)


class NotFound(RemoteStoreError):
    """The requested resource does not exist (HTTP 404)."""

    pass


class _TransientError(Exception):
    """Internal: worth another attempt."""

    pass


_AUTH_FAILURES = {
    401: "Invalid or expired API token",
    403: "Not authorized for this user",
}


class RemoteApiClient:
    """Thin client over a ``requests.Session`` with auth and gzip uploads."""

    USER_AGENT = f"NutriSync/{__version__}"

    def __init__(
        self,
        api_url: str,
        token: Optional[str] = None,
        compress: bool = True,
        timeout: float = 5.0,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize API client.

        Args:
            api_url: API base URL
            token: Bearer token, if the server requires one
            compress: Allow gzip request bodies (per-request opt-in)
            timeout: Per-request timeout in seconds
            retry_config: Backoff policy for transient failures
            session: Injected session; the client closes only its own
        """
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.compress = compress
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self._session = session or requests.Session()
        self._owns_session = session is None

    def _headers(self) -> dict:
        headers = {"Accept": "application/json", "User-Agent": self.USER_AGENT}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _body(self, data: Optional[dict], compress: bool, headers: dict) -> dict:
        if data is None:
            return {}
        if not (compress and self.compress):
            return {"json": data}
        headers["Content-Type"] = "application/json"
        headers["Content-Encoding"] = "gzip"
        return {"data": gzip.compress(json.dumps(data).encode("utf-8"))}

    @staticmethod
    def _read(response: requests.Response, what: str) -> dict:
        status = response.status_code
        if status in _AUTH_FAILURES:
            raise RemoteAuthError(_AUTH_FAILURES[status])
        if status == 404:
            raise NotFound(f"{what}: not found")
        if status >= 500:
            raise _TransientError(f"Server error: {status}")
        if status >= 400:
            try:
                detail = response.json().get("message", "")
            except (ValueError, AttributeError):
                detail = ""
            raise RemoteStoreError(f"API error ({status}): {detail or response.reason}")

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise RemoteStoreError(f"Invalid JSON response: {e}") from e

    def request(
        self,
        method: str,
        endpoint: str,
        data: Optional[dict] = None,
        compress: bool = False,
        retry: bool = True,
    ) -> dict:
        """Send one API request.

        Args:
            method: HTTP method
            endpoint: Path relative to ``api_url``
            data: JSON body
            compress: Gzip the body (if the client allows it)
            retry: Retry transient failures with backoff

        Returns:
            Decoded JSON body, ``{}`` when empty

        Raises:
            RemoteAuthError: 401/403, never retried
            NotFound: 404, never retried
            RemoteStoreError: Anything else that went wrong
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        what = f"{method} {endpoint}"
        headers = self._headers()
        kwargs = self._body(data, compress, headers)

        def attempt() -> dict:
            try:
                response = self._session.request(
                    method, url, headers=headers, timeout=self.timeout, **kwargs
                )
            except requests.exceptions.ConnectionError as e:
                raise _TransientError("Cannot connect to remote store") from e
            except requests.exceptions.Timeout as e:
                raise _TransientError("Request timed out") from e
            return self._read(response, what)

        try:
            if not retry:
                return attempt()
            return retry_with_backoff(
                attempt, self.retry_config, retryable_exceptions=(_TransientError,)
            )
        except _TransientError as e:
            raise RemoteStoreError(str(e)) from e
        except RetryExhausted as e:
            logger.debug(f"{what} failed after {e.attempts} attempts")
            raise RemoteStoreError(str(e.last_error)) from e.last_error

    def close(self) -> None:
        """Close the session if we own it."""
        if self._owns_session and self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "RemoteApiClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
