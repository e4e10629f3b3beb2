"""HTTP client for the remote CouchDB-style document store."""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from ..config.settings import RemoteSettings
from ..utils.logging import get_logger


class NetworkFailure(Exception):
    """Raised when a remote request times out, fails, or gets a non-success status."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


@dataclass
class RemoteResponse:
    """Status and decoded JSON body (None if not JSON) of a successful request."""

    status: int
    body: Any = None


class RemoteStoreClient:
    """Authenticated aiohttp session against one remote document store."""

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """Initialize the remote client.

        Args:
            base_url: Server root, e.g. ``http://192.168.1.10:5984``
            username: Basic auth user
            password: Basic auth password
            session: Optional externally owned session
        """
        self.base_url = base_url.rstrip('/')
        self.auth = aiohttp.BasicAuth(username, password)
        self.headers = {
            "Authorization": self.auth.encode(),
            "Accept": "application/json"
        }
        self.logger = get_logger(self.__class__.__name__)

        self.session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(cls, settings: RemoteSettings) -> "RemoteStoreClient":
        return cls(settings.base_url, settings.username, settings.password)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def authorization_header(self) -> str:
        """Value of the ``Authorization`` header sent with every request."""
        return self.auth.encode()

    def url(self, *parts: str) -> str:
        """Build a URL below the base URL, quoting each path segment."""
        if not parts:
            return self.base_url
        return self.base_url + "/" + "/".join(quote(part, safe="") for part in parts)

    async def request(
        self,
        method: str,
        *parts: str,
        timeout: float,
        json: Optional[Any] = None
    ) -> RemoteResponse:
        """Send one authenticated request.

        Raises:
            NetworkFailure: on timeout, connection error, or non-2xx status
        """
        session = self._ensure_session()
        url = self.url(*parts)

        try:
            async with session.request(
                method,
                url,
                json=json,
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=timeout)
            ) as response:
                text = await response.text()

                if not 200 <= response.status < 300:
                    raise NetworkFailure(
                        f"{method} {url} failed: {response.status} - {text[:200]}",
                        status=response.status
                    )

                try:
                    body = await response.json(content_type=None) if text else None
                except ValueError:
                    body = None

                return RemoteResponse(status=response.status, body=body)

        except asyncio.TimeoutError as e:
            raise NetworkFailure(f"{method} {url} timed out after {timeout}s") from e
        except aiohttp.ClientError as e:
            raise NetworkFailure(f"{method} {url} network error: {e}") from e

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        return self.session

    async def close(self):
        """Close the session if this client created it."""
        if self.session and self._owns_session and not self.session.closed:
            await self.session.close()
        self.session = None
