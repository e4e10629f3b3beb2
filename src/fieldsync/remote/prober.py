"""Connectivity probe against the remote store's discovery endpoint."""

from datetime import datetime
from typing import Optional

from .base import NetworkFailure, RemoteStoreClient
from ..storage.models import utcnow
from ..utils.logging import get_logger


DISCOVERY_ENDPOINT = "_all_dbs"


class ConnectivityProber:
    """Decides whether the remote store is reachable.

    One probe is one bounded request; nothing here retries. The last result
    is kept in ``is_online`` for status reporting.
    """

    def __init__(self, client: RemoteStoreClient, timeout_seconds: float = 10.0):
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.logger = get_logger(self.__class__.__name__)

        self.is_online = False
        self.last_probe_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    async def probe(self) -> bool:
        """Probe the discovery endpoint. Never raises."""
        self.last_probe_at = utcnow()
        self.logger.info("Probing remote store", url=self.client.url(DISCOVERY_ENDPOINT))

        try:
            response = await self.client.request(
                "GET", DISCOVERY_ENDPOINT, timeout=self.timeout_seconds
            )
        except NetworkFailure as e:
            self.is_online = False
            self.last_error = str(e)
            self.logger.warning("Remote store unreachable", error=str(e), status=e.status)
            return False

        self.is_online = True
        self.last_error = None
        self.logger.info(
            "Remote store reachable",
            status=response.status,
            databases=response.body if isinstance(response.body, list) else None
        )
        return True
