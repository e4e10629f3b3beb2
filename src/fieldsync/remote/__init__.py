"""Remote document store clients."""

from .base import RemoteStoreClient, RemoteResponse, NetworkFailure
from .prober import ConnectivityProber, DISCOVERY_ENDPOINT
from .pusher import DocumentPusher

__all__ = [
    "RemoteStoreClient",
    "RemoteResponse",
    "NetworkFailure",
    "ConnectivityProber",
    "DISCOVERY_ENDPOINT",
    "DocumentPusher"
]
