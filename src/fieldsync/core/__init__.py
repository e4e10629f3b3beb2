"""Core sync logic package."""

from .status import ChangeEvent, ChangeKind, ChangeNotifier, EngineStatus
from .sync_engine import (
    SyncEngine,
    SyncResult,
    CollectionSyncResult,
    SyncEngineError,
    OfflineSyncRequested
)
from .engine import FieldSyncEngine

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "ChangeNotifier",
    "EngineStatus",
    "SyncEngine",
    "SyncResult",
    "CollectionSyncResult",
    "SyncEngineError",
    "OfflineSyncRequested",
    "FieldSyncEngine"
]
