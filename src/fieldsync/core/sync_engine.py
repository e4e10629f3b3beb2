"""Manual sync orchestration: push every unsynced local document once."""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .status import ChangeEvent, ChangeKind, ChangeNotifier
from ..remote import ConnectivityProber, DocumentPusher
from ..storage import CollectionKey, LocalStore, StorageFailure, get_sync_run_repository
from ..storage.models import utcnow
from ..utils.logging import get_logger


# Distributions first, then GPS photos
SYNC_ORDER = (CollectionKey.DISTRIBUTIONS, CollectionKey.GPS_PHOTOS)


@dataclass
class CollectionSyncResult:
    """Outcome of the sync pass over one collection."""

    collection_key: str
    total_unsynced: int = 0
    synced_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)

    @property
    def synced_count(self) -> int:
        return len(self.synced_ids)


@dataclass
class SyncResult:
    """Result of a manual sync pass.

    ``total_unsynced`` counts documents that were unsynced when the pass
    started; ``synced_count`` counts those whose flag flipped during it.
    """

    success: bool
    synced_count: int = 0
    total_unsynced: int = 0
    collections: List[CollectionSyncResult] = field(default_factory=list)
    error_message: Optional[str] = None
    sync_duration: Optional[float] = None

    @property
    def failed_count(self) -> int:
        return self.total_unsynced - self.synced_count

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": self.success,
            "synced_count": self.synced_count,
            "total_unsynced": self.total_unsynced
        }


class SyncEngineError(Exception):
    """Base exception for sync engine errors."""
    pass


class OfflineSyncRequested(SyncEngineError):
    """Sync was requested while offline and the single re-probe also failed."""
    pass


class SyncEngine:
    """Drives manual sync passes over the local collections."""

    def __init__(
        self,
        store: LocalStore,
        prober: ConnectivityProber,
        pusher: DocumentPusher,
        remote_collections: Dict[CollectionKey, str],
        notifier: Optional[ChangeNotifier] = None
    ):
        """Initialize sync engine.

        Args:
            store: Local store holding the collections
            prober: Connectivity prober, consulted once per pass if offline
            pusher: Single-document pusher
            remote_collections: Remote database name for each collection
            notifier: Optional channel notified after each completed pass
        """
        self.store = store
        self.prober = prober
        self.pusher = pusher
        self.remote_collections = remote_collections
        self.notifier = notifier
        self.logger = get_logger(self.__class__.__name__)

    async def manual_sync(self) -> SyncResult:
        """Push every unsynced document, one at a time, and persist the flags.

        Each collection is processed while holding its store lock, from the
        read of the sequence to the write-back. A document appended by
        another caller during the pass waits for the lock instead of being
        overwritten by the write-back.

        Raises:
            OfflineSyncRequested: offline and the re-probe failed
            StorageFailure: the updated flags could not be persisted
        """
        started_at = utcnow()

        if not self.prober.is_online:
            self.logger.info("Offline at sync request, probing once")
            if not await self.prober.probe():
                self.logger.warning("Manual sync refused: remote store unreachable")
                self._log_sync_run(started_at, SyncResult(
                    success=False, error_message="Cannot sync while offline"
                ))
                raise OfflineSyncRequested("Cannot sync while offline")

        start_time = time.monotonic()
        result = SyncResult(success=False)

        self.logger.info("Starting manual sync")

        try:
            for key in SYNC_ORDER:
                collection_result = await self._sync_collection(key)
                result.collections.append(collection_result)
                result.synced_count += collection_result.synced_count
                result.total_unsynced += collection_result.total_unsynced

            result.success = True

        except StorageFailure as e:
            result.error_message = str(e)
            self.logger.error(
                "Manual sync failed to persist sync flags",
                collection=e.collection_key,
                synced_count=result.synced_count,
                error=str(e)
            )
            raise

        finally:
            result.sync_duration = time.monotonic() - start_time
            self._log_sync_run(started_at, result)

        self.logger.info(
            "Manual sync completed",
            synced_count=result.synced_count,
            total_unsynced=result.total_unsynced,
            failed_count=result.failed_count,
            duration=f"{result.sync_duration:.2f}s"
        )

        if self.notifier:
            await self.notifier.publish(ChangeEvent(
                kind=ChangeKind.SYNCED,
                document_ids=tuple(
                    doc_id for c in result.collections for doc_id in c.synced_ids
                ),
                details=result.to_dict()
            ))

        return result

    async def _sync_collection(self, key: CollectionKey) -> CollectionSyncResult:
        """Push the unsynced documents of one collection in stored order."""
        remote_name = self.remote_collections[key]
        result = CollectionSyncResult(collection_key=key.value)

        async with self.store.hold(key) as held:
            documents = held.read()
            unsynced = [doc for doc in documents if not doc.synced]
            result.total_unsynced = len(unsynced)

            self.logger.debug(
                "Syncing collection",
                collection=key.value,
                remote=remote_name,
                unsynced=len(unsynced)
            )

            # Strictly sequential: one request in flight at a time
            for doc in unsynced:
                if await self.pusher.push(doc, remote_name):
                    result.synced_ids.append(doc.id)
                else:
                    result.failed_ids.append(doc.id)

            if result.synced_ids:
                held.write(documents)

        return result

    def _log_sync_run(self, started_at: datetime, result: SyncResult) -> None:
        """Record the pass in the sync run table."""
        try:
            with self.store.db_manager.session_scope() as session:
                repo = get_sync_run_repository(session)
                sync_run = repo.create(started_at=started_at)
                repo.complete(
                    sync_run.id,
                    success=result.success,
                    synced_count=result.synced_count,
                    total_unsynced=result.total_unsynced,
                    error_message=result.error_message
                )
        except Exception as e:
            self.logger.warning("Failed to log sync run", error=str(e))
