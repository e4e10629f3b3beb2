"""Field sync engine: the entry point used by data-collection screens."""

import time
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from .status import ChangeCallback, ChangeEvent, ChangeKind, ChangeNotifier, EngineStatus
from .sync_engine import SyncEngine, SyncResult
from ..config.settings import AppSettings, get_settings
from ..remote import ConnectivityProber, DocumentPusher, RemoteStoreClient
from ..storage import (
    COLLECTION_TYPES,
    CollectionKey,
    DatabaseManager,
    Document,
    DuplicateDocumentId,
    LocalStore,
    StorageFailure,
    SyncRunResponse,
    TypeTag,
    get_sync_run_repository,
)
from ..storage.models import utcnow
from ..utils.logging import get_logger, log_async_execution_time


PayloadInput = Union[BaseModel, Mapping[str, Any]]

ID_ATTEMPTS = 3


def new_document_id(type_tag: TypeTag) -> str:
    """``<type>_<epoch ms>_<9 hex chars>``."""
    return f"{type_tag.value}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class FieldSyncEngine:
    """Offline-first store for field records with manual push to a remote store.

    Create one per application, call ``start()`` (or use ``async with``)
    and pass it to whatever needs to save or sync records; ``close()``
    releases the HTTP session and database connections.
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        db_manager: Optional[DatabaseManager] = None,
        remote_client: Optional[RemoteStoreClient] = None,
        prober: Optional[ConnectivityProber] = None,
        pusher: Optional[DocumentPusher] = None
    ):
        self.settings = settings or get_settings()
        self.logger = get_logger(self.__class__.__name__)

        remote_settings = self.settings.remote

        self.db_manager = db_manager or DatabaseManager(self.settings.storage.url)
        self.store = LocalStore(self.db_manager)
        self.remote = remote_client or RemoteStoreClient.from_settings(remote_settings)
        self.prober = prober or ConnectivityProber(
            self.remote, timeout_seconds=remote_settings.probe_timeout_seconds
        )
        self.pusher = pusher or DocumentPusher(
            self.remote,
            timeout_seconds=remote_settings.push_timeout_seconds,
            idempotent=remote_settings.idempotent_push
        )
        self.notifier = ChangeNotifier()
        self.sync_engine = SyncEngine(
            store=self.store,
            prober=self.prober,
            pusher=self.pusher,
            remote_collections={
                CollectionKey.DISTRIBUTIONS: remote_settings.distributions_db,
                CollectionKey.GPS_PHOTOS: remote_settings.gps_photos_db,
            },
            notifier=self.notifier
        )

        self.logger.info("Field sync engine initialized", remote=self.remote.base_url)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self, probe: bool = True) -> None:
        """Create local tables and, unless disabled, probe the remote store once."""
        self.db_manager.create_tables()
        if probe:
            await self.prober.probe()

    async def close(self) -> None:
        await self.remote.close()
        self.db_manager.close()
        self.logger.info("Field sync engine closed")

    # Saving

    async def save_distribution(self, payload: PayloadInput, type_tag: Union[TypeTag, str]) -> Dict[str, Any]:
        """Save a MILDA or medicine distribution locally.

        Returns:
            ``{"ok": True, "id": <document id>}``

        Raises:
            ValueError: type tag is not a distribution type
            StorageFailure: the payload is invalid or the record could not be persisted
        """
        tag = TypeTag(type_tag)
        if tag not in COLLECTION_TYPES[CollectionKey.DISTRIBUTIONS]:
            raise ValueError(f"'{tag.value}' is not a distribution type")
        return await self._save(CollectionKey.DISTRIBUTIONS, tag, payload)

    async def save_gps_photo(self, payload: PayloadInput) -> Dict[str, Any]:
        """Save a GPS/photo capture locally."""
        return await self._save(CollectionKey.GPS_PHOTOS, TypeTag.GPS_PHOTO, payload)

    async def _save(self, key: CollectionKey, type_tag: TypeTag, payload: PayloadInput) -> Dict[str, Any]:
        if isinstance(payload, Mapping):
            payload = dict(payload)

        for attempt in range(ID_ATTEMPTS):
            try:
                document = Document(
                    id=new_document_id(type_tag),
                    type_tag=type_tag,
                    created_at=utcnow(),
                    synced=False,
                    payload=payload
                )
            except ValidationError as e:
                raise StorageFailure(f"Invalid {type_tag.value} payload: {e}", key.value) from e

            try:
                await self.store.append(key, document)
                break
            except DuplicateDocumentId:
                if attempt == ID_ATTEMPTS - 1:
                    raise
                self.logger.warning("Generated id collided, retrying", document_id=document.id)

        await self.notifier.publish(ChangeEvent(
            kind=ChangeKind.SAVED,
            collection_key=key.value,
            document_ids=(document.id,)
        ))
        return {"ok": True, "id": document.id}

    # Reading

    async def get_all_distributions(self) -> List[Document]:
        """All distributions in insertion order; empty on any storage error."""
        return await self.store.read(CollectionKey.DISTRIBUTIONS)

    async def get_all_gps_photos(self) -> List[Document]:
        """All GPS/photo captures in insertion order; empty on any storage error."""
        return await self.store.read(CollectionKey.GPS_PHOTOS)

    async def get_distributions_by_type(self, type_tag: Union[TypeTag, str]) -> List[Document]:
        return LocalStore.filter_by_type(await self.get_all_distributions(), type_tag)

    async def get_unsynced_count(self) -> Dict[str, int]:
        distributions = sum(1 for doc in await self.get_all_distributions() if not doc.synced)
        gps_photos = sum(1 for doc in await self.get_all_gps_photos() if not doc.synced)
        return {
            "distributions": distributions,
            "gps_photos": gps_photos,
            "total": distributions + gps_photos
        }

    # Deleting

    async def delete_document(self, collection_key: Union[CollectionKey, str], document_id: str) -> Dict[str, bool]:
        """Delete one document by id. Deleting a missing id is not an error."""
        key = CollectionKey(collection_key)
        removed = await self.store.remove_by_id(key, document_id)
        if removed:
            await self.notifier.publish(ChangeEvent(
                kind=ChangeKind.DELETED,
                collection_key=key.value,
                document_ids=(document_id,)
            ))
        return {"ok": True}

    async def clear_all_data(self) -> None:
        """Drop every local collection (reset/testing)."""
        for key in CollectionKey:
            await self.store.clear(key)
            await self.notifier.publish(ChangeEvent(kind=ChangeKind.CLEARED, collection_key=key.value))
        self.logger.info("All local data cleared")

    # Sync and status

    @log_async_execution_time
    async def manual_sync(self) -> SyncResult:
        """Run one manual sync pass. See ``SyncEngine.manual_sync``."""
        return await self.sync_engine.manual_sync()

    async def connect(self) -> bool:
        """Re-probe the remote store on user request."""
        return await self.prober.probe()

    def get_status(self) -> EngineStatus:
        return EngineStatus(is_online=self.prober.is_online)

    def on_change(self, callback: ChangeCallback) -> Callable[[], None]:
        """Subscribe to save/delete/clear/sync events; returns an unsubscribe function."""
        return self.notifier.subscribe(callback)

    def get_sync_history(self, limit: int = 20) -> List[SyncRunResponse]:
        with self.db_manager.session_scope() as session:
            runs = get_sync_run_repository(session).get_recent(limit)
            return [SyncRunResponse.model_validate(run) for run in runs]
