"""Local document store: durable JSON document sequences keyed by collection."""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .database import DatabaseManager
from .models import CollectionKey, Document, TypeTag
from .operations import get_slot_repository
from ..utils.logging import get_logger


logger = get_logger("storage.store")

SlotKey = Union[CollectionKey, str]


class StorageFailure(Exception):
    """Raised when local persistence or (de)serialization fails."""

    def __init__(self, message: str, collection_key: Optional[str] = None):
        super().__init__(message)
        self.collection_key = collection_key


class DuplicateDocumentId(ValueError):
    """Raised when appending a document whose id is already in the collection."""
    pass


class HeldCollection:
    """Unlocked read/write access to one collection while its lock is held."""

    def __init__(self, store: "LocalStore", key: str):
        self._store = store
        self.key = key

    def read(self) -> List[Document]:
        return self._store._read(self.key, strict=False)

    def write(self, documents: Iterable[Document]) -> None:
        self._store._write(self.key, documents)


class LocalStore:
    """Key -> ordered document sequence, persisted as one JSON slot per key.

    Every write replaces the whole sequence. Mutating operations on a key
    run under that key's lock, so at most one read-modify-write cycle is in
    progress per collection.
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self._locks: Dict[str, asyncio.Lock] = {}

    @staticmethod
    def _slot_key(key: SlotKey) -> str:
        if isinstance(key, CollectionKey):
            return key.value
        if not key:
            raise ValueError("collection key must not be empty")
        return key

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    # Public operations

    async def read(self, key: SlotKey) -> List[Document]:
        """Return the stored sequence; empty if absent or undecodable."""
        return self._read(self._slot_key(key), strict=False)

    async def write(self, key: SlotKey, documents: Iterable[Document]) -> None:
        """Replace the entire stored sequence."""
        slot_key = self._slot_key(key)
        async with self._lock_for(slot_key):
            self._write(slot_key, documents)

    async def append(self, key: SlotKey, document: Document) -> Document:
        """Add a document at the end of the sequence.

        Raises:
            DuplicateDocumentId: a document with the same id is already stored
            StorageFailure: the slot could not be read or written
        """
        slot_key = self._slot_key(key)
        async with self._lock_for(slot_key):
            documents = self._read(slot_key, strict=True)
            if any(doc.id == document.id for doc in documents):
                raise DuplicateDocumentId(f"Document '{document.id}' already exists in '{slot_key}'")
            documents.append(document)
            self._write(slot_key, documents)

        logger.info("Document saved locally", collection=slot_key, document_id=document.id)
        return document

    async def remove_by_id(self, key: SlotKey, document_id: str) -> bool:
        """Drop the document with this id. Returns whether anything was removed."""
        slot_key = self._slot_key(key)
        async with self._lock_for(slot_key):
            documents = self._read(slot_key, strict=True)
            remaining = [doc for doc in documents if doc.id != document_id]
            removed = len(remaining) != len(documents)
            if removed:
                self._write(slot_key, remaining)

        logger.info(
            "Document deleted locally" if removed else "Document not found for deletion",
            collection=slot_key,
            document_id=document_id
        )
        return removed

    async def clear(self, key: SlotKey) -> bool:
        """Delete the persisted slot entirely."""
        slot_key = self._slot_key(key)
        async with self._lock_for(slot_key):
            try:
                with self.db_manager.session_scope() as session:
                    deleted = get_slot_repository(session).delete(slot_key)
            except SQLAlchemyError as e:
                raise StorageFailure(f"Failed to clear '{slot_key}': {e}", slot_key) from e

        logger.info("Collection cleared", collection=slot_key, existed=deleted)
        return deleted

    @asynccontextmanager
    async def hold(self, key: SlotKey) -> AsyncIterator[HeldCollection]:
        """Hold a collection's lock across several reads and writes."""
        slot_key = self._slot_key(key)
        async with self._lock_for(slot_key):
            yield HeldCollection(self, slot_key)

    @staticmethod
    def filter_by_type(documents: Iterable[Document], type_tag: Union[TypeTag, str]) -> List[Document]:
        """Documents of one type, in stored order."""
        tag = TypeTag(type_tag)
        return [doc for doc in documents if doc.type_tag == tag]

    # Internals

    def _load_raw(self, key: str, strict: bool) -> Optional[str]:
        try:
            with self.db_manager.session_scope() as session:
                return get_slot_repository(session).get_value(key)
        except SQLAlchemyError as e:
            if strict:
                raise StorageFailure(f"Failed to load '{key}': {e}", key) from e
            logger.error("Failed to load collection", collection=key, error=str(e))
            return None

    def _read(self, key: str, strict: bool) -> List[Document]:
        raw = self._load_raw(key, strict)
        if raw is None:
            return []

        try:
            return self._decode(raw)
        except (ValueError, TypeError, ValidationError) as e:
            if strict:
                # Never overwrite a slot we could not decode
                raise StorageFailure(f"Stored collection '{key}' is unreadable: {e}", key) from e
            logger.error("Failed to decode collection", collection=key, error=str(e))
            return []

    def _write(self, key: str, documents: Iterable[Document]) -> None:
        try:
            raw = self._encode(documents)
        except (ValueError, TypeError) as e:
            raise StorageFailure(f"Failed to serialize '{key}': {e}", key) from e

        try:
            with self.db_manager.session_scope() as session:
                get_slot_repository(session).set_value(key, raw)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Failed to write '{key}': {e}", key) from e

    @staticmethod
    def _decode(raw: str) -> List[Document]:
        data = json.loads(raw)
        if not isinstance(data, list):
            raise TypeError(f"expected a JSON array, got {type(data).__name__}")
        return [Document.model_validate(item) for item in data]

    @staticmethod
    def _encode(documents: Iterable[Document]) -> str:
        return json.dumps([doc.to_storage_dict() for doc in documents], ensure_ascii=False)
