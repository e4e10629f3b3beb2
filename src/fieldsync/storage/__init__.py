"""Local storage package for the field sync engine."""

from .database import DatabaseManager

from .models import (
    CollectionSlotModel,
    SyncRunModel,
    SyncRunResponse,
    Document,
    TypeTag,
    CollectionKey,
    COLLECTION_TYPES,
    PAYLOAD_TYPES,
    Payload,
    Coordinates,
    AdministrativeLocation,
    GpsPhotoPayload,
    MildaDistributionPayload,
    MedicineDistributionPayload
)

from .operations import (
    SlotRepository,
    SyncRunRepository,
    get_slot_repository,
    get_sync_run_repository
)

from .store import LocalStore, HeldCollection, StorageFailure, DuplicateDocumentId

__all__ = [
    # Database management
    "DatabaseManager",

    # Models
    "CollectionSlotModel",
    "SyncRunModel",
    "SyncRunResponse",
    "Document",
    "TypeTag",
    "CollectionKey",
    "COLLECTION_TYPES",
    "PAYLOAD_TYPES",
    "Payload",
    "Coordinates",
    "AdministrativeLocation",
    "GpsPhotoPayload",
    "MildaDistributionPayload",
    "MedicineDistributionPayload",

    # Repositories
    "SlotRepository",
    "SyncRunRepository",
    "get_slot_repository",
    "get_sync_run_repository",

    # Store
    "LocalStore",
    "HeldCollection",
    "StorageFailure",
    "DuplicateDocumentId"
]
