"""Data models for the field sync engine."""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, Union, Type
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text
from sqlalchemy.orm import declarative_base
from pydantic import BaseModel, Field, ValidationInfo, field_validator


Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TypeTag(str, Enum):
    """Kinds of field record."""
    GPS_PHOTO = "gps_photo"
    MILDA = "milda"
    MEDICINE = "medicine"


class CollectionKey(str, Enum):
    """Persisted collections, each stored in one slot."""
    DISTRIBUTIONS = "distributions"
    GPS_PHOTOS = "gps_photos"


COLLECTION_TYPES: Dict[CollectionKey, frozenset] = {
    CollectionKey.DISTRIBUTIONS: frozenset({TypeTag.MILDA, TypeTag.MEDICINE}),
    CollectionKey.GPS_PHOTOS: frozenset({TypeTag.GPS_PHOTO}),
}


# SQLAlchemy Models (Database Tables)

class CollectionSlotModel(Base):
    """One persisted collection: a JSON-encoded document sequence under a fixed key."""

    __tablename__ = "collection_slots"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<CollectionSlotModel(key='{self.key}', size={len(self.value or '')})>"


class SyncRunModel(Base):
    """Database model for manual sync pass logs."""

    __tablename__ = "sync_runs"

    id = Column(Integer, primary_key=True, index=True)
    started_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    success = Column(Boolean, default=False, nullable=False)

    # Results
    synced_count = Column(Integer, default=0, nullable=False)
    total_unsynced = Column(Integer, default=0, nullable=False)

    error_message = Column(Text, nullable=True)

    def __repr__(self):
        return f"<SyncRunModel(id={self.id}, success={self.success}, synced={self.synced_count})>"


# Pydantic Models (documents and transfer objects)

class PayloadModel(BaseModel):
    """Base for payload parts; fields beyond the declared ones are kept as sent."""

    class Config:
        extra = "allow"


class Coordinates(PayloadModel):
    """GPS position in decimal degrees."""
    latitude: float
    longitude: float


class AdministrativeLocation(PayloadModel):
    """Location picked from the country/region/department/commune hierarchy."""
    country: Optional[str] = None
    region: Optional[str] = None
    department: Optional[str] = None
    commune: Optional[str] = None


class GpsPhotoPayload(PayloadModel):
    """A geotagged photo of a household or site."""
    location: Coordinates
    administrative_location: Optional[AdministrativeLocation] = None
    photo: Optional[str] = None  # URI or base64
    captured_at: Optional[datetime] = None
    extensions: Dict[str, Any] = Field(default_factory=dict)


class MildaDistributionPayload(PayloadModel):
    """Distribution of insecticide-treated nets (MILDA) to a household."""
    household_head: str
    national_id: Optional[str] = None
    contact: Optional[str] = None
    net_count: Optional[int] = None
    distribution_center: Optional[str] = None
    distributor: Optional[str] = None
    distribution_date: Optional[str] = None
    photo: Optional[str] = None
    gps_photo: Optional[GpsPhotoPayload] = None
    submitted_at: Optional[datetime] = None
    extensions: Dict[str, Any] = Field(default_factory=dict)


class MedicineDistributionPayload(PayloadModel):
    """Distribution of medicine to a household."""
    household_head: str
    national_id: Optional[str] = None
    contact: Optional[str] = None
    medicine_type: Optional[str] = None
    quantity: Optional[int] = None
    distribution_center: Optional[str] = None
    distributor: Optional[str] = None
    distribution_date: Optional[str] = None
    photo: Optional[str] = None
    gps_photo: Optional[GpsPhotoPayload] = None
    submitted_at: Optional[datetime] = None
    extensions: Dict[str, Any] = Field(default_factory=dict)


Payload = Union[GpsPhotoPayload, MildaDistributionPayload, MedicineDistributionPayload]

PAYLOAD_TYPES: Dict[TypeTag, Type[BaseModel]] = {
    TypeTag.GPS_PHOTO: GpsPhotoPayload,
    TypeTag.MILDA: MildaDistributionPayload,
    TypeTag.MEDICINE: MedicineDistributionPayload,
}


class Document(BaseModel):
    """A locally stored field record.

    ``id`` is assigned once at save time. ``synced`` only ever moves from
    False to True, after the remote store accepted a push.
    """
    id: str
    type_tag: TypeTag = Field(alias="type")
    created_at: datetime
    synced: bool = False
    payload: Payload

    class Config:
        populate_by_name = True

    @field_validator("payload", mode="before")
    @classmethod
    def _parse_payload(cls, value: Any, info: ValidationInfo) -> Any:
        """Parse the payload with the model selected by the type tag."""
        type_tag = info.data.get("type_tag")
        if type_tag is None:
            # type tag itself failed validation; that error is reported
            return value

        model = PAYLOAD_TYPES[TypeTag(type_tag)]
        if isinstance(value, model):
            return value
        if isinstance(value, BaseModel):
            raise ValueError(
                f"payload {type(value).__name__} does not match type '{TypeTag(type_tag).value}'"
            )
        return model.model_validate(value)

    def to_storage_dict(self) -> Dict[str, Any]:
        """JSON-ready form used in the local store."""
        return self.model_dump(mode="json", by_alias=True)

    def to_remote_body(self) -> Dict[str, Any]:
        """JSON-ready body sent to the remote store.

        The local id travels as ``local_id``; the remote key is chosen by the
        remote store unless the pusher addresses the document by id.
        """
        return {
            "local_id": self.id,
            "type": self.type_tag.value,
            "created_at": self.created_at.isoformat(),
            "payload": self.payload.model_dump(mode="json"),
        }


class SyncRunResponse(BaseModel):
    """Pydantic model for a logged sync pass."""
    id: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    success: bool
    synced_count: int
    total_unsynced: int
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
