"""Database operations and repository classes."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from .models import CollectionSlotModel, SyncRunModel, utcnow
from ..utils.logging import get_logger


logger = get_logger("storage.operations")


class SlotRepository:
    """Repository for raw collection slots."""

    def __init__(self, session: Session):
        self.session = session

    def get_value(self, key: str) -> Optional[str]:
        """Get the stored text for a slot, or None if the slot is absent."""
        slot = self.session.get(CollectionSlotModel, key)
        return slot.value if slot else None

    def set_value(self, key: str, value: str) -> CollectionSlotModel:
        """Create or replace a slot."""
        slot = self.session.get(CollectionSlotModel, key)
        if slot is None:
            slot = CollectionSlotModel(key=key, value=value)
            self.session.add(slot)
        else:
            slot.value = value
            slot.updated_at = utcnow()

        self.session.flush()
        return slot

    def delete(self, key: str) -> bool:
        """Delete a slot entirely."""
        slot = self.session.get(CollectionSlotModel, key)
        if not slot:
            return False

        self.session.delete(slot)
        return True


class SyncRunRepository:
    """Repository for sync run log operations."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, started_at: Optional[datetime] = None) -> SyncRunModel:
        """Open a new sync run log."""
        sync_run = SyncRunModel(started_at=started_at or utcnow())

        self.session.add(sync_run)
        self.session.flush()

        logger.debug("Sync run created", sync_run_id=sync_run.id)

        return sync_run

    def complete(
        self,
        sync_run_id: int,
        success: bool,
        synced_count: int,
        total_unsynced: int,
        error_message: Optional[str] = None
    ) -> Optional[SyncRunModel]:
        """Record the outcome of a sync run."""
        sync_run = self.session.get(SyncRunModel, sync_run_id)
        if not sync_run:
            return None

        sync_run.completed_at = utcnow()
        sync_run.success = success
        sync_run.synced_count = synced_count
        sync_run.total_unsynced = total_unsynced
        sync_run.error_message = error_message

        logger.info(
            "Sync run completed",
            sync_run_id=sync_run_id,
            success=success,
            synced_count=synced_count,
            total_unsynced=total_unsynced
        )

        return sync_run

    def get_recent(self, limit: int = 20) -> List[SyncRunModel]:
        """Get the most recent sync runs, newest first."""
        return self.session.query(SyncRunModel).order_by(
            desc(SyncRunModel.started_at), desc(SyncRunModel.id)
        ).limit(limit).all()


# Repository factory functions

def get_slot_repository(session: Session) -> SlotRepository:
    """Get slot repository instance."""
    return SlotRepository(session)


def get_sync_run_repository(session: Session) -> SyncRunRepository:
    """Get sync run repository instance."""
    return SyncRunRepository(session)
