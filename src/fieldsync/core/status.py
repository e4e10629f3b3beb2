"""Engine status and change notification."""

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from ..utils.logging import get_logger


class ChangeKind(str, Enum):
    """Points at which listeners are notified."""
    SAVED = "saved"
    DELETED = "deleted"
    CLEARED = "cleared"
    SYNCED = "synced"


@dataclass(frozen=True)
class ChangeEvent:
    """What changed. ``collection_key`` is None for engine-wide events."""

    kind: ChangeKind
    collection_key: Optional[str] = None
    document_ids: Tuple[str, ...] = ()
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EngineStatus:
    """Connectivity snapshot for the UI.

    ``sync_active`` is always False: only manual sync exists. The field is
    kept so callers can rely on it once a continuous mode is added.
    """

    is_online: bool
    sync_active: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {"is_online": self.is_online, "sync_active": self.sync_active}


ChangeCallback = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


class ChangeNotifier:
    """Publish/subscribe channel for collection changes."""

    def __init__(self):
        self._listeners: List[ChangeCallback] = []
        self.logger = get_logger(self.__class__.__name__)

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def publish(self, event: ChangeEvent) -> None:
        """Call every listener in registration order.

        A failing listener is logged and skipped; it cannot fail the
        operation that produced the event.
        """
        for callback in list(self._listeners):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.logger.error(
                    "Change listener failed",
                    kind=event.kind.value,
                    collection=event.collection_key,
                    error=str(e)
                )
