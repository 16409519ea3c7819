"""
Typed change notifications.

The event set is closed: observers receive one of the models in SyncEvent
and can match on its class or its `kind` literal.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from core.models import Article, ConnectionType, SyncState
from core.structured_logging import emit_error_event


class ArticlesUpdated(BaseModel):
    """The visible article collection changed (full list, not a diff)."""
    kind: Literal["articles_updated"] = "articles_updated"
    articles: list[Article] = Field(default_factory=list)
    filtered: bool = False


class BookmarksChanged(BaseModel):
    """Bookmark membership changed; carries the complete resulting list."""
    kind: Literal["bookmarks_changed"] = "bookmarks_changed"
    bookmarks: list[Article] = Field(default_factory=list)


class BookmarkOperationFailed(BaseModel):
    """A bookmark mutation could not be persisted."""
    kind: Literal["bookmark_operation_failed"] = "bookmark_operation_failed"
    operation: str
    article_id: Optional[str] = None
    error: str


class OfflineStatusChanged(BaseModel):
    """Connectivity flipped between online and offline."""
    kind: Literal["offline_status_changed"] = "offline_status_changed"
    is_offline: bool
    connection_type: ConnectionType = ConnectionType.UNKNOWN


class LoadFailed(BaseModel):
    """
    A load could not reach fresh data.

    error_kind is "network" when the feed failed (cached data may still
    have been served) or "persistence" when the local store failed too.
    """
    kind: Literal["load_failed"] = "load_failed"
    error_kind: Literal["network", "persistence"]
    message: str
    has_cached_data: bool = False


class SyncStateChanged(BaseModel):
    """The coordinator moved to a new state."""
    kind: Literal["sync_state_changed"] = "sync_state_changed"
    state: SyncState


SyncEvent = Union[
    ArticlesUpdated,
    BookmarksChanged,
    BookmarkOperationFailed,
    OfflineStatusChanged,
    LoadFailed,
    SyncStateChanged,
]

Observer = Callable[[SyncEvent], None]


class EventBus:
    """Synchronous fan-out of SyncEvent values to registered observers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._observers: list[Observer] = []

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer and return a callable that unregisters it."""
        with self._lock:
            self._observers.append(observer)

        def _unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe

    def publish(self, event: SyncEvent) -> None:
        """Deliver one event to every observer on the calling thread."""
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(event)
            except Exception as exc:
                emit_error_event(
                    "event_observer_error",
                    exc,
                    component="events",
                    event_kind=event.kind,
                )

    def __len__(self) -> int:
        with self._lock:
            return len(self._observers)
