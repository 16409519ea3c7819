"""Core module for reader-cache."""

from core.models import (
    Article,
    BookmarkRecord,
    CachedArticleRecord,
    ConnectionType,
    FetchErrorCode,
    FetchLog,
    SyncPhase,
    SyncState,
    UpsertResult,
)
from core.config import CacheConfig
from core.errors import (
    ArticleValidationError,
    FeedDecodeError,
    NetworkError,
    NotFoundError,
    PersistenceError,
    ReaderCacheError,
)
from core.events import (
    ArticlesUpdated,
    BookmarkOperationFailed,
    BookmarksChanged,
    EventBus,
    LoadFailed,
    OfflineStatusChanged,
    SyncStateChanged,
)

__all__ = [
    "Article",
    "BookmarkRecord",
    "CachedArticleRecord",
    "ConnectionType",
    "FetchErrorCode",
    "FetchLog",
    "SyncPhase",
    "SyncState",
    "UpsertResult",
    "CacheConfig",
    "ArticleValidationError",
    "FeedDecodeError",
    "NetworkError",
    "NotFoundError",
    "PersistenceError",
    "ReaderCacheError",
    "ArticlesUpdated",
    "BookmarkOperationFailed",
    "BookmarksChanged",
    "EventBus",
    "LoadFailed",
    "OfflineStatusChanged",
    "SyncStateChanged",
]
