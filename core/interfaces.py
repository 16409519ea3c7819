"""
Collaborator interfaces for reader-cache.

Defines the contracts the SyncCoordinator is wired against:
feed client → coordinator → article store + bookmark index + blob store

Concrete implementations live in `fetcher/`, `storage/` and
`core/connectivity.py`; tests substitute fakes at these seams.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Optional

from core.models import Article, CachedArticleRecord, ConnectionType, UpsertResult


# ============================================================================
# External collaborators
# ============================================================================

class FeedClient(ABC):
    """
    Remote feed: one HTTP fetch + decode per call.

    Retry policy, if any, belongs here and not in the coordinator.
    """

    @abstractmethod
    def fetch_articles(self, sync_id: str | None = None) -> list[Article]:
        """
        Fetch the current feed.

        sync_id, when given, tags the fetch log lines of this request.

        Returns:
            Valid articles with ids already assigned

        Raises:
            NetworkError: Transport failure, non-200 status or undecodable body
        """
        pass


class ConnectivityMonitor(ABC):
    """
    Reports online/offline state and notifies on transitions.

    Callbacks may arrive on any thread; consumers marshal them onto their
    own execution context.
    """

    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @property
    @abstractmethod
    def connection_type(self) -> ConnectionType:
        pass

    @abstractmethod
    def on_change(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """
        Register a transition callback.

        Returns:
            Callable that unregisters the callback
        """
        pass


# ============================================================================
# Owned stores
# ============================================================================

class BlobStore(ABC):
    """
    Binary asset cache addressed by a digest of the source URL.

    Best-effort: I/O failures are logged and absorbed, never raised.
    """

    @abstractmethod
    def put(self, key: str, data: bytes) -> None:
        """Write data for key unless a blob already exists (first write wins)."""
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        pass

    @abstractmethod
    def contains(self, key: str) -> bool:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete the blob for key; absent blobs are a no-op."""
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def size_bytes(self) -> int:
        pass


class ArticleStore(ABC):
    """
    Durable cache of fetched articles for offline reading.

    Responsibilities:
    - Upsert by id (cached_at preserved across updates)
    - Read-side queries (all by cached_at, bookmarked by bookmarked_at)
    - Removal and age-based eviction, including blob cleanup
    """

    @abstractmethod
    def upsert(self, articles: Sequence[Article]) -> UpsertResult:
        """
        Insert or update each article.

        A failure on one record is logged and does not abort the others.
        """
        pass

    @abstractmethod
    def get(self, article_id: str) -> Optional[CachedArticleRecord]:
        pass

    @abstractmethod
    def get_all(self) -> list[Article]:
        """All cached articles, newest cached_at first."""
        pass

    @abstractmethod
    def get_bookmarked(self) -> list[Article]:
        """Articles whose cached flag is set, newest bookmarked_at first."""
        pass

    @abstractmethod
    def is_cached(self, article_id: str) -> bool:
        pass

    @abstractmethod
    def set_bookmark_flag(self, article_id: str, flag: bool) -> bool:
        """
        Update the cached bookmark flag.

        Returns:
            True when a record was updated, False when the id is absent
        """
        pass

    @abstractmethod
    def remove(self, article_id: str) -> bool:
        pass

    @abstractmethod
    def evict_older_than(self, days: int, exclude_bookmarked: bool = True) -> int:
        """
        Delete records cached before now - days.

        Returns:
            Number of records removed
        """
        pass

    @abstractmethod
    def clear(self) -> int:
        pass

    @abstractmethod
    def count(self) -> int:
        pass

    @abstractmethod
    def size_estimate(self) -> int:
        """Heuristic total bytes (per-record estimate + blob store size)."""
        pass


class BookmarkIndex(ABC):
    """
    Authoritative set of bookmarked articles.

    Every mutating call publishes exactly one BookmarksChanged event with the
    complete resulting list, or a BookmarkOperationFailed event on failure.
    """

    @abstractmethod
    def add(self, article: Article) -> None:
        pass

    @abstractmethod
    def remove(self, article_id: str) -> None:
        pass

    @abstractmethod
    def toggle(self, article: Article) -> bool:
        """
        Flip membership for article.

        Returns:
            True when the article is bookmarked after the call
        """
        pass

    @abstractmethod
    def contains(self, article_id: str) -> bool:
        pass

    @abstractmethod
    def ids(self) -> set[str]:
        pass

    @abstractmethod
    def bookmarked_at(self, article_id: str) -> Optional[datetime]:
        pass

    @abstractmethod
    def list_all(self) -> list[Article]:
        """Bookmarked articles, newest bookmarked_at first."""
        pass

    @abstractmethod
    def count(self) -> int:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass
