"""Application bootstrap: builds and owns every store and the coordinator."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from core.config import CacheConfig
from core.events import EventBus
from core.interfaces import ConnectivityMonitor, FeedClient
from fetcher.images import ImagePrefetcher
from storage.blobs import ContentAddressedBlobStore
from storage.bookmarks import SQLiteBookmarkIndex
from storage.sqlite import SQLiteArticleStore
from sync.coordinator import SyncCoordinator


@dataclass
class ReaderApp:
    """Explicitly constructed object graph; close() releases threads."""

    events: EventBus
    blob_store: ContentAddressedBlobStore
    article_store: SQLiteArticleStore
    bookmark_index: SQLiteBookmarkIndex
    image_prefetcher: ImagePrefetcher | None
    coordinator: SyncCoordinator

    def close(self) -> None:
        self.coordinator.close()
        if self.image_prefetcher is not None:
            self.image_prefetcher.close(wait=True)


def build_app(
    db_path: str | Path,
    cache_dir: str | Path,
    feed_client: FeedClient,
    connectivity: ConnectivityMonitor,
    prefetch_images: bool = True,
) -> ReaderApp:
    """
    Wire stores, bookmark index and coordinator around one shared EventBus.

    Images live in `<cache_dir>/ImageCache`; both SQLite-backed stores share
    db_path but own separate tables.
    """
    events = EventBus()
    blob_store = ContentAddressedBlobStore(Path(cache_dir) / CacheConfig.IMAGE_CACHE_DIRNAME)
    article_store = SQLiteArticleStore(db_path, blob_store=blob_store)
    bookmark_index = SQLiteBookmarkIndex(db_path, events=events)
    image_prefetcher = ImagePrefetcher(blob_store) if prefetch_images else None
    coordinator = SyncCoordinator(
        feed_client=feed_client,
        article_store=article_store,
        bookmark_index=bookmark_index,
        connectivity=connectivity,
        events=events,
        image_prefetcher=image_prefetcher,
    )
    return ReaderApp(
        events=events,
        blob_store=blob_store,
        article_store=article_store,
        bookmark_index=bookmark_index,
        image_prefetcher=image_prefetcher,
        coordinator=coordinator,
    )
