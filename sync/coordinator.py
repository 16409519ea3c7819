"""
SyncCoordinator: decides between live and cached articles and keeps the
article cache, the bookmark index and the in-memory working set in step.

State machine:
    IDLE -> LOADING -> LOADED(online) | LOADED(offline) | FAILED

- load/refresh while offline      -> cached read      -> LOADED(offline)
- load/refresh while online       -> feed fetch
    - success                     -> dedupe, merge bookmark flags, upsert,
                                     prefetch images  -> LOADED(online)
    - failure                     -> cached read      -> LOADED(offline)
                                     and LoadFailed(network)
- cached read failing             -> FAILED and LoadFailed(persistence)

Every store access and state change runs on the MainContext. Feed fetches
run on a background executor and hand their result back to it.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Optional
from uuid import uuid4

from core.config import CacheConfig
from core.errors import NetworkError, PersistenceError
from core.events import (
    ArticlesUpdated,
    EventBus,
    LoadFailed,
    OfflineStatusChanged,
    SyncStateChanged,
)
from core.interfaces import ArticleStore, BookmarkIndex, ConnectivityMonitor, FeedClient
from core.models import Article, SyncPhase, SyncState
from core.structured_logging import emit_error_event, emit_json_event
from fetcher.images import ImagePrefetcher
from sync.context import MainContext


def dedupe_articles(articles: Iterable[Article]) -> list[Article]:
    """
    Collapse articles sharing an id.

    Last write wins for the content; the position is that of the first
    occurrence, so the result is deterministic for a given input.
    """
    merged: dict[str, Article] = {}
    for article in articles:
        merged[article.id] = article
    return list(merged.values())


def merge_bookmark_flags(articles: Iterable[Article], bookmarked_ids: Optional[set[str]]) -> list[Article]:
    """Set is_bookmarked from the authoritative id set; None leaves flags as they are."""
    if bookmarked_ids is None:
        return list(articles)
    return [
        article.model_copy(update={"is_bookmarked": article.id in bookmarked_ids})
        for article in articles
    ]


def matches_query(article: Article, query: str) -> bool:
    """Case-insensitive substring match on title or author."""
    needle = query.casefold()
    if needle in article.title.casefold():
        return True
    return bool(article.author) and needle in article.author.casefold()


class SyncCoordinator:
    """
    Orchestrates loading, searching and bookmarking for the read side.

    Usage:
        coordinator = SyncCoordinator(feed, article_store, bookmark_index, monitor, events)
        state = coordinator.load_articles().result()
        coordinator.articles  # effective working set
    """

    def __init__(
        self,
        feed_client: FeedClient,
        article_store: ArticleStore,
        bookmark_index: BookmarkIndex,
        connectivity: ConnectivityMonitor,
        events: EventBus | None = None,
        image_prefetcher: ImagePrefetcher | None = None,
        main_context: MainContext | None = None,
    ) -> None:
        self.feed_client = feed_client
        self.article_store = article_store
        self.bookmark_index = bookmark_index
        self.connectivity = connectivity
        self.events = events or EventBus()
        self.image_prefetcher = image_prefetcher

        self._owns_main_context = main_context is None
        self.main_context = main_context or MainContext()
        self._fetch_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="feed-fetch")

        self._lock = threading.Lock()
        self._inflight: Future | None = None
        self._state = SyncState()

        # Replaced wholesale on the main context; readers see a consistent tuple.
        self._all_articles: tuple[Article, ...] = ()
        self._filtered_articles: tuple[Article, ...] = ()
        self._query = ""

        self._last_connected = connectivity.is_connected()
        self._unsubscribe_connectivity = connectivity.on_change(self._connectivity_changed)

    # ------------------------------------------------------------------
    # Read-side accessors (safe from any thread)
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def all_articles(self) -> list[Article]:
        return list(self._all_articles)

    @property
    def filtered_articles(self) -> list[Article]:
        return list(self._filtered_articles)

    @property
    def articles(self) -> list[Article]:
        """The filtered set when non-empty, else the full set."""
        return list(self._filtered_articles or self._all_articles)

    @property
    def query(self) -> str:
        return self._query

    @property
    def is_offline(self) -> bool:
        return not self.connectivity.is_connected()

    # ------------------------------------------------------------------
    # Main-context plumbing
    # ------------------------------------------------------------------

    def _on_main(self, fn: Callable[..., Any], *args: Any) -> Future:
        """Run fn on the main context; inline when already there."""
        if self.main_context.is_current():
            future: Future = Future()
            try:
                future.set_result(fn(*args))
            except Exception as exc:
                future.set_exception(exc)
            return future
        return self.main_context.submit(fn, *args)

    def _set_state(self, state: SyncState) -> None:
        self._state = state
        emit_json_event(
            "sync_state_changed",
            sync_id=state.sync_id,
            component="sync",
            phase=state.phase.value,
            online=state.online,
            error=state.error,
        )
        self.events.publish(SyncStateChanged(state=state))

    def _publish_articles(self) -> None:
        self.events.publish(
            ArticlesUpdated(
                articles=self.articles,
                filtered=bool(self._filtered_articles),
            )
        )

    def _replace_working_set(self, articles: Sequence[Article]) -> None:
        self._all_articles = tuple(articles)
        if self._query:
            self._filtered_articles = tuple(
                article for article in self._all_articles if matches_query(article, self._query)
            )
        else:
            self._filtered_articles = ()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_articles(self) -> Future:
        """
        Load articles from the feed, or from the cache while offline.

        Returns:
            Future resolving to the final SyncState. A call made while a load
            is in flight returns that load's future instead of starting another.

        Called from the main context (an observer callback, say), the load
        begins inline: an offline load is already resolved on return, while
        an online load resolves on a later main-context turn. Main-context
        callers should chain with add_done_callback rather than block on
        result() in that case.
        """
        return self._start_load("load")

    def refresh_articles(self) -> Future:
        """Re-run the fetch; while offline this re-reads the cache without a network attempt."""
        return self._start_load("refresh")

    def _start_load(self, reason: str) -> Future:
        with self._lock:
            if self._inflight is not None:
                emit_json_event(
                    "sync_load_coalesced",
                    sync_id=self._state.sync_id,
                    component="sync",
                    reason=reason,
                )
                return self._inflight
            outcome: Future = Future()
            self._inflight = outcome

        sync_id = str(uuid4())
        if self.main_context.is_current():
            self._begin_load(outcome, sync_id, reason)
            return outcome
        try:
            self.main_context.submit(self._begin_load, outcome, sync_id, reason)
        except RuntimeError as exc:
            self._finish(outcome, exc=exc)
        return outcome

    def _finish(
        self,
        outcome: Future,
        state: SyncState | None = None,
        exc: BaseException | None = None,
    ) -> None:
        with self._lock:
            if self._inflight is outcome:
                self._inflight = None
        if exc is not None:
            outcome.set_exception(exc)
        else:
            outcome.set_result(state)

    def _begin_load(self, outcome: Future, sync_id: str, reason: str) -> None:
        try:
            self._set_state(SyncState(phase=SyncPhase.LOADING, sync_id=sync_id))
            connected = self.connectivity.is_connected()
            emit_json_event(
                "sync_load_started",
                sync_id=sync_id,
                component="sync",
                reason=reason,
                connected=connected,
            )
            if not connected:
                self._finish(outcome, self._serve_cached(sync_id))
                return

            fetch = self._fetch_executor.submit(self.feed_client.fetch_articles, sync_id)
            fetch.add_done_callback(
                lambda done: self._hand_back_fetch(outcome, sync_id, done)
            )
        except Exception as exc:
            emit_error_event("sync_load_error", exc, component="sync", sync_id=sync_id)
            self._finish(outcome, exc=exc)

    def _hand_back_fetch(self, outcome: Future, sync_id: str, fetch: Future) -> None:
        """Runs on the fetch thread; marshals the result onto the main context."""
        try:
            self.main_context.submit(self._complete_fetch, outcome, sync_id, fetch)
        except RuntimeError as exc:
            self._finish(outcome, exc=exc)

    def _complete_fetch(self, outcome: Future, sync_id: str, fetch: Future) -> None:
        try:
            try:
                fetched = fetch.result()
            except Exception as exc:
                error = exc if isinstance(exc, NetworkError) else NetworkError(str(exc))
                emit_error_event("sync_fetch_failed", exc, component="sync", sync_id=sync_id)
                self._finish(outcome, self._serve_cached(sync_id, network_error=error))
                return
            self._finish(outcome, self._apply_fresh(fetched, sync_id))
        except Exception as exc:
            emit_error_event("sync_load_error", exc, component="sync", sync_id=sync_id)
            self._finish(outcome, exc=exc)

    def _read_bookmarked_ids(self, sync_id: str) -> Optional[set[str]]:
        try:
            return self.bookmark_index.ids()
        except PersistenceError as exc:
            emit_error_event("sync_bookmark_merge_skipped", exc, component="sync", sync_id=sync_id)
            return None

    def _apply_fresh(self, fetched: Sequence[Article], sync_id: str) -> SyncState:
        articles = dedupe_articles(fetched)
        articles = merge_bookmark_flags(articles, self._read_bookmarked_ids(sync_id))

        persisted: set[str] = set()
        try:
            persisted = set(self.article_store.upsert(articles).persisted)
        except PersistenceError as exc:
            emit_error_event("sync_cache_write_failed", exc, component="sync", sync_id=sync_id)
        articles = [
            article.model_copy(update={"is_cached": article.id in persisted})
            for article in articles
        ]

        if self.image_prefetcher is not None:
            try:
                self.image_prefetcher.prefetch(
                    (article.image_url for article in articles if article.image_url),
                    sync_id=sync_id,
                )
            except RuntimeError as exc:
                emit_error_event("sync_image_prefetch_skipped", exc, component="sync", sync_id=sync_id)

        self._replace_working_set(articles)
        state = SyncState(phase=SyncPhase.LOADED, online=True, sync_id=sync_id)
        self._set_state(state)
        self._publish_articles()
        emit_json_event(
            "sync_load_completed",
            sync_id=sync_id,
            component="sync",
            source="network",
            fetched=len(fetched),
            unique=len(articles),
            cached=len(persisted),
        )
        return state

    def _serve_cached(self, sync_id: str, network_error: NetworkError | None = None) -> SyncState:
        try:
            cached = self.article_store.get_all()
        except PersistenceError as exc:
            message = str(exc)
            if network_error is not None:
                message = f"{network_error}; cache unavailable: {exc}"
            state = SyncState(phase=SyncPhase.FAILED, error=message, sync_id=sync_id)
            self._set_state(state)
            self.events.publish(
                LoadFailed(error_kind="persistence", message=message, has_cached_data=False)
            )
            return state

        articles = merge_bookmark_flags(dedupe_articles(cached), self._read_bookmarked_ids(sync_id))
        self._replace_working_set(articles)
        state = SyncState(
            phase=SyncPhase.LOADED,
            online=False,
            error=str(network_error) if network_error is not None else None,
            sync_id=sync_id,
        )
        self._set_state(state)
        self._publish_articles()
        if network_error is not None:
            self.events.publish(
                LoadFailed(
                    error_kind="network",
                    message=str(network_error),
                    has_cached_data=bool(articles),
                )
            )
        emit_json_event(
            "sync_load_completed",
            sync_id=sync_id,
            component="sync",
            source="cache",
            unique=len(articles),
        )
        return state

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, query: str) -> Future:
        """Filter the working set by title/author; an empty query clears the filter."""
        return self._on_main(self._apply_search, query)

    def _apply_search(self, query: str) -> list[Article]:
        self._query = query.strip()
        self._replace_working_set(self._all_articles)
        self._publish_articles()
        return self.articles

    # ------------------------------------------------------------------
    # Bookmarks
    # ------------------------------------------------------------------

    def toggle_bookmark(self, article: Article) -> Future:
        """
        Flip the bookmark for article in the index, the cache and the working set.

        This is the only path that writes bookmark state to both stores.

        Returns:
            Future resolving to the updated Article
        """
        return self._on_main(self._apply_toggle, article)

    def _apply_toggle(self, article: Article) -> Article:
        current = next(
            (item for item in self._all_articles if item.id == article.id),
            article,
        )
        bookmarked = self.bookmark_index.toggle(current)

        try:
            self.article_store.set_bookmark_flag(current.id, bookmarked)
        except PersistenceError as exc:
            emit_error_event(
                "sync_bookmark_flag_write_failed",
                exc,
                component="sync",
                article_id=current.id,
            )

        updated = current.model_copy(update={"is_bookmarked": bookmarked})

        def _swap(items: tuple[Article, ...]) -> tuple[Article, ...]:
            return tuple(updated if item.id == updated.id else item for item in items)

        self._all_articles = _swap(self._all_articles)
        self._filtered_articles = _swap(self._filtered_articles)
        self._publish_articles()
        return updated

    def bookmarked_articles(self) -> Future:
        return self._on_main(self.bookmark_index.list_all)

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------

    def cleanup_cache(self, days: int = CacheConfig.DEFAULT_EVICTION_DAYS) -> Future:
        """Evict unbookmarked records older than days; resolves to the count removed."""
        return self._on_main(self.article_store.evict_older_than, days, True)

    def clear_cache(self) -> Future:
        """Drop every cached article and image; bookmarks are kept."""
        return self._on_main(self.article_store.clear)

    def cache_size(self) -> Future:
        return self._on_main(self.article_store.size_estimate)

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    def _connectivity_changed(self, connected: bool) -> None:
        """Monitor callback; may run on any thread."""
        try:
            self.main_context.submit(self._apply_connectivity, connected)
        except RuntimeError as exc:
            emit_error_event("sync_connectivity_dropped", exc, component="sync", connected=connected)

    def _apply_connectivity(self, connected: bool) -> None:
        if connected == self._last_connected:
            return
        self._last_connected = connected
        emit_json_event(
            "sync_offline_status_changed",
            sync_id=self._state.sync_id,
            component="sync",
            is_offline=not connected,
        )
        self.events.publish(
            OfflineStatusChanged(
                is_offline=not connected,
                connection_type=self.connectivity.connection_type,
            )
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Stop observing connectivity and drain in-flight work."""
        self._unsubscribe_connectivity()
        self._fetch_executor.shutdown(wait=True)
        if self._owns_main_context:
            self.main_context.close(wait=True)
