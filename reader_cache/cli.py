"""Minimal CLI entrypoint for reader-cache."""

from __future__ import annotations

import argparse
import os
from typing import Any
from typing import Sequence
from uuid import uuid4

from core.config import CacheConfig
from core.connectivity import ManualConnectivityMonitor, SocketProbeMonitor
from core.interfaces import ConnectivityMonitor
from core.models import Article, SyncPhase
from core.structured_logging import emit_json_event
from fetcher.feed import NewsApiFeedClient
from reader_cache.app import ReaderApp, build_app
from storage.sqlite import format_byte_count

DEFAULT_CACHE_DIR = ".reader_cache"


def _emit_cli_event(
    event_type: str,
    *,
    sync_id: str | None,
    command: str,
    **payload: Any,
) -> str:
    """Emit one structured CLI event line with standard fields."""
    return emit_json_event(
        event_type,
        sync_id=sync_id,
        command=command,
        **payload,
    )


def _article_payload(article: Article) -> dict[str, Any]:
    return article.model_dump(mode="json")


def _resolve_api_key(args: argparse.Namespace) -> str:
    return str(getattr(args, "api_key", None) or os.environ.get(CacheConfig.API_KEY_ENV_VAR, ""))


def _open_app(
    args: argparse.Namespace,
    connectivity: ConnectivityMonitor | None = None,
    prefetch_images: bool = False,
) -> ReaderApp:
    """Build the app; commands other than sync run against the cache only."""
    return build_app(
        db_path=args.db,
        cache_dir=args.cache_dir,
        feed_client=NewsApiFeedClient(api_key=_resolve_api_key(args)),
        connectivity=connectivity or ManualConnectivityMonitor(connected=False),
        prefetch_images=prefetch_images,
    )


def _cmd_sync(args: argparse.Namespace) -> int:
    """Load articles from the feed (or the cache when offline) and persist them."""
    if args.offline:
        connectivity: ConnectivityMonitor = ManualConnectivityMonitor(connected=False)
    else:
        if not _resolve_api_key(args):
            raise ValueError(
                f"An API key is required: pass --api-key or set {CacheConfig.API_KEY_ENV_VAR}"
            )
        probe = SocketProbeMonitor()
        probe.refresh()
        connectivity = probe

    app = _open_app(args, connectivity=connectivity, prefetch_images=not args.no_images)
    try:
        state = app.coordinator.load_articles().result()
        articles = app.coordinator.articles
    finally:
        app.close()

    _emit_cli_event(
        "cli_sync_completed",
        sync_id=state.sync_id,
        command="sync",
        db=str(args.db),
        phase=state.phase.value,
        online=state.online,
        articles=len(articles),
        error=state.error,
    )
    return 0 if state.phase == SyncPhase.LOADED and state.error is None else 1


def _cmd_list(args: argparse.Namespace) -> int:
    """Print cached (or bookmarked) articles as JSON lines."""
    app = _open_app(args)
    try:
        if args.bookmarked:
            articles = app.coordinator.bookmarked_articles().result()
        else:
            app.coordinator.load_articles().result()
            articles = app.coordinator.articles
    finally:
        app.close()

    for article in articles:
        _emit_cli_event("cli_article", sync_id=None, command="list", article=_article_payload(article))
    _emit_cli_event(
        "cli_list_completed",
        sync_id=None,
        command="list",
        bookmarked=args.bookmarked,
        count=len(articles),
    )
    return 0


def _cmd_search(args: argparse.Namespace) -> int:
    """Filter cached articles by title/author substring."""
    app = _open_app(args)
    try:
        state = app.coordinator.load_articles().result()
        matches = app.coordinator.search(args.query).result()
        filtered = bool(app.coordinator.filtered_articles)
    finally:
        app.close()

    for article in matches:
        _emit_cli_event("cli_article", sync_id=state.sync_id, command="search", article=_article_payload(article))
    _emit_cli_event(
        "cli_search_completed",
        sync_id=state.sync_id,
        command="search",
        query=args.query,
        filtered=filtered,
        count=len(matches),
    )
    return 0


def _cmd_bookmark(args: argparse.Namespace) -> int:
    """Toggle the bookmark for one cached or bookmarked article id."""
    app = _open_app(args)
    try:
        app.coordinator.load_articles().result()
        article = next(
            (item for item in app.coordinator.all_articles if item.id == args.article_id),
            None,
        )
        if article is None:
            article = next(
                (item for item in app.bookmark_index.list_all() if item.id == args.article_id),
                None,
            )
        if article is None:
            raise ValueError(f"Article not found in cache or bookmarks: {args.article_id}")
        updated = app.coordinator.toggle_bookmark(article).result()
    finally:
        app.close()

    _emit_cli_event(
        "cli_bookmark_completed",
        sync_id=None,
        command="bookmark",
        article_id=updated.id,
        is_bookmarked=updated.is_bookmarked,
    )
    return 0


def _cmd_cleanup(args: argparse.Namespace) -> int:
    """Evict unbookmarked articles cached more than --days ago."""
    app = _open_app(args)
    try:
        removed = app.coordinator.cleanup_cache(args.days).result()
    finally:
        app.close()
    _emit_cli_event("cli_cleanup_completed", sync_id=None, command="cleanup", days=args.days, removed=removed)
    return 0


def _cmd_clear(args: argparse.Namespace) -> int:
    """Drop every cached article and image (bookmarks are kept)."""
    app = _open_app(args)
    try:
        removed = app.coordinator.clear_cache().result()
    finally:
        app.close()
    _emit_cli_event("cli_clear_completed", sync_id=None, command="clear", removed=removed)
    return 0


def _cmd_size(args: argparse.Namespace) -> int:
    """Report the estimated cache footprint."""
    app = _open_app(args)
    try:
        size = app.coordinator.cache_size().result()
        bookmarks = app.bookmark_index.count()
        cached = app.article_store.count()
    finally:
        app.close()
    _emit_cli_event(
        "cli_size_completed",
        sync_id=None,
        command="size",
        bytes=size,
        display=format_byte_count(size),
        cached_articles=cached,
        bookmarks=bookmarks,
    )
    return 0


def _add_storage_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--db", default=CacheConfig.DEFAULT_DB_FILENAME, help="SQLite DB path")
    parser.add_argument("--cache-dir", default=DEFAULT_CACHE_DIR, help="Directory for cached images")


def build_parser() -> argparse.ArgumentParser:
    """Create argument parser for the reader-cache CLI."""
    parser = argparse.ArgumentParser(
        prog="reader-cache",
        description="Offline-aware article cache and bookmark store",
    )
    parser.add_argument("--version", action="version", version="reader-cache 0.1.0")

    subparsers = parser.add_subparsers(dest="command")

    sync_parser = subparsers.add_parser("sync", help="Fetch the feed and cache it")
    _add_storage_args(sync_parser)
    sync_parser.add_argument("--api-key", help=f"Feed API key (default: ${CacheConfig.API_KEY_ENV_VAR})")
    sync_parser.add_argument("--offline", action="store_true", help="Serve from cache without a network attempt")
    sync_parser.add_argument("--no-images", action="store_true", help="Skip image caching")
    sync_parser.set_defaults(func=_cmd_sync)

    list_parser = subparsers.add_parser("list", help="List cached articles")
    _add_storage_args(list_parser)
    list_parser.add_argument("--bookmarked", action="store_true", help="List bookmarks instead")
    list_parser.set_defaults(func=_cmd_list)

    search_parser = subparsers.add_parser("search", help="Search cached articles by title/author")
    _add_storage_args(search_parser)
    search_parser.add_argument("query", help="Case-insensitive substring")
    search_parser.set_defaults(func=_cmd_search)

    bookmark_parser = subparsers.add_parser("bookmark", help="Toggle a bookmark")
    _add_storage_args(bookmark_parser)
    bookmark_parser.add_argument("article_id", help="Article ID")
    bookmark_parser.set_defaults(func=_cmd_bookmark)

    cleanup_parser = subparsers.add_parser("cleanup", help="Evict old unbookmarked articles")
    _add_storage_args(cleanup_parser)
    cleanup_parser.add_argument(
        "--days",
        type=int,
        default=CacheConfig.DEFAULT_EVICTION_DAYS,
        help="Age threshold in days",
    )
    cleanup_parser.set_defaults(func=_cmd_cleanup)

    clear_parser = subparsers.add_parser("clear", help="Clear cached articles and images")
    _add_storage_args(clear_parser)
    clear_parser.set_defaults(func=_cmd_clear)

    size_parser = subparsers.add_parser("size", help="Show estimated cache size")
    _add_storage_args(size_parser)
    size_parser.set_defaults(func=_cmd_size)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Execute CLI and return process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 0

    try:
        return int(args.func(args))
    except Exception as exc:
        _emit_cli_event(
            "cli_error",
            sync_id=str(uuid4()),
            command=str(getattr(args, "command", "unknown")),
            level="error",
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return 1


def cli() -> None:
    """Console-script entrypoint."""
    raise SystemExit(main())


if __name__ == "__main__":
    raise SystemExit(main())
