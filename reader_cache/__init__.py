"""reader-cache: offline-aware article cache, bookmarks and sync."""

from reader_cache.app import ReaderApp, build_app

__all__ = ["ReaderApp", "build_app"]
