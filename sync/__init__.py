"""Sync layer: coordinator state machine and its execution context."""

from sync.context import MainContext
from sync.coordinator import SyncCoordinator, dedupe_articles, matches_query, merge_bookmark_flags

__all__ = [
    "MainContext",
    "SyncCoordinator",
    "dedupe_articles",
    "matches_query",
    "merge_bookmark_flags",
]
