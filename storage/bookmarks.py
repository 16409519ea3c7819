"""SQLite-backed bookmark index with change notifications."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from core.errors import PersistenceError
from core.events import BookmarkOperationFailed, BookmarksChanged, EventBus
from core.interfaces import BookmarkIndex
from core.models import Article, BookmarkRecord, utc_now
from core.structured_logging import emit_error_event, emit_json_event
from storage.database import (
    from_db_timestamp,
    initialize_schema,
    sqlite_connection,
    to_db_timestamp,
)


def _row_to_bookmark(row: sqlite3.Row) -> BookmarkRecord:
    return BookmarkRecord(
        id=str(row["id"]),
        title=str(row["title"]),
        author=row["author"],
        content=row["content"],
        url=str(row["url"]),
        image_url=row["image_url"],
        published_at=from_db_timestamp(row["published_at"]),
        bookmarked_at=from_db_timestamp(row["bookmarked_at"]),
    )


class SQLiteBookmarkIndex(BookmarkIndex):
    """
    Authoritative bookmark membership stored in the `bookmarks` table.

    Row exists <=> article is bookmarked; unbookmarking deletes the row.
    Each public mutation publishes exactly one event on `events`: a
    BookmarksChanged with the full resulting list on success, or a
    BookmarkOperationFailed followed by PersistenceError on failure.
    """

    def __init__(
        self,
        db_path: str | Path,
        events: EventBus | None = None,
        initialize: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.db_path = Path(db_path)
        self.events = events or EventBus()
        self._clock = clock or utc_now
        if initialize:
            initialize_schema(self.db_path)

    @contextmanager
    def _connect(self, operation: str) -> Iterator[sqlite3.Connection]:
        try:
            with sqlite_connection(self.db_path) as connection:
                yield connection
        except sqlite3.Error as exc:
            emit_error_event(
                "bookmark_index_error",
                exc,
                component="bookmark_index",
                operation=operation,
            )
            raise PersistenceError(f"{operation} failed: {exc}", operation=operation) from exc

    # ------------------------------------------------------------------
    # Internal mutations (no notification)
    # ------------------------------------------------------------------

    def _insert(self, article: Article) -> bool:
        record = BookmarkRecord.from_article(article, bookmarked_at=self._clock())
        with self._connect("add") as connection:
            rowcount = connection.execute(
                """
                INSERT OR IGNORE INTO bookmarks (
                    id, title, author, content, url, image_url, published_at, bookmarked_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.title,
                    record.author,
                    record.content,
                    record.url,
                    record.image_url,
                    to_db_timestamp(record.published_at),
                    to_db_timestamp(record.bookmarked_at),
                ),
            ).rowcount
        return bool(rowcount)

    def _delete(self, article_id: str) -> bool:
        with self._connect("remove") as connection:
            rowcount = connection.execute(
                "DELETE FROM bookmarks WHERE id = ?",
                (article_id,),
            ).rowcount
        return bool(rowcount)

    def _mutate(
        self,
        operation: str,
        article_id: Optional[str],
        action: Callable[[], object],
    ) -> None:
        """Run one mutation and publish its single success or failure event."""
        try:
            action()
            bookmarks = self.list_all()
        except PersistenceError as exc:
            self.events.publish(
                BookmarkOperationFailed(
                    operation=operation,
                    article_id=article_id,
                    error=str(exc),
                )
            )
            raise
        emit_json_event(
            "bookmark_index_changed",
            component="bookmark_index",
            operation=operation,
            article_id=article_id,
            count=len(bookmarks),
        )
        self.events.publish(BookmarksChanged(bookmarks=bookmarks))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add(self, article: Article) -> None:
        """Bookmark article; already-bookmarked ids are left unchanged."""
        self._mutate("add", article.id, lambda: self._insert(article))

    def remove(self, article_id: str) -> None:
        """Drop the bookmark; absent ids are a no-op."""
        self._mutate("remove", article_id, lambda: self._delete(article_id))

    def toggle(self, article: Article) -> bool:
        state: dict[str, bool] = {}

        def _flip() -> None:
            if self.contains(article.id):
                self._delete(article.id)
                state["bookmarked"] = False
            else:
                self._insert(article)
                state["bookmarked"] = True

        self._mutate("toggle", article.id, _flip)
        return state["bookmarked"]

    def clear(self) -> None:
        def _delete_all() -> None:
            with self._connect("clear") as connection:
                connection.execute("DELETE FROM bookmarks")

        self._mutate("clear", None, _delete_all)

    def contains(self, article_id: str) -> bool:
        with self._connect("contains") as connection:
            row = connection.execute(
                "SELECT 1 FROM bookmarks WHERE id = ? LIMIT 1",
                (article_id,),
            ).fetchone()
        return row is not None

    def ids(self) -> set[str]:
        with self._connect("ids") as connection:
            rows = connection.execute("SELECT id FROM bookmarks").fetchall()
        return {str(row["id"]) for row in rows}

    def bookmarked_at(self, article_id: str) -> Optional[datetime]:
        with self._connect("bookmarked_at") as connection:
            row = connection.execute(
                "SELECT bookmarked_at FROM bookmarks WHERE id = ?",
                (article_id,),
            ).fetchone()
        return from_db_timestamp(row["bookmarked_at"]) if row is not None else None

    def records(self) -> list[BookmarkRecord]:
        with self._connect("list_all") as connection:
            rows = connection.execute(
                """
                SELECT id, title, author, content, url, image_url, published_at, bookmarked_at
                FROM bookmarks
                ORDER BY bookmarked_at DESC, id ASC
                """
            ).fetchall()
        return [_row_to_bookmark(row) for row in rows]

    def list_all(self) -> list[Article]:
        return [record.to_article() for record in self.records()]

    def count(self) -> int:
        with self._connect("count") as connection:
            return int(connection.execute("SELECT COUNT(*) FROM bookmarks").fetchone()[0])
