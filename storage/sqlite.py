"""SQLite persistence for the offline article cache."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Iterable, Sequence
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterator, Optional

from core.config import CacheConfig
from core.errors import ArticleValidationError, PersistenceError
from core.interfaces import ArticleStore, BlobStore
from core.models import Article, CachedArticleRecord, UpsertResult, utc_now, validate_article
from core.structured_logging import emit_error_event, emit_json_event
from storage.database import (
    from_db_flag,
    from_db_timestamp,
    initialize_schema,
    sqlite_connection,
    to_db_flag,
    to_db_timestamp,
)

_RECORD_COLUMNS = """
    id, title, author, published_at, content, image_url, url,
    is_bookmarked, is_cached, cached_at, bookmarked_at
"""


def format_byte_count(size: int) -> str:
    """Render a byte count for humans using decimal (file-style) units."""
    if size < 1000:
        return f"{size} bytes"
    value = float(size)
    for unit in ("KB", "MB", "GB", "TB"):
        value /= 1000.0
        if value < 1000.0 or unit == "TB":
            return f"{value:.1f} {unit}"
    return f"{size} bytes"


def _row_to_record(row: sqlite3.Row) -> CachedArticleRecord:
    return CachedArticleRecord(
        id=str(row["id"]),
        title=str(row["title"]),
        author=row["author"],
        published_at=from_db_timestamp(row["published_at"]),
        content=row["content"],
        image_url=row["image_url"],
        url=str(row["url"]),
        is_bookmarked=from_db_flag(row["is_bookmarked"]),
        is_cached=True,
        cached_at=from_db_timestamp(row["cached_at"]),
        bookmarked_at=from_db_timestamp(row["bookmarked_at"]),
    )


class SQLiteArticleStore(ArticleStore):
    """Persist cached articles to SQLite and keep their image blobs in step."""

    def __init__(
        self,
        db_path: str | Path,
        blob_store: BlobStore | None = None,
        initialize: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize store and optionally apply pending schema migrations."""
        self.db_path = Path(db_path)
        self.blob_store = blob_store
        self._clock = clock or utc_now
        if initialize:
            initialize_schema(self.db_path)

    @contextmanager
    def _connect(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Open a connection, translating sqlite errors into PersistenceError."""
        try:
            with sqlite_connection(self.db_path) as connection:
                yield connection
        except sqlite3.Error as exc:
            emit_error_event(
                "article_store_error",
                exc,
                component="article_store",
                operation=operation,
            )
            raise PersistenceError(f"{operation} failed: {exc}", operation=operation) from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(self, articles: Sequence[Article]) -> UpsertResult:
        """
        Insert or update each article keyed by id.

        - Every article is re-validated; invalid ones are rejected, never stored
        - New ids get cached_at = now
        - Existing ids keep cached_at; every other article field is replaced
        - An unset (None) bookmark flag leaves the stored flag untouched
        - A replaced image URL releases its blob once nothing references it
        - A failing record is logged and skipped; siblings still persist
        """
        result = UpsertResult()
        now = to_db_timestamp(self._clock())
        replaced_images: set[str] = set()

        with self._connect("upsert") as connection:
            for candidate in articles:
                try:
                    article = validate_article(candidate)
                except ArticleValidationError as exc:
                    article_id = str(getattr(candidate, "id", "") or "")
                    result.failed.append(article_id)
                    emit_error_event(
                        "article_store_upsert_record_rejected",
                        exc,
                        component="article_store",
                        article_id=article_id,
                    )
                    continue

                try:
                    existing = connection.execute(
                        "SELECT image_url FROM cached_articles WHERE id = ?",
                        (article.id,),
                    ).fetchone()
                    if existing is None:
                        connection.execute(
                            """
                            INSERT INTO cached_articles (
                                id, title, author, published_at, content, image_url, url,
                                is_bookmarked, is_cached, cached_at, bookmarked_at, updated_at
                            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?, ?)
                            """,
                            (
                                article.id,
                                article.title,
                                article.author,
                                to_db_timestamp(article.published_at),
                                article.content,
                                article.image_url,
                                article.url,
                                to_db_flag(article.is_bookmarked),
                                now,
                                now if article.is_bookmarked else None,
                                now,
                            ),
                        )
                        result.inserted.append(article.id)
                    else:
                        connection.execute(
                            """
                            UPDATE cached_articles
                            SET
                                title = ?,
                                author = ?,
                                published_at = ?,
                                content = ?,
                                image_url = ?,
                                url = ?,
                                is_bookmarked = COALESCE(?, is_bookmarked),
                                is_cached = 1,
                                updated_at = ?
                            WHERE id = ?
                            """,
                            (
                                article.title,
                                article.author,
                                to_db_timestamp(article.published_at),
                                article.content,
                                article.image_url,
                                article.url,
                                to_db_flag(article.is_bookmarked),
                                now,
                                article.id,
                            ),
                        )
                        previous_image = existing["image_url"]
                        if previous_image and previous_image != article.image_url:
                            replaced_images.add(str(previous_image))
                        result.updated.append(article.id)
                except sqlite3.Error as exc:
                    result.failed.append(article.id)
                    emit_error_event(
                        "article_store_upsert_record_error",
                        exc,
                        component="article_store",
                        article_id=article.id,
                    )
            orphaned = self._unreferenced_images(connection, replaced_images)
        self._release_blobs(orphaned)

        emit_json_event(
            "article_store_upserted",
            component="article_store",
            inserted=len(result.inserted),
            updated=len(result.updated),
            failed=len(result.failed),
        )
        return result

    def set_bookmark_flag(self, article_id: str, flag: bool) -> bool:
        """Update the cached flag; bookmarked_at is stamped only when turning on."""
        with self._connect("set_bookmark_flag") as connection:
            if flag:
                rowcount = connection.execute(
                    """
                    UPDATE cached_articles
                    SET is_bookmarked = 1, bookmarked_at = ?
                    WHERE id = ?
                    """,
                    (to_db_timestamp(self._clock()), article_id),
                ).rowcount
            else:
                rowcount = connection.execute(
                    "UPDATE cached_articles SET is_bookmarked = 0 WHERE id = ?",
                    (article_id,),
                ).rowcount
        return bool(rowcount)

    def _delete_records(self, connection: sqlite3.Connection, rows: Iterable[sqlite3.Row]) -> list[str]:
        """
        Delete the given rows and return image URLs no longer referenced.

        Blob removal itself happens after commit so a rolled-back delete never
        loses an image.
        """
        image_urls: set[str] = set()
        for row in rows:
            connection.execute("DELETE FROM cached_articles WHERE id = ?", (row["id"],))
            if row["image_url"]:
                image_urls.add(str(row["image_url"]))

        return self._unreferenced_images(connection, image_urls)

    @staticmethod
    def _unreferenced_images(connection: sqlite3.Connection, image_urls: Iterable[str]) -> list[str]:
        orphaned: list[str] = []
        for image_url in sorted(image_urls):
            still_used = connection.execute(
                "SELECT 1 FROM cached_articles WHERE image_url = ? LIMIT 1",
                (image_url,),
            ).fetchone()
            if still_used is None:
                orphaned.append(image_url)
        return orphaned

    def _release_blobs(self, image_urls: Iterable[str]) -> None:
        if self.blob_store is None:
            return
        for image_url in image_urls:
            self.blob_store.remove(image_url)

    def remove(self, article_id: str) -> bool:
        """Delete one record and its image blob; absent ids are a no-op."""
        with self._connect("remove") as connection:
            rows = connection.execute(
                "SELECT id, image_url FROM cached_articles WHERE id = ?",
                (article_id,),
            ).fetchall()
            orphaned = self._delete_records(connection, rows)
        self._release_blobs(orphaned)
        return bool(rows)

    def evict_older_than(
        self,
        days: int = CacheConfig.DEFAULT_EVICTION_DAYS,
        exclude_bookmarked: bool = True,
    ) -> int:
        """Delete records cached before the cutoff; bookmarked ones are kept when asked."""
        if days < 0:
            raise ValueError("days must be >= 0")
        cutoff = to_db_timestamp(self._clock() - timedelta(days=days))

        query = "SELECT id, image_url FROM cached_articles WHERE cached_at < ?"
        if exclude_bookmarked:
            query += " AND COALESCE(is_bookmarked, 0) = 0"

        with self._connect("evict_older_than") as connection:
            rows = connection.execute(query, (cutoff,)).fetchall()
            orphaned = self._delete_records(connection, rows)
        self._release_blobs(orphaned)

        if rows:
            emit_json_event(
                "article_store_evicted",
                component="article_store",
                removed=len(rows),
                days=days,
                exclude_bookmarked=exclude_bookmarked,
            )
        return len(rows)

    def clear(self) -> int:
        """Delete every cached record and every image blob."""
        with self._connect("clear") as connection:
            removed = connection.execute("DELETE FROM cached_articles").rowcount
        if self.blob_store is not None:
            self.blob_store.clear()
        emit_json_event("article_store_cleared", component="article_store", removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, article_id: str) -> Optional[CachedArticleRecord]:
        with self._connect("get") as connection:
            row = connection.execute(
                f"SELECT {_RECORD_COLUMNS} FROM cached_articles WHERE id = ?",
                (article_id,),
            ).fetchone()
        return _row_to_record(row) if row is not None else None

    def get_records(self) -> list[CachedArticleRecord]:
        """All records with cache metadata, newest cached_at first."""
        with self._connect("get_records") as connection:
            rows = connection.execute(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM cached_articles
                ORDER BY cached_at DESC, rowid ASC
                """
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def get_all(self) -> list[Article]:
        return [record.to_article() for record in self.get_records()]

    def get_bookmarked(self) -> list[Article]:
        with self._connect("get_bookmarked") as connection:
            rows = connection.execute(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM cached_articles
                WHERE is_bookmarked = 1
                ORDER BY bookmarked_at DESC, id ASC
                """
            ).fetchall()
        return [_row_to_record(row).to_article() for row in rows]

    def is_cached(self, article_id: str) -> bool:
        with self._connect("is_cached") as connection:
            row = connection.execute(
                "SELECT 1 FROM cached_articles WHERE id = ? LIMIT 1",
                (article_id,),
            ).fetchone()
        return row is not None

    def count(self) -> int:
        with self._connect("count") as connection:
            return int(connection.execute("SELECT COUNT(*) FROM cached_articles").fetchone()[0])

    def size_estimate(self) -> int:
        """Fixed per-record text estimate plus the actual blob store size."""
        total = self.count() * CacheConfig.ESTIMATED_RECORD_BYTES
        if self.blob_store is not None:
            total += self.blob_store.size_bytes()
        return total
