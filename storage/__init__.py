"""Storage module."""

from storage.blobs import ContentAddressedBlobStore
from storage.bookmarks import SQLiteBookmarkIndex
from storage.sqlite import SQLiteArticleStore, format_byte_count

__all__ = [
    "ContentAddressedBlobStore",
    "SQLiteArticleStore",
    "SQLiteBookmarkIndex",
    "format_byte_count",
]
