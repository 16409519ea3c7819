"""SQLite connection handling and ordered schema migrations."""

from __future__ import annotations

import re
import sqlite3
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterator

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"
_MIGRATION_NAME = re.compile(r"^(\d{4})_[a-z0-9_]+\.sql$")


def to_db_timestamp(value: datetime) -> str:
    """Serialize a datetime as UTC ISO-8601 so string order matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def from_db_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO timestamp written by to_db_timestamp, preserving None."""
    if value is None:
        return None
    return datetime.fromisoformat(value)


def to_db_flag(value: bool | None) -> int | None:
    if value is None:
        return None
    return 1 if value else 0


def from_db_flag(value: int | None) -> bool | None:
    if value is None:
        return None
    return bool(value)


@contextmanager
def sqlite_connection(db_path: Path) -> Iterator[sqlite3.Connection]:
    """Open one connection, commit on success, always close."""
    connection = sqlite3.connect(db_path)
    connection.row_factory = sqlite3.Row
    try:
        yield connection
        connection.commit()
    finally:
        connection.close()


def list_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> list[tuple[int, Path]]:
    """Return (version, path) for every migration file in ascending order."""
    migrations: list[tuple[int, Path]] = []
    for path in migrations_dir.glob("*.sql"):
        match = _MIGRATION_NAME.match(path.name)
        if match:
            migrations.append((int(match.group(1)), path))
    return sorted(migrations)


def initialize_schema(db_path: Path, migrations_dir: Path = MIGRATIONS_DIR) -> int:
    """
    Apply pending migrations and return the resulting schema version.

    The applied version is tracked in `PRAGMA user_version`; each migration
    runs once, in order. Migration files use IF NOT EXISTS so two stores
    sharing one database file can both initialize it.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite_connection(db_path) as connection:
        current = int(connection.execute("PRAGMA user_version").fetchone()[0])
        for version, path in list_migrations(migrations_dir):
            if version <= current:
                continue
            connection.executescript(path.read_text(encoding="utf-8"))
            connection.execute(f"PRAGMA user_version = {version:d}")
            current = version
        return current
