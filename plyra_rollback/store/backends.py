"""
Record Backends
~~~~~~~~~~~~~~~

Repositories the point store, plan store and execution ledger write
through to. Records are plain JSON-safe dicts grouped in named
collections (``points``, ``plans``, ``executions``).

- MemoryBackend: process-local, lost on exit.
- SQLiteBackend: durable, one row per record with the record serialized
  as JSON.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

__all__ = ["RecordBackend", "MemoryBackend", "SQLiteBackend", "create_backend"]

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS records (
    collection   TEXT NOT NULL,
    record_id    TEXT NOT NULL,
    record_data  TEXT NOT NULL,
    updated_at   TEXT NOT NULL,
    PRIMARY KEY (collection, record_id)
)
"""


def _default_db_path() -> str:
    """Return the default SQLite database path."""
    home = os.path.expanduser("~")
    plyra_dir = os.path.join(home, ".plyra")
    os.makedirs(plyra_dir, exist_ok=True)
    return os.path.join(plyra_dir, "rollback.db")


class RecordBackend(ABC):
    """Keyed storage of JSON-safe records, grouped by collection."""

    persistent: bool = False

    @abstractmethod
    def put(self, collection: str, record_id: str, data: dict[str, Any]) -> None:
        """Insert or replace one record."""
        ...

    @abstractmethod
    def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        """Return one record, or None."""
        ...

    @abstractmethod
    def all(self, collection: str) -> list[dict[str, Any]]:
        """Return every record in the collection, in insertion order."""
        ...

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> bool:
        """Remove one record. Returns True if it existed."""
        ...

    def close(self) -> None:
        """Release any held resources."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


class MemoryBackend(RecordBackend):
    """Dict-of-dicts backend. Stored records are private copies."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def put(self, collection: str, record_id: str, data: dict[str, Any]) -> None:
        with self._lock:
            self._data.setdefault(collection, {})[record_id] = copy.deepcopy(data)

    def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._data.get(collection, {}).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def all(self, collection: str) -> list[dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._data.get(collection, {}).values()]

    def delete(self, collection: str, record_id: str) -> bool:
        with self._lock:
            return self._data.get(collection, {}).pop(record_id, None) is not None


class SQLiteBackend(RecordBackend):
    """
    SQLite-backed repository.

    Opens a new connection per operation so the backend can be shared
    between the event loop and worker threads.
    """

    persistent = True

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = db_path or _default_db_path()
        parent = os.path.dirname(self._db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        self._init_db()

    @property
    def db_path(self) -> str:
        return self._db_path

    def _init_db(self) -> None:
        """Create the records table if it doesn't exist."""
        conn = sqlite3.connect(self._db_path)
        try:
            conn.execute(_CREATE_TABLE_SQL)
            conn.commit()
        finally:
            conn.close()

    def _get_conn(self) -> sqlite3.Connection:
        """Get a new SQLite connection."""
        return sqlite3.connect(self._db_path)

    def put(self, collection: str, record_id: str, data: dict[str, Any]) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """INSERT INTO records
                   (collection, record_id, record_data, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(collection, record_id)
                   DO UPDATE SET record_data = excluded.record_data,
                                 updated_at = excluded.updated_at""",
                (
                    collection,
                    record_id,
                    json.dumps(data, default=str),
                    datetime.now(UTC).isoformat(),
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT record_data FROM records WHERE collection = ? AND record_id = ?",
                (collection, record_id),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return json.loads(row[0])

    def all(self, collection: str) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT record_id, record_data FROM records "
                "WHERE collection = ? ORDER BY rowid",
                (collection,),
            ).fetchall()
        finally:
            conn.close()

        records: list[dict[str, Any]] = []
        for record_id, raw in rows:
            try:
                records.append(json.loads(raw))
            except json.JSONDecodeError as exc:
                logger.error(
                    "Skipping unreadable %s record %s: %s", collection, record_id, exc
                )
        return records

    def delete(self, collection: str, record_id: str) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "DELETE FROM records WHERE collection = ? AND record_id = ?",
                (collection, record_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def __repr__(self) -> str:
        return f"<SQLiteBackend db_path={self._db_path!r}>"


def create_backend(kind: str, db_path: str | None = None) -> RecordBackend:
    """Build the backend named in ``storage.backend``."""
    if kind == "sqlite":
        return SQLiteBackend(db_path)
    if kind == "memory":
        return MemoryBackend()
    raise ValueError(f"Unknown storage backend: {kind!r}")
