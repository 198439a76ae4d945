"""
Key-value backends for the card store.

The store only ever reads and writes whole text values under a handful of
keys, so a backend needs four operations: get, set, remove, clear.

  SQLiteStorage  - durable, one `kv_store` table in a local SQLite file
  MemoryStorage  - process-local dict, used by tests and --memory runs

Backends raise StorageError on failure; the store decides what to do with it.
"""
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Optional

from .errors import StorageError


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection in WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class MemoryStorage:
    """Dict-backed storage.

    `fail_writes` simulates a full or disabled store; `fail_keys` rejects
    writes and removes for the listed keys only.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None,
                 fail_writes: bool = False, fail_keys: Iterable[str] = ()):
        self.data: Dict[str, str] = dict(initial or {})
        self.fail_writes = fail_writes
        self.fail_keys = set(fail_keys)

    def _rejects(self, key: str) -> bool:
        return self.fail_writes or key in self.fail_keys

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        if self._rejects(key):
            raise StorageError(f"write rejected for {key}: storage quota exceeded")
        self.data[key] = value

    def remove(self, key: str) -> None:
        if self._rejects(key):
            raise StorageError(f"remove rejected for {key}: storage disabled")
        self.data.pop(key, None)

    def clear(self) -> None:
        if self.fail_writes or self.fail_keys:
            raise StorageError("clear rejected: storage disabled")
        self.data.clear()


class SQLiteStorage:
    """SQLite-backed key-value storage."""

    def __init__(self, db_path: str):
        """Open (and create if needed) the database file."""
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"cannot initialise {self.db_path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ? LIMIT 1", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"read of {key} failed: {e}") from e
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                """, (key, value, now))
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"write of {key} failed: {e}") from e

    def remove(self, key: str) -> None:
        try:
            with _connect(self.db_path) as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"remove of {key} failed: {e}") from e

    def clear(self) -> None:
        try:
            with _connect(self.db_path) as conn:
                conn.execute("DELETE FROM kv_store")
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"clear failed: {e}") from e
