"""SQLite key-value store.

Provides persistent storage across restarts in a single database file.
"""

import sqlite3
from pathlib import Path

from .base import KeyValueStore


class SQLiteKeyValueStore(KeyValueStore):
    """SQLite-backed store.

    One table, one row per qualified key. Each write commits immediately so
    a crash never loses an acknowledged write.
    """

    def __init__(self, path: str | Path = "./chatsync.db", namespace: str = "chatsync"):
        super().__init__(namespace)
        in_memory = str(path) == ":memory:"
        self._db_path = Path(path) if in_memory else Path(path).expanduser()
        if not in_memory:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection: sqlite3.Connection | None = sqlite3.connect(
            ":memory:" if in_memory else str(self._db_path)
        )
        self._create_schema()

    def _create_schema(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        self._conn.commit()

    @property
    def _conn(self) -> sqlite3.Connection:
        if self._connection is None:
            raise RuntimeError("SQLite store is closed")
        return self._connection

    def get(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM kv_store WHERE key = ?",
            (self._qualify(key),)
        ).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        self._conn.execute("""
            INSERT INTO kv_store (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """, (self._qualify(key), value))
        self._conn.commit()

    def delete(self, key: str) -> bool:
        cursor = self._conn.execute("DELETE FROM kv_store WHERE key = ?", (self._qualify(key),))
        self._conn.commit()
        return cursor.rowcount > 0

    def keys(self, prefix: str = "") -> list[str]:
        qualified = self._qualify(prefix)
        rows = self._conn.execute(
            "SELECT key FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(qualified), qualified)
        ).fetchall()
        return [self._unqualify(row[0]) for row in rows]

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path
