"""SQLite-backed implementation of :class:`KeyValueStore`.

Provides durable persistence that survives process restarts.  Uses
Python's built-in :mod:`sqlite3` module with ``asyncio`` wrappers so
no external database server is required.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from teamflow.storage.base import KeyValueStore, Value

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = "teamflow.db"

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS kv (
    key    TEXT PRIMARY KEY,
    value  TEXT NOT NULL
);
"""


class SQLiteKeyValueStore(KeyValueStore):
    """SQLite-backed key-value store for durable persistence."""

    def __init__(self, db_path: str = _DEFAULT_DB_PATH) -> None:
        super().__init__()
        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        self._conn.commit()
        logger.info("SQLite store opened at %s", db_path)

    async def close(self) -> None:
        """Close the underlying database connection."""
        self._conn.close()

    # ------------------------------------------------------------------
    # KeyValueStore primitives
    # ------------------------------------------------------------------

    async def _read(self, key: str) -> Value | None:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if not row:
            return None
        return json.loads(row[0])

    async def _scan(self, prefix: str) -> dict[str, Value]:
        rows = self._conn.execute(
            "SELECT key, value FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        ).fetchall()
        return {key: json.loads(value) for key, value in rows}

    async def _commit(self, writes: dict[str, Value], deletes: set[str]) -> None:
        try:
            self._conn.executemany("DELETE FROM kv WHERE key = ?", [(k,) for k in deletes])
            self._conn.executemany(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                [(k, json.dumps(v)) for k, v in writes.items()],
            )
        except sqlite3.Error:
            self._conn.rollback()
            raise
        self._conn.commit()
        logger.debug("Committed %d writes, %d deletes", len(writes), len(deletes))

    async def count(self, prefix: str = "") -> int:
        """Return the number of stored keys starting with *prefix*."""
        row = self._conn.execute(
            "SELECT COUNT(*) FROM kv WHERE substr(key, 1, ?) = ?", (len(prefix), prefix)
        ).fetchone()
        return row[0]
