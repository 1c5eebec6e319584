"""Key-value storage for Escapebook: get/put/delete by key with optional expiry.

The store offers no transactions and no compare-and-swap. Callers that touch
several keys in one logical operation document their own write order.

SQLite backend follows the usual pattern: WAL mode, row_factory=sqlite3.Row,
context manager, check_same_thread=False.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from escapebook.config import DEFAULT_DB_PATH
from escapebook.exceptions import StoreError

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    expires_at REAL
);

CREATE INDEX IF NOT EXISTS idx_kv_expires ON kv(expires_at);
"""


class KeyValueStore(Protocol):
    """Interface for key-value backends."""

    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if absent or expired."""
        ...

    def put(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        """Store a value, optionally expiring after ``ttl_seconds``."""
        ...

    def delete(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""
        ...


def read_json(store: KeyValueStore, key: str) -> Any:
    """Get and decode a JSON value. Undecodable values read as missing."""
    raw = store.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Discarding undecodable value at %s", key)
        return None


def write_json(
    store: KeyValueStore,
    key: str,
    value: Any,
    ttl_seconds: Optional[float] = None,
) -> None:
    store.put(key, json.dumps(value, separators=(",", ":")), ttl_seconds=ttl_seconds)


class SQLiteKeyValueStore:
    """SQLite-backed key-value store with lazy expiry."""

    def __init__(
        self,
        db_path: Optional[Path] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self):
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def close(self):
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def get(self, key: str) -> Optional[str]:
        try:
            row = self._conn.execute(
                "SELECT value, expires_at FROM kv WHERE key = ?", (key,)
            ).fetchone()
            if row is None:
                return None
            if row["expires_at"] is not None and row["expires_at"] <= self._clock():
                self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                self._conn.commit()
                return None
            return row["value"]
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read {key}: {e}") from e

    def put(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        try:
            self._conn.execute(
                "INSERT OR REPLACE INTO kv (key, value, expires_at) VALUES (?, ?, ?)",
                (key, value, expires_at),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to write {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            self._conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to delete {key}: {e}") from e

    def purge_expired(self) -> int:
        """Delete every expired key. Returns the number removed."""
        try:
            cur = self._conn.execute(
                "DELETE FROM kv WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (self._clock(),),
            )
            self._conn.commit()
            return cur.rowcount
        except sqlite3.Error as e:
            raise StoreError(f"Failed to purge expired keys: {e}") from e

    def keys(self, prefix: str = "") -> list[str]:
        """List live keys starting with ``prefix``."""
        rows = self._conn.execute(
            "SELECT key FROM kv WHERE key LIKE ? ESCAPE '\\' AND (expires_at IS NULL OR expires_at > ?) "
            "ORDER BY key",
            (prefix.replace("%", r"\%").replace("_", r"\_") + "%", self._clock()),
        ).fetchall()
        return [r["key"] for r in rows]


class MemoryKeyValueStore:
    """Process-local dict store. Contents vanish on restart."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.RLock()
        self._data: dict[str, tuple[str, Optional[float]]] = {}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and expires_at <= self._clock():
                self._data.pop(key, None)
                return None
            return value

    def put(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        with self._lock:
            self._data[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        now = self._clock()
        with self._lock:
            return sorted(
                k for k, (_, exp) in self._data.items()
                if k.startswith(prefix) and (exp is None or exp > now)
            )

    def close(self):
        pass
