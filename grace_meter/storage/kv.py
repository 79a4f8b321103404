"""
Key-value store interface and implementations.

Every mutation goes through update(), which is an atomic read-modify-write
on a single key. Readers always receive detached copies.
"""

import copy
import json
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from .db import DEFAULT_DB_PATH, get_connection

TABLES = ("usage_buckets", "consents", "rollovers")

Updater = Callable[[Optional[Any]], Any]


class KeyValueStore(ABC):
    """Storage contract the engine depends on."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return a copy of the value stored under key, or None."""

    @abstractmethod
    def update(self, key: str, fn: Updater) -> Any:
        """Atomically replace the value under key with fn(current).

        fn receives a copy of the current value (None if absent). Its return
        value is stored and returned. If fn raises, nothing is written.
        """

    @abstractmethod
    def scan(self, prefix: str) -> List[Tuple[str, Any]]:
        """Return (key, value copy) pairs whose key starts with prefix."""

    def set(self, key: str, value: Any) -> None:
        """Unconditionally store value under key."""
        self.update(key, lambda _current: value)


class InMemoryStore(KeyValueStore):
    """Dictionary-backed store guarded by a fixed set of striped locks.

    Stored values are replaced, never mutated in place, so readers only
    need the dictionary guard.
    """

    STRIPES = 64

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self._stripes = tuple(threading.Lock() for _ in range(self.STRIPES))
        self._guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        return self._stripes[hash(key) % self.STRIPES]

    def get(self, key: str) -> Optional[Any]:
        with self._guard:
            value = self._data.get(key)
        return copy.deepcopy(value)

    def update(self, key: str, fn: Updater) -> Any:
        with self._lock_for(key):
            with self._guard:
                current = self._data.get(key)
            new_value = fn(copy.deepcopy(current))
            stored = copy.deepcopy(new_value)
            with self._guard:
                self._data[key] = stored
            return new_value

    def scan(self, prefix: str) -> List[Tuple[str, Any]]:
        with self._guard:
            items = sorted(
                ((k, v) for k, v in self._data.items() if k.startswith(prefix)),
                key=lambda item: item[0]
            )
        return [(key, copy.deepcopy(value)) for key, value in items]


class SqliteStore(KeyValueStore):
    """SQLite-backed store holding JSON values in a two-column table."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, table: str = "usage_buckets"):
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")
        self.db_path = db_path
        self.table = table

    def get(self, key: str) -> Optional[Any]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                f"SELECT value FROM {self.table} WHERE key = ?", (key,)
            ).fetchone()
            return json.loads(row[0]) if row else None
        finally:
            conn.close()

    def update(self, key: str, fn: Updater) -> Any:
        conn = get_connection(self.db_path)
        try:
            # IMMEDIATE takes the write lock before the read
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                f"SELECT value FROM {self.table} WHERE key = ?", (key,)
            ).fetchone()
            new_value = fn(json.loads(row[0]) if row else None)
            conn.execute(
                f"INSERT INTO {self.table} (key, value) VALUES (?, ?) "
                f"ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, json.dumps(new_value, sort_keys=True))
            )
            conn.execute("COMMIT")
            return new_value
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def scan(self, prefix: str) -> List[Tuple[str, Any]]:
        conn = get_connection(self.db_path)
        try:
            # substr comparison avoids LIKE wildcards in user ids
            cursor = conn.execute(
                f"SELECT key, value FROM {self.table} "
                f"WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix)
            )
            return [(key, json.loads(value)) for key, value in cursor.fetchall()]
        finally:
            conn.close()


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the key-value tables if they don't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        for table in TABLES:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
    finally:
        conn.close()
