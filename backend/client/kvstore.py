import sqlite3
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from .errors import QuotaError


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> List[str]: ...

    def clear(self) -> None: ...


class MemoryKeyValueStore:
    """
    In-process store. `max_bytes` emulates a browser storage quota: a write that
    would push the total size of keys+values over the limit raises QuotaError
    and leaves the previous value untouched.
    """

    def __init__(self, max_bytes: Optional[int] = None):
        self._data: Dict[str, str] = {}
        self._max_bytes = max_bytes
        self._lock = threading.Lock()

    def _size_with(self, key: str, value: str) -> int:
        total = 0
        for k, v in self._data.items():
            if k == key:
                continue
            total += len(k.encode("utf-8")) + len(v.encode("utf-8"))
        return total + len(key.encode("utf-8")) + len(value.encode("utf-8"))

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError("value must be a string")
        with self._lock:
            if self._max_bytes is not None and self._size_with(key, value) > self._max_bytes:
                raise QuotaError(f"quota exceeded writing {key!r}")
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data.keys())

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class SqliteKeyValueStore:
    """Persistent store backed by a single sqlite table. Each write fully overwrites its key."""

    def __init__(self, path: str):
        self.path = path
        self._init_db()

    def _connect(self):
        return sqlite3.connect(self.path)

    def _init_db(self):
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()

    def get(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key=?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError("value must be a string")
        updated_at = datetime.now(timezone.utc).isoformat()
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                    """,
                    (key, value, updated_at),
                )
                conn.commit()
        except sqlite3.Error as ex:
            raise QuotaError(f"failed to persist {key!r}: {ex}") from ex

    def remove(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM kv_store WHERE key=?", (key,))
            conn.commit()

    def keys(self) -> List[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [r[0] for r in rows]

    def clear(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM kv_store")
            conn.commit()
