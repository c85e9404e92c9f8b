# cache.py
import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

EXPECTED_COLS = {"k", "v", "expires"}


class MemoryCache:
    """Process-wide last-writer-wins map; expired entries are pruned on read."""

    def __init__(self):
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires = entry
            if time.time() >= expires:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        with self._lock:
            self._entries[key] = (value, time.time() + ttl_seconds)

    def __len__(self) -> int:
        return len(self._entries)


class SqliteCache:
    """JSON payloads in a single SQLite table, shared across worker processes."""

    def __init__(self, db_path: str = "cache.db"):
        self.db_path = db_path
        Path(db_path).touch(exist_ok=True)
        self._ensure()

    def _current_cols(self, con: sqlite3.Connection):
        try:
            rows = con.execute("PRAGMA table_info(cache)").fetchall()
            return {row[1] for row in rows}  # row[1] is column name
        except sqlite3.OperationalError:
            return set()

    def _ensure(self):
        with sqlite3.connect(self.db_path) as con:
            if self._current_cols(con) != EXPECTED_COLS:
                con.execute("DROP TABLE IF EXISTS cache")
                con.execute("""
                    CREATE TABLE IF NOT EXISTS cache (
                        k       TEXT PRIMARY KEY,
                        v       TEXT NOT NULL,
                        expires REAL NOT NULL
                    )
                """)
                con.commit()

    def get(self, key: str) -> Optional[Any]:
        with sqlite3.connect(self.db_path) as con:
            row = con.execute("SELECT v, expires FROM cache WHERE k=?", (key,)).fetchone()
            if not row:
                return None
            v, expires = row
            if time.time() >= expires:
                con.execute("DELETE FROM cache WHERE k=?", (key,))
                con.commit()
                return None
        try:
            return json.loads(v)
        except ValueError:
            return None

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        s = json.dumps(value)
        with sqlite3.connect(self.db_path) as con:
            con.execute(
                "INSERT OR REPLACE INTO cache (k, v, expires) VALUES (?, ?, ?)",
                (key, s, time.time() + ttl_seconds),
            )
            con.commit()


class NullCache:
    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        return None


def make_cache(backend: str, db_path: str = "cache.db"):
    if backend == "sqlite":
        return SqliteCache(db_path)
    if backend == "none":
        return NullCache()
    return MemoryCache()
