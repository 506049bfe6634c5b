"""Key-value option stores shared by all tracked components."""

from __future__ import annotations

import sqlite3
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from external_updates.paths import option_db_path


class OptionStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryOptionStore:
    def __init__(self) -> None:
        self._values: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._values[key] = bytes(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._values)


class SqliteOptionStore:
    """One row per option key; every write is its own transaction."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or option_db_path()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        return conn

    def ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS options (
                    name TEXT PRIMARY KEY,
                    value BLOB NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def get(self, key: str) -> bytes | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM options WHERE name = ?",
                (key,),
            ).fetchone()
        return bytes(row["value"]) if row else None

    def set(self, key: str, value: bytes) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO options (name, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, sqlite3.Binary(value), datetime.now(UTC).isoformat()),
            )

    def delete(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM options WHERE name = ?", (key,))

    def keys(self) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT name FROM options ORDER BY name").fetchall()
        return [str(row["name"]) for row in rows]
