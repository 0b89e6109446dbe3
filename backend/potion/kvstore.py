"""String-keyed side channel for migration state and backup snapshots.

Lives in its own SQLite file so it can be inspected, copied, or restored
independently of the main record store.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Union

from .errors import KeyValueStoreFullError


class KeyValueStore:
    def __init__(self, path: Union[str, Path], *, max_bytes: int = 0) -> None:
        self.path = Path(path).expanduser()
        self.max_bytes = max(0, int(max_bytes))
        self._ready = False

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(str(self.path), check_same_thread=False)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA busy_timeout=5000")
        if not self._ready:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            self._ready = True
        try:
            yield connection
            connection.commit()
        except Exception:
            connection.rollback()
            raise
        finally:
            connection.close()

    def get(self, key: str) -> Optional[str]:
        with self._connection() as connection:
            row = connection.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return str(row["value"]) if row else None

    def set(self, key: str, value: str, *, enforce_quota: bool = True) -> None:
        """Store ``value`` under ``key``.

        Raises KeyValueStoreFullError when the write would push the store
        past ``max_bytes``.
        """
        with self._connection() as connection:
            if enforce_quota and self.max_bytes:
                row = connection.execute(
                    "SELECT COALESCE(SUM(LENGTH(CAST(value AS BLOB))), 0) AS used "
                    "FROM kv WHERE key != ?",
                    (key,),
                ).fetchone()
                used = int(row["used"]) if row else 0
                needed = len(value.encode("utf-8"))
                if used + needed > self.max_bytes:
                    raise KeyValueStoreFullError(
                        f"Storing {key} needs {needed} bytes; "
                        f"{used} of {self.max_bytes} already used."
                    )
            connection.execute(
                """
                INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, datetime.now(timezone.utc).isoformat()),
            )

    def delete(self, key: str) -> None:
        with self._connection() as connection:
            connection.execute("DELETE FROM kv WHERE key = ?", (key,))

    def keys(self, prefix: str = "") -> list[str]:
        with self._connection() as connection:
            rows = connection.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        return [str(row["key"]) for row in rows]
