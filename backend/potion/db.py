from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Union

from .errors import NotInitializedError

logger = logging.getLogger(__name__)

StorePath = Union[str, Path]

# Logical stores, in the order a full wipe deletes them (dependents first).
STORES = ("rows", "databases", "pages", "workspaces", "settings")


def dump_record(record: dict[str, Any]) -> str:
    return json.dumps(record, ensure_ascii=False, separators=(",", ":"))


def load_record(raw: Any) -> dict[str, Any]:
    if isinstance(raw, sqlite3.Row):
        raw = raw["data"]
    return json.loads(raw)


def _target_path(path: StorePath) -> str:
    target = str(path).strip()
    if target == ":memory:" or target.startswith("file:"):
        return target
    resolved = Path(target).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def _create_tables(connection: sqlite3.Connection) -> None:
    # Each store keeps the full record as JSON in "data"; key and index
    # columns are copies of the record fields they are named after.
    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS workspaces (
            id TEXT PRIMARY KEY,
            data TEXT NOT NULL
        )
        """
    )

    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS pages (
            id TEXT PRIMARY KEY,
            workspace_id TEXT NOT NULL,
            parent_page_id TEXT,
            type TEXT NOT NULL,
            data TEXT NOT NULL
        )
        """
    )

    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS databases (
            page_id TEXT PRIMARY KEY,
            data TEXT NOT NULL
        )
        """
    )

    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS rows (
            id TEXT PRIMARY KEY,
            database_page_id TEXT NOT NULL,
            page_id TEXT NOT NULL,
            data TEXT NOT NULL
        )
        """
    )

    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS settings (
            id TEXT PRIMARY KEY,
            data TEXT NOT NULL
        )
        """
    )

    connection.execute(
        "CREATE INDEX IF NOT EXISTS idx_pages_workspace ON pages (workspace_id)"
    )
    connection.execute(
        "CREATE INDEX IF NOT EXISTS idx_pages_parent ON pages (parent_page_id)"
    )
    connection.execute("CREATE INDEX IF NOT EXISTS idx_pages_type ON pages (type)")
    connection.execute(
        "CREATE INDEX IF NOT EXISTS idx_rows_database ON rows (database_page_id)"
    )


class RecordStore:
    """Embedded SQLite substrate behind the storage adapter.

    One connection is held between ``open()`` and ``close()``. Transactions
    nest: only the outermost ``transaction()`` commits or rolls back.
    """

    def __init__(self, path: StorePath) -> None:
        self.path = path
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._depth = 0

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def open(self) -> None:
        with self._lock:
            if self._connection is not None:
                return
            target = _target_path(self.path)
            connection = sqlite3.connect(
                target, check_same_thread=False, uri=target.startswith("file:")
            )
            connection.row_factory = sqlite3.Row
            try:
                connection.execute("PRAGMA journal_mode=WAL")
                connection.execute("PRAGMA busy_timeout=5000")
                _create_tables(connection)
                connection.commit()
            except Exception:
                connection.close()
                raise
            self._connection = connection
            logger.debug("Opened record store at %s", self.path)

    def close(self) -> None:
        with self._lock:
            if self._connection is None:
                return
            self._connection.close()
            self._connection = None
            self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            connection = self._connection
            if connection is None:
                raise NotInitializedError("Storage not initialized. Call init() first.")

            self._depth += 1
            try:
                yield connection
                if self._depth == 1:
                    connection.commit()
            except Exception:
                if self._depth == 1:
                    connection.rollback()
                raise
            finally:
                self._depth -= 1

    def table_columns(self, table_name: str) -> set[str]:
        with self.transaction() as connection:
            rows = connection.execute(f"PRAGMA table_info({table_name})").fetchall()
        return {str(row["name"]) for row in rows}
