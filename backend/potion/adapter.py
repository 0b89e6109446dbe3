"""Storage adapter contract and its SQLite implementation.

The adapter is the only component that touches the record store. Every other
part of the application (services, export/import, migrations, the HTTP
surface) goes through the methods declared on :class:`StorageAdapter`.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from . import transfer
from .content import extract_text
from .config import UNTITLED
from .db import STORES, RecordStore, StorePath, dump_record, load_record
from .schemas import (
    Database,
    ImportMode,
    ImportResult,
    Page,
    PageSummary,
    Row,
    RowSummary,
    Settings,
    StorageStats,
    Workspace,
    WorkspaceExport,
)

logger = logging.getLogger(__name__)


class StorageAdapter:
    """Abstract base class for workspace storage backends.

    Reads of a missing entity return ``None`` and list operations return an
    empty list. Calling anything before ``init()`` (or after ``close()``)
    raises :class:`~potion.errors.NotInitializedError`.
    """

    # Lifecycle

    def init(self) -> None:
        """Open the backend and create stores and indexes if absent. Idempotent."""
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group several calls into one atomic unit where the backend supports it.

        Backends without transactions run the block as-is.
        """
        yield

    # Workspaces

    def get_workspace(self, workspace_id: str) -> Optional[Workspace]:
        raise NotImplementedError

    def list_workspaces(self) -> list[Workspace]:
        raise NotImplementedError

    def upsert_workspace(self, workspace: Workspace) -> None:
        raise NotImplementedError

    def delete_workspace(self, workspace_id: str) -> None:
        """Delete rows, databases, pages, then the workspace, atomically."""
        raise NotImplementedError

    # Pages

    def list_pages(self, workspace_id: str) -> list[PageSummary]:
        raise NotImplementedError

    def list_full_pages(self, workspace_id: str) -> list[Page]:
        """Same lookup as ``list_pages`` but with content."""
        raise NotImplementedError

    def get_page(self, page_id: str) -> Optional[Page]:
        raise NotImplementedError

    def upsert_page(self, page: Page) -> None:
        raise NotImplementedError

    def delete_page(self, page_id: str) -> None:
        """Delete one page. Children are the caller's responsibility."""
        raise NotImplementedError

    def get_child_pages(self, parent_page_id: str) -> list[PageSummary]:
        raise NotImplementedError

    def search_pages(self, workspace_id: str, query: str) -> list[PageSummary]:
        raise NotImplementedError

    # Databases

    def get_database(self, page_id: str) -> Optional[Database]:
        raise NotImplementedError

    def upsert_database(self, database: Database) -> None:
        raise NotImplementedError

    def delete_database(self, page_id: str) -> None:
        """Delete the database's rows and its definition. The page is kept."""
        raise NotImplementedError

    # Rows

    def list_rows(self, database_page_id: str) -> list[RowSummary]:
        raise NotImplementedError

    def list_full_rows(self, database_page_id: str) -> list[Row]:
        """Same lookup as ``list_rows`` but returning the stored rows."""
        raise NotImplementedError

    def get_row(self, row_id: str) -> Optional[Row]:
        raise NotImplementedError

    def upsert_row(self, row: Row) -> None:
        raise NotImplementedError

    def delete_row(self, row_id: str) -> None:
        raise NotImplementedError

    # Settings

    def get_settings(self, settings_id: str) -> Optional[Settings]:
        raise NotImplementedError

    def upsert_settings(self, settings: Settings) -> None:
        raise NotImplementedError

    # Export / import

    def export_workspace(self, workspace_id: str) -> WorkspaceExport:
        return transfer.export_workspace(self, workspace_id)

    def export_page(self, page_id: str, include_children: bool = True) -> WorkspaceExport:
        return transfer.export_page(self, page_id, include_children)

    def export_database(self, database_page_id: str) -> WorkspaceExport:
        return transfer.export_database(self, database_page_id)

    def import_workspace(
        self,
        workspace_id: Optional[str],
        data: WorkspaceExport,
        mode: ImportMode,
    ) -> ImportResult:
        return transfer.import_workspace(self, workspace_id, data, mode)

    # Utilities

    def get_stats(self) -> StorageStats:
        raise NotImplementedError

    def clear_all(self) -> None:
        raise NotImplementedError


def _rows_to(model, rows: list[sqlite3.Row]) -> list:
    return [model.model_validate(load_record(row)) for row in rows]


def _collection_size(rows: list[sqlite3.Row]) -> int:
    # Re-serialize as one JSON array so the estimate matches an export file.
    return len(dump_record([load_record(row) for row in rows]).encode("utf-8"))


class SqliteStorageAdapter(StorageAdapter):
    def __init__(self, path: StorePath) -> None:
        self._store = RecordStore(path)

    @property
    def path(self) -> StorePath:
        return self._store.path

    @property
    def is_initialized(self) -> bool:
        return self._store.is_open

    def init(self) -> None:
        self._store.open()

    def close(self) -> None:
        self._store.close()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._store.transaction():
            yield

    # Workspaces

    def get_workspace(self, workspace_id: str) -> Optional[Workspace]:
        with self._store.transaction() as connection:
            row = connection.execute(
                "SELECT data FROM workspaces WHERE id = ?", (workspace_id,)
            ).fetchone()
        return Workspace.model_validate(load_record(row)) if row else None

    def list_workspaces(self) -> list[Workspace]:
        with self._store.transaction() as connection:
            rows = connection.execute("SELECT data FROM workspaces").fetchall()
        return _rows_to(Workspace, rows)

    def upsert_workspace(self, workspace: Workspace) -> None:
        with self._store.transaction() as connection:
            connection.execute(
                """
                INSERT INTO workspaces (id, data) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET data = excluded.data
                """,
                (workspace.id, dump_record(workspace.to_record())),
            )

    def delete_workspace(self, workspace_id: str) -> None:
        with self._store.transaction() as connection:
            exists = connection.execute(
                "SELECT 1 FROM workspaces WHERE id = ?", (workspace_id,)
            ).fetchone()
            if not exists:
                return

            owned_pages = "SELECT id FROM pages WHERE workspace_id = ?"
            rows_deleted = connection.execute(
                f"DELETE FROM rows WHERE database_page_id IN ({owned_pages})",
                (workspace_id,),
            ).rowcount
            databases_deleted = connection.execute(
                f"DELETE FROM databases WHERE page_id IN ({owned_pages})",
                (workspace_id,),
            ).rowcount
            pages_deleted = connection.execute(
                "DELETE FROM pages WHERE workspace_id = ?", (workspace_id,)
            ).rowcount
            connection.execute("DELETE FROM workspaces WHERE id = ?", (workspace_id,))

        logger.info(
            "Deleted workspace %s (%d pages, %d databases, %d rows)",
            workspace_id,
            pages_deleted,
            databases_deleted,
            rows_deleted,
            extra={"workspace_id": workspace_id},
        )

    # Pages

    def list_pages(self, workspace_id: str) -> list[PageSummary]:
        return [page.summary() for page in self.list_full_pages(workspace_id)]

    def list_full_pages(self, workspace_id: str) -> list[Page]:
        with self._store.transaction() as connection:
            rows = connection.execute(
                "SELECT data FROM pages WHERE workspace_id = ?", (workspace_id,)
            ).fetchall()
        return _rows_to(Page, rows)

    def get_page(self, page_id: str) -> Optional[Page]:
        with self._store.transaction() as connection:
            row = connection.execute(
                "SELECT data FROM pages WHERE id = ?", (page_id,)
            ).fetchone()
        return Page.model_validate(load_record(row)) if row else None

    def upsert_page(self, page: Page) -> None:
        with self._store.transaction() as connection:
            connection.execute(
                """
                INSERT INTO pages (id, workspace_id, parent_page_id, type, data)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    workspace_id = excluded.workspace_id,
                    parent_page_id = excluded.parent_page_id,
                    type = excluded.type,
                    data = excluded.data
                """,
                (
                    page.id,
                    page.workspace_id,
                    page.parent_page_id,
                    page.type,
                    dump_record(page.to_record()),
                ),
            )

    def delete_page(self, page_id: str) -> None:
        with self._store.transaction() as connection:
            connection.execute("DELETE FROM pages WHERE id = ?", (page_id,))

    def get_child_pages(self, parent_page_id: str) -> list[PageSummary]:
        with self._store.transaction() as connection:
            rows = connection.execute(
                "SELECT data FROM pages WHERE parent_page_id = ?", (parent_page_id,)
            ).fetchall()
        return [page.summary() for page in _rows_to(Page, rows)]

    def search_pages(self, workspace_id: str, query: str) -> list[PageSummary]:
        needle = query.lower()
        matches: list[PageSummary] = []
        for page in self.list_full_pages(workspace_id):
            if needle in page.title.lower() or needle in extract_text(page.content).lower():
                matches.append(page.summary())
        return matches

    # Databases

    def get_database(self, page_id: str) -> Optional[Database]:
        with self._store.transaction() as connection:
            row = connection.execute(
                "SELECT data FROM databases WHERE page_id = ?", (page_id,)
            ).fetchone()
        return Database.model_validate(load_record(row)) if row else None

    def upsert_database(self, database: Database) -> None:
        with self._store.transaction() as connection:
            connection.execute(
                """
                INSERT INTO databases (page_id, data) VALUES (?, ?)
                ON CONFLICT(page_id) DO UPDATE SET data = excluded.data
                """,
                (database.page_id, dump_record(database.to_record())),
            )

    def delete_database(self, page_id: str) -> None:
        with self._store.transaction() as connection:
            rows_deleted = connection.execute(
                "DELETE FROM rows WHERE database_page_id = ?", (page_id,)
            ).rowcount
            connection.execute("DELETE FROM databases WHERE page_id = ?", (page_id,))
        logger.debug("Deleted database %s with %d rows", page_id, rows_deleted)

    # Rows

    def list_rows(self, database_page_id: str) -> list[RowSummary]:
        summaries: list[RowSummary] = []
        with self._store.transaction():
            for row in self.list_full_rows(database_page_id):
                page = self.get_page(row.page_id)
                summaries.append(
                    RowSummary(
                        id=row.id,
                        database_page_id=row.database_page_id,
                        page_id=row.page_id,
                        title=page.title if page else UNTITLED,
                        created_at=row.created_at,
                        updated_at=row.updated_at,
                    )
                )
        return summaries

    def list_full_rows(self, database_page_id: str) -> list[Row]:
        with self._store.transaction() as connection:
            rows = connection.execute(
                "SELECT data FROM rows WHERE database_page_id = ?", (database_page_id,)
            ).fetchall()
        return _rows_to(Row, rows)

    def get_row(self, row_id: str) -> Optional[Row]:
        with self._store.transaction() as connection:
            row = connection.execute(
                "SELECT data FROM rows WHERE id = ?", (row_id,)
            ).fetchone()
        return Row.model_validate(load_record(row)) if row else None

    def upsert_row(self, row: Row) -> None:
        with self._store.transaction() as connection:
            connection.execute(
                """
                INSERT INTO rows (id, database_page_id, page_id, data)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    database_page_id = excluded.database_page_id,
                    page_id = excluded.page_id,
                    data = excluded.data
                """,
                (row.id, row.database_page_id, row.page_id, dump_record(row.to_record())),
            )

    def delete_row(self, row_id: str) -> None:
        with self._store.transaction() as connection:
            connection.execute("DELETE FROM rows WHERE id = ?", (row_id,))

    # Settings

    def get_settings(self, settings_id: str) -> Optional[Settings]:
        with self._store.transaction() as connection:
            row = connection.execute(
                "SELECT data FROM settings WHERE id = ?", (settings_id,)
            ).fetchone()
        return Settings.model_validate(load_record(row)) if row else None

    def upsert_settings(self, settings: Settings) -> None:
        with self._store.transaction() as connection:
            connection.execute(
                """
                INSERT INTO settings (id, data) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET data = excluded.data
                """,
                (settings.id, dump_record(settings.to_record())),
            )

    # Utilities

    def get_stats(self) -> StorageStats:
        with self._store.transaction() as connection:
            collections = {
                table: connection.execute(f"SELECT data FROM {table}").fetchall()
                for table in ("workspaces", "pages", "databases", "rows")
            }
        return StorageStats(
            workspace_count=len(collections["workspaces"]),
            page_count=len(collections["pages"]),
            database_count=len(collections["databases"]),
            row_count=len(collections["rows"]),
            estimated_size_bytes=sum(_collection_size(rows) for rows in collections.values()),
        )

    def clear_all(self) -> None:
        with self._store.transaction() as connection:
            for table in STORES:
                connection.execute(f"DELETE FROM {table}")
        logger.warning("Cleared all stores at %s", self.path)
