from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _keep_test_logging(monkeypatch):
    """Stop configure_logging() from replacing pytest's log capture handlers."""
    monkeypatch.setenv("POTION_LOGGING_CONFIGURED", "1")


@pytest.fixture()
def adapter(tmp_path):
    """Provide an initialized adapter backed by a temp SQLite file."""
    from potion.adapter import SqliteStorageAdapter

    storage = SqliteStorageAdapter(tmp_path / "potion.db")
    storage.init()
    yield storage
    storage.close()


@pytest.fixture()
def kv_store(tmp_path):
    from potion.kvstore import KeyValueStore

    return KeyValueStore(tmp_path / "potion-kv.db")


@pytest.fixture()
def backups(kv_store):
    from potion.backups import BackupManager

    return BackupManager(kv_store)


@pytest.fixture()
def provider(tmp_path):
    from potion.provider import StorageProvider

    storage_provider = StorageProvider(tmp_path / "potion.db", tmp_path / "potion-kv.db")
    yield storage_provider
    storage_provider.reset()


@pytest.fixture()
def make_workspace(adapter):
    from potion.schemas import Workspace

    def _make(workspace_id: str = "w1", name: str = "Workspace", updated_at: str = "2024-01-01T00:00:00+00:00"):
        workspace = Workspace(
            id=workspace_id,
            name=name,
            created_at="2024-01-01T00:00:00+00:00",
            updated_at=updated_at,
        )
        adapter.upsert_workspace(workspace)
        return workspace

    return _make


@pytest.fixture()
def make_page(adapter):
    from potion.schemas import BlockContent, Page

    def _make(
        page_id: str,
        workspace_id: str = "w1",
        *,
        title: str = "",
        parent_page_id=None,
        page_type: str = "page",
        updated_at: str = "2024-01-01T00:00:00+00:00",
        blocks=None,
        **extra,
    ):
        page = Page(
            id=page_id,
            workspace_id=workspace_id,
            parent_page_id=parent_page_id,
            title=title,
            type=page_type,
            content=BlockContent(blocks=blocks or []),
            created_at="2024-01-01T00:00:00+00:00",
            updated_at=updated_at,
            **extra,
        )
        adapter.upsert_page(page)
        return page

    return _make


@pytest.fixture()
def make_database(adapter, make_page):
    from potion.schemas import Database, PropertyDefinition, Row

    def _make(page_id: str, workspace_id: str = "w1", *, rows: int = 0, parent_page_id=None):
        make_page(page_id, workspace_id, title=f"DB {page_id}", page_type="database", parent_page_id=parent_page_id)
        database = Database(
            page_id=page_id,
            properties=[PropertyDefinition(id="prop-name", name="Name", type="text")],
        )
        adapter.upsert_database(database)
        created = []
        for index in range(rows):
            row_page = make_page(f"{page_id}-row-page-{index}", workspace_id, title=f"Row {index}", parent_page_id=page_id)
            row = Row(
                id=f"{page_id}-row-{index}",
                database_page_id=page_id,
                page_id=row_page.id,
                values={"prop-name": f"value {index}"},
                created_at="2024-01-01T00:00:00+00:00",
                updated_at="2024-01-01T00:00:00+00:00",
            )
            adapter.upsert_row(row)
            created.append(row)
        return database, created

    return _make
