from __future__ import annotations

import pytest

from potion.adapter import SqliteStorageAdapter
from potion.errors import NotInitializedError
from potion.schemas import Row, Settings, Workspace


def test_empty_store_reads_return_nothing(adapter):
    assert adapter.list_workspaces() == []
    assert adapter.get_workspace("x") is None
    assert adapter.get_page("x") is None
    assert adapter.get_database("x") is None
    assert adapter.get_row("x") is None
    assert adapter.get_settings("default") is None
    assert adapter.list_rows("x") == []


def test_calls_before_init_raise(tmp_path):
    storage = SqliteStorageAdapter(tmp_path / "potion.db")
    with pytest.raises(NotInitializedError):
        storage.list_workspaces()


def test_calls_after_close_raise(tmp_path):
    storage = SqliteStorageAdapter(tmp_path / "potion.db")
    storage.init()
    storage.init()
    storage.close()
    with pytest.raises(NotInitializedError):
        storage.get_workspace("w1")


def test_data_survives_reopen(tmp_path):
    path = tmp_path / "reopen.db"
    storage = SqliteStorageAdapter(path)
    storage.init()
    storage.upsert_workspace(
        Workspace(id="w1", name="One", created_at="2024-01-01T00:00:00Z", updated_at="2024-01-01T00:00:00Z")
    )
    storage.close()

    reopened = SqliteStorageAdapter(path)
    reopened.init()
    assert reopened.get_workspace("w1").name == "One"
    reopened.close()


def test_page_summary_and_case_insensitive_search(adapter, make_workspace, make_page):
    make_workspace("w1")
    make_page("p1", "w1", title="Hello")

    summaries = adapter.list_pages("w1")
    assert len(summaries) == 1
    assert summaries[0].title == "Hello"
    assert not hasattr(summaries[0], "content")

    results = adapter.search_pages("w1", "hello")
    assert [page.id for page in results] == ["p1"]


def test_search_matches_nested_block_text(adapter, make_workspace, make_page):
    make_workspace("w1")
    blocks = [
        {
            "id": "b1",
            "type": "paragraph",
            "content": [{"type": "text", "text": "Outer"}],
            "children": [
                {"id": "b2", "type": "paragraph", "content": [{"type": "text", "text": "Deep Secret"}]}
            ],
        }
    ]
    make_page("p1", "w1", title="Notes", blocks=blocks)
    make_page("p2", "w1", title="Other")

    assert [page.id for page in adapter.search_pages("w1", "deep secret")] == ["p1"]
    assert adapter.search_pages("w2", "deep") == []


def test_child_pages_and_non_cascading_page_delete(adapter, make_workspace, make_page):
    make_workspace("w1")
    make_page("parent", "w1")
    make_page("child", "w1", parent_page_id="parent")

    assert [page.id for page in adapter.get_child_pages("parent")] == ["child"]

    adapter.delete_page("parent")
    assert adapter.get_page("parent") is None
    assert adapter.get_page("child") is not None


def test_unknown_fields_are_preserved(adapter):
    workspace = Workspace.model_validate(
        {
            "id": "w1",
            "name": "Extra",
            "createdAt": "2024-01-01T00:00:00Z",
            "updatedAt": "2024-01-01T00:00:00Z",
            "color": "teal",
        }
    )
    adapter.upsert_workspace(workspace)
    assert adapter.get_workspace("w1").to_record()["color"] == "teal"


def test_delete_workspace_cascades_everything(adapter, make_workspace, make_page, make_database):
    make_workspace("w1")
    make_workspace("w2")
    make_page("p1", "w1")
    make_page("p2", "w1", parent_page_id="p1")
    make_database("db1", "w1", rows=3)
    make_database("db2", "w1", rows=2, parent_page_id="p1")
    make_database("keep", "w2", rows=1)

    adapter.delete_workspace("w1")

    assert adapter.get_workspace("w1") is None
    assert adapter.list_pages("w1") == []
    assert adapter.get_database("db1") is None
    assert adapter.get_database("db2") is None
    assert adapter.list_full_rows("db1") == []
    assert adapter.list_full_rows("db2") == []
    assert adapter.get_database("keep") is not None
    assert len(adapter.list_full_rows("keep")) == 1
    stats = adapter.get_stats()
    assert stats.workspace_count == 1
    assert stats.row_count == 1


def test_delete_missing_workspace_is_noop(adapter):
    adapter.delete_workspace("ghost")
    assert adapter.list_workspaces() == []


def test_database_exists_until_deleted(adapter, make_workspace, make_database):
    make_workspace("w1")
    make_database("db1", "w1", rows=2)
    assert adapter.get_database("db1") is not None

    adapter.delete_database("db1")

    assert adapter.get_database("db1") is None
    assert adapter.list_full_rows("db1") == []
    assert adapter.get_page("db1") is not None


def test_list_rows_uses_companion_titles(adapter, make_workspace, make_database):
    make_workspace("w1")
    _, rows = make_database("db1", "w1", rows=2)
    adapter.delete_page(rows[1].page_id)

    titles = {summary.id: summary.title for summary in adapter.list_rows("db1")}
    assert titles == {rows[0].id: "Row 0", rows[1].id: "Untitled"}


def test_row_upsert_replaces_values(adapter, make_workspace, make_database):
    make_workspace("w1")
    _, rows = make_database("db1", "w1", rows=1)
    adapter.upsert_row(rows[0].model_copy(update={"values": {"prop-name": "changed"}}))

    assert adapter.get_row(rows[0].id).values == {"prop-name": "changed"}
    adapter.delete_row(rows[0].id)
    assert adapter.get_row(rows[0].id) is None


def test_settings_round_trip(adapter):
    adapter.upsert_settings(Settings(theme="dark", font_size=18))
    settings = adapter.get_settings("default")
    assert settings.theme == "dark"
    assert settings.font_size == 18
    assert settings.to_record()["fontSize"] == 18


def test_stats_and_clear_all(adapter, make_workspace, make_page, make_database):
    make_workspace("w1")
    make_page("p1", "w1", title="Hello")
    make_database("db1", "w1", rows=2)
    adapter.upsert_settings(Settings())

    stats = adapter.get_stats()
    assert stats.workspace_count == 1
    assert stats.page_count == 4
    assert stats.database_count == 1
    assert stats.row_count == 2
    assert stats.estimated_size_bytes > 0

    adapter.clear_all()

    cleared = adapter.get_stats()
    assert cleared.page_count == 0
    assert cleared.estimated_size_bytes == len("[]") * 4
    assert adapter.get_settings("default") is None


def test_rows_table_indexes_database_page(adapter):
    assert {"id", "database_page_id", "page_id", "data"} <= adapter._store.table_columns("rows")


def test_row_model_uses_camel_case_on_the_wire():
    row = Row(
        id="r1",
        database_page_id="db1",
        page_id="p1",
        created_at="2024-01-01T00:00:00Z",
        updated_at="2024-01-01T00:00:00Z",
    )
    record = row.to_record()
    assert record["databasePageId"] == "db1"
    assert record["pageId"] == "p1"
    assert record["values"] == {}


def test_transaction_groups_writes(adapter, make_workspace, make_page):
    make_workspace("w1")

    with pytest.raises(RuntimeError):
        with adapter.transaction():
            adapter.delete_workspace("w1")
            make_page("p1", "w1")
            raise RuntimeError("abort")

    assert adapter.get_workspace("w1") is not None
    assert adapter.get_page("p1") is None

    with adapter.transaction():
        make_page("p2", "w1")
    assert adapter.get_page("p2") is not None
