from __future__ import annotations

import json

import pytest

from potion.config import DEFAULT_WORKSPACE_ID
from potion.errors import NotFoundError
from potion.services import databases, pages, workspaces


@pytest.fixture()
def workspace(adapter):
    return workspaces.create_workspace(adapter, "Test", workspace_id="w1")


def test_create_page_defaults(adapter, workspace):
    page = pages.create_page(adapter, "w1", "First", icon="📝")

    stored = adapter.get_page(page.id)
    assert stored.title == "First"
    assert stored.type == "page"
    assert stored.parent_page_id is None
    assert stored.content.blocks == []
    assert stored.icon == "📝"
    assert not stored.is_favorite


def test_root_and_favorite_pages(adapter, workspace):
    root = pages.create_page(adapter, "w1", "Root")
    child = pages.create_page(adapter, "w1", "Child", parent_page_id=root.id)
    pages.toggle_favorite(adapter, child.id)

    assert [page.id for page in pages.get_root_pages(adapter, "w1")] == [root.id]
    assert [page.id for page in pages.get_favorite_pages(adapter, "w1")] == [child.id]


def test_update_page_bumps_timestamp(adapter, workspace):
    page = pages.create_page(adapter, "w1", "Draft")

    updated = pages.update_page(
        adapter,
        page.id,
        title="Final",
        content={"version": 1, "blocks": [{"id": "b", "type": "paragraph", "content": []}]},
    )

    assert updated.updated_at >= page.updated_at
    assert adapter.get_page(page.id).title == "Final"
    assert len(adapter.get_page(page.id).content.blocks) == 1
    with pytest.raises(ValueError):
        pages.update_page(adapter, page.id, workspace_id="elsewhere")
    with pytest.raises(NotFoundError):
        pages.update_page(adapter, "ghost", title="x")


def test_touch_page_only_changes_last_accessed(adapter, workspace):
    page = pages.create_page(adapter, "w1", "Visited")
    touched = pages.touch_page(adapter, page.id)

    assert touched.updated_at == page.updated_at
    assert touched.last_accessed_at is not None


def test_move_page_rejects_cycles(adapter, workspace):
    parent = pages.create_page(adapter, "w1", "Parent")
    child = pages.create_page(adapter, "w1", "Child", parent_page_id=parent.id)
    grandchild = pages.create_page(adapter, "w1", "Grandchild", parent_page_id=child.id)

    with pytest.raises(ValueError, match="itself"):
        pages.move_page(adapter, parent.id, parent.id)
    with pytest.raises(ValueError, match="descendant"):
        pages.move_page(adapter, parent.id, grandchild.id)

    moved = pages.move_page(adapter, grandchild.id, None)
    assert moved.parent_page_id is None


def test_delete_page_tree_removes_subtree_and_databases(adapter, workspace):
    root = pages.create_page(adapter, "w1", "Root")
    child = pages.create_page(adapter, "w1", "Child", parent_page_id=root.id)
    db_page, _ = databases.create_database(adapter, "w1", "Tasks", parent_page_id=child.id)
    row = databases.create_row(adapter, db_page.id, "w1")
    keep = pages.create_page(adapter, "w1", "Keep")

    deleted = pages.delete_page_tree(adapter, root.id)

    assert deleted[-1] == root.id
    assert set(deleted) == {root.id, child.id, db_page.id, row.page_id}
    assert adapter.get_database(db_page.id) is None
    assert adapter.get_row(row.id) is None
    assert [page.id for page in adapter.list_pages("w1")] == [keep.id]


def test_orphan_children_moves_to_root(adapter, workspace):
    parent = pages.create_page(adapter, "w1", "Parent")
    child = pages.create_page(adapter, "w1", "Child", parent_page_id=parent.id)

    orphaned = pages.orphan_children(adapter, parent.id)

    assert [page.id for page in orphaned] == [child.id]
    assert adapter.get_page(child.id).parent_page_id is None


def test_duplicate_page(adapter, workspace):
    original = pages.create_page(adapter, "w1", "Notes")
    pages.toggle_favorite(adapter, original.id)

    copy = pages.duplicate_page(adapter, original.id)

    assert copy.id != original.id
    assert copy.title == "Notes (copy)"
    assert copy.is_favorite is False
    assert adapter.get_page(copy.id) is not None


def test_workspace_tree_is_sorted(adapter, workspace):
    root = pages.create_page(adapter, "w1", "beta")
    pages.create_page(adapter, "w1", "Alpha")
    pages.create_page(adapter, "w1", "zeta", parent_page_id=root.id)
    pages.create_page(adapter, "w1", "Gamma", parent_page_id=root.id)

    tree = pages.workspace_tree(adapter, "w1")

    assert [node.page.title for node in tree] == ["Alpha", "beta"]
    assert [node.page.title for node in tree[1].children] == ["Gamma", "zeta"]
    assert tree[1].to_dict()["children"][0]["title"] == "Gamma"


def test_create_database_defaults(adapter, workspace):
    page, database = databases.create_database(adapter, "w1", "Tasks")

    assert page.type == "database"
    assert page.icon == "📊"
    assert [(prop.name, prop.type) for prop in database.properties] == [("Name", "text"), ("Tags", "select")]
    assert [view.name for view in database.views] == ["Table View"]
    assert adapter.get_database(page.id).to_record() == database.to_record()


def test_create_row_fills_type_defaults(adapter, workspace):
    props = [
        databases.create_property_definition(name, kind)
        for name, kind in [
            ("Text", "text"),
            ("Url", "url"),
            ("Number", "number"),
            ("Date", "date"),
            ("Done", "checkbox"),
            ("Status", "select"),
            ("Labels", "multiSelect"),
        ]
    ]
    page, _ = databases.create_database(adapter, "w1", "Tracker", properties=props)

    row = databases.create_row(adapter, page.id, "w1", {props[2].id: 7})

    assert [row.values[prop.id] for prop in props] == ["", "", 7, None, False, None, []]
    companion = adapter.get_page(row.page_id)
    assert companion.title == "Untitled"
    assert companion.parent_page_id == page.id


def test_create_row_requires_database(adapter, workspace):
    with pytest.raises(NotFoundError):
        databases.create_row(adapter, "missing", "w1")


def test_property_editing(adapter, workspace):
    page, database = databases.create_database(adapter, "w1", "Tasks")
    option = databases.create_select_option("Urgent", "red")

    updated, prop = databases.add_property(adapter, page.id, "Priority", "select", [option])
    assert prop in updated.properties

    renamed = databases.update_property(adapter, page.id, prop.id, name="Level")
    assert [p.name for p in renamed.properties][-1] == "Level"
    assert renamed.properties[-1].options[0].name == "Urgent"

    with pytest.raises(NotFoundError):
        databases.update_property(adapter, page.id, "nope", name="x")

    trimmed = databases.remove_property(adapter, page.id, prop.id)
    assert len(trimmed.properties) == 2

    views = databases.update_views(adapter, page.id, [])
    assert adapter.get_database(page.id).views == views.views == []


def test_row_updates_and_deletes(adapter, workspace):
    page, database = databases.create_database(adapter, "w1", "Tasks")
    name_prop = database.properties[0]
    row = databases.create_row(adapter, page.id, "w1")

    updated = databases.update_row_values(adapter, row.id, {name_prop.id: "Write tests"})
    assert updated.values[name_prop.id] == "Write tests"
    databases.update_row_title(adapter, row.id, "Testing")
    assert adapter.list_rows(page.id)[0].title == "Testing"
    assert [r.id for r in databases.get_full_rows(adapter, page.id)] == [row.id]

    databases.delete_row(adapter, row.id)
    assert adapter.get_row(row.id) is None
    assert adapter.get_page(row.page_id) is None


def test_delete_database_page(adapter, workspace):
    page, _ = databases.create_database(adapter, "w1", "Tasks")
    databases.create_row(adapter, page.id, "w1")

    databases.delete_database_page(adapter, page.id)

    assert adapter.get_page(page.id) is None
    assert adapter.get_database(page.id) is None
    assert adapter.list_full_rows(page.id) == []


def test_default_workspace_gets_welcome_page_once(adapter):
    first = workspaces.get_or_create_default_workspace(adapter)
    second = workspaces.get_or_create_default_workspace(adapter)

    assert first.id == second.id == DEFAULT_WORKSPACE_ID
    welcome = adapter.list_pages(DEFAULT_WORKSPACE_ID)
    assert [page.title for page in welcome] == ["Welcome to Potion"]
    assert adapter.search_pages(DEFAULT_WORKSPACE_ID, "getting started")


def test_rename_workspace(adapter, workspace):
    assert workspaces.rename_workspace(adapter, "w1", "Renamed").name == "Renamed"
    with pytest.raises(NotFoundError):
        workspaces.rename_workspace(adapter, "ghost", "x")


def test_file_export_and_import(adapter, workspace, tmp_path):
    page = pages.create_page(adapter, "w1", "My Page!")
    workspace_file = workspaces.export_workspace_to_file(adapter, tmp_path, "w1")
    page_file = workspaces.export_page_to_file(adapter, page.id, tmp_path)
    markdown_file = workspaces.export_page_markdown_to_file(adapter, page.id, tmp_path)

    assert workspace_file.name.startswith("potion-workspace-")
    assert page_file.name.startswith("potion-my-page-")
    assert markdown_file.name == "my-page.md"
    assert markdown_file.read_text(encoding="utf-8") == "# My Page!\n"
    assert json.loads(workspace_file.read_text(encoding="utf-8"))["workspace"]["id"] == "w1"

    result = workspaces.import_workspace_from_file(adapter, workspace_file, "replace", "copy")

    assert result.success
    assert result.pages_added == 1
    assert adapter.get_workspace("copy") is not None


def test_import_from_bad_file_reports_error(adapter, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{\"version\": 5}", encoding="utf-8")

    result = workspaces.import_workspace_from_file(adapter, bad)

    assert result.success is False
    assert "Unsupported export version: 5" in result.errors[0]
    assert workspaces.import_workspace_from_file(adapter, tmp_path / "missing.json").success is False
