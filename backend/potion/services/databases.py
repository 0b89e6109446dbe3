from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import uuid4

from ..adapter import StorageAdapter
from ..config import UNTITLED
from ..errors import NotFoundError
from ..schemas import (
    Database,
    DatabaseView,
    Page,
    PropertyDefinition,
    PropertyType,
    Row,
    SelectOption,
)
from ..transfer import utcnow_iso
from .pages import create_page

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_ICON = "📊"


def default_value_for_type(property_type: str) -> Any:
    if property_type in {"text", "url"}:
        return ""
    if property_type == "checkbox":
        return False
    if property_type == "multiSelect":
        return []
    return None


def require_database(adapter: StorageAdapter, page_id: str) -> Database:
    database = adapter.get_database(page_id)
    if database is None:
        raise NotFoundError("Database", page_id)
    return database


def require_row(adapter: StorageAdapter, row_id: str) -> Row:
    row = adapter.get_row(row_id)
    if row is None:
        raise NotFoundError("Row", row_id)
    return row


def create_property_definition(
    name: str,
    property_type: PropertyType,
    options: Optional[list[SelectOption]] = None,
) -> PropertyDefinition:
    return PropertyDefinition(id=str(uuid4()), name=name, type=property_type, options=options)


def create_select_option(name: str, color: str = "gray") -> SelectOption:
    return SelectOption(id=str(uuid4()), name=name, color=color)


def create_database(
    adapter: StorageAdapter,
    workspace_id: str,
    title: str,
    *,
    parent_page_id: Optional[str] = None,
    icon: Optional[str] = None,
    properties: Optional[list[PropertyDefinition]] = None,
) -> tuple[Page, Database]:
    """Create a database page with its definition and a default table view."""
    page = create_page(
        adapter,
        workspace_id,
        title,
        parent_page_id=parent_page_id,
        page_type="database",
        icon=icon or DEFAULT_DATABASE_ICON,
    )
    database = Database(
        page_id=page.id,
        properties=properties
        if properties is not None
        else [
            create_property_definition("Name", "text"),
            create_property_definition("Tags", "select"),
        ],
        views=[DatabaseView(id=str(uuid4()), name="Table View", type="table")],
    )
    adapter.upsert_database(database)
    return page, database


def _save(adapter: StorageAdapter, database: Database, **updates: Any) -> Database:
    updated = database.model_copy(update=updates)
    adapter.upsert_database(updated)
    return updated


def add_property(
    adapter: StorageAdapter,
    page_id: str,
    name: str,
    property_type: PropertyType,
    options: Optional[list[SelectOption]] = None,
) -> tuple[Database, PropertyDefinition]:
    database = require_database(adapter, page_id)
    prop = create_property_definition(name, property_type, options)
    return _save(adapter, database, properties=[*database.properties, prop]), prop


def update_property(
    adapter: StorageAdapter, page_id: str, property_id: str, **updates: Any
) -> Database:
    database = require_database(adapter, page_id)
    properties = list(database.properties)
    for index, prop in enumerate(properties):
        if prop.id == property_id:
            properties[index] = PropertyDefinition.model_validate(
                {**prop.model_dump(), **updates}
            )
            return _save(adapter, database, properties=properties)
    raise NotFoundError("Property", property_id)


def remove_property(adapter: StorageAdapter, page_id: str, property_id: str) -> Database:
    database = require_database(adapter, page_id)
    return _save(
        adapter,
        database,
        properties=[prop for prop in database.properties if prop.id != property_id],
    )


def update_views(adapter: StorageAdapter, page_id: str, views: list[DatabaseView]) -> Database:
    return _save(adapter, require_database(adapter, page_id), views=list(views))


def create_row(
    adapter: StorageAdapter,
    database_page_id: str,
    workspace_id: str,
    initial_values: Optional[dict[str, Any]] = None,
) -> Row:
    """Add a row plus its companion page, filling unset values with type defaults."""
    database = require_database(adapter, database_page_id)
    initial_values = initial_values or {}
    page = create_page(adapter, workspace_id, UNTITLED, parent_page_id=database_page_id)

    values = {
        prop.id: initial_values[prop.id]
        if prop.id in initial_values
        else default_value_for_type(prop.type)
        for prop in database.properties
    }
    now = utcnow_iso()
    row = Row(
        id=str(uuid4()),
        database_page_id=database_page_id,
        page_id=page.id,
        values=values,
        created_at=now,
        updated_at=now,
    )
    adapter.upsert_row(row)
    return row


def get_full_rows(adapter: StorageAdapter, database_page_id: str) -> list[Row]:
    rows: list[Row] = []
    for summary in adapter.list_rows(database_page_id):
        row = adapter.get_row(summary.id)
        if row is not None:
            rows.append(row)
    return rows


def update_row_values(adapter: StorageAdapter, row_id: str, values: dict[str, Any]) -> Row:
    row = require_row(adapter, row_id)
    updated = row.model_copy(
        update={"values": {**row.values, **values}, "updated_at": utcnow_iso()}
    )
    adapter.upsert_row(updated)
    return updated


def update_row_title(adapter: StorageAdapter, row_id: str, title: str) -> Optional[Page]:
    row = require_row(adapter, row_id)
    page = adapter.get_page(row.page_id)
    if page is None:
        return None
    updated = page.model_copy(update={"title": title, "updated_at": utcnow_iso()})
    adapter.upsert_page(updated)
    return updated


def delete_row(adapter: StorageAdapter, row_id: str) -> None:
    row = adapter.get_row(row_id)
    if row is not None:
        adapter.delete_page(row.page_id)
    adapter.delete_row(row_id)


def delete_database_page(adapter: StorageAdapter, page_id: str) -> None:
    """Remove the database (rows first, then definition) and then its page.

    Companion pages of the rows are left in place.
    """
    adapter.delete_database(page_id)
    adapter.delete_page(page_id)
    logger.info("Deleted database page %s", page_id)
