from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import uuid4

from ..adapter import StorageAdapter
from ..content import create_empty_content
from ..errors import NotFoundError
from ..schemas import BlockContent, Page, PageSummary, PageType
from ..transfer import utcnow_iso
from ..tree import PageTreeNode, build_page_tree, is_descendant, walk_descendants

logger = logging.getLogger(__name__)

UPDATABLE_PAGE_FIELDS = {
    "title",
    "content",
    "icon",
    "cover_image",
    "is_favorite",
    "is_full_width",
    "parent_page_id",
}

__all__ = [
    "build_page_tree",
    "create_empty_content",
    "create_page",
    "delete_page_tree",
    "duplicate_page",
    "get_favorite_pages",
    "get_root_pages",
    "move_page",
    "orphan_children",
    "require_page",
    "toggle_favorite",
    "touch_page",
    "update_page",
    "workspace_tree",
]


def require_page(adapter: StorageAdapter, page_id: str) -> Page:
    page = adapter.get_page(page_id)
    if page is None:
        raise NotFoundError("Page", page_id)
    return page


def create_page(
    adapter: StorageAdapter,
    workspace_id: str,
    title: str,
    *,
    parent_page_id: Optional[str] = None,
    page_type: PageType = "page",
    icon: Optional[str] = None,
    content: Optional[BlockContent] = None,
) -> Page:
    now = utcnow_iso()
    page = Page(
        id=str(uuid4()),
        workspace_id=workspace_id,
        parent_page_id=parent_page_id,
        title=title,
        type=page_type,
        icon=icon,
        content=content if content is not None else create_empty_content(),
        created_at=now,
        updated_at=now,
        last_accessed_at=now,
    )
    adapter.upsert_page(page)
    return page


def get_root_pages(adapter: StorageAdapter, workspace_id: str) -> list[PageSummary]:
    return [page for page in adapter.list_pages(workspace_id) if page.parent_page_id is None]


def get_favorite_pages(adapter: StorageAdapter, workspace_id: str) -> list[PageSummary]:
    return [page for page in adapter.list_pages(workspace_id) if page.is_favorite]


def update_page(adapter: StorageAdapter, page_id: str, **updates: Any) -> Page:
    unknown = set(updates) - UPDATABLE_PAGE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported page fields: {', '.join(sorted(unknown))}")

    page = require_page(adapter, page_id)
    if isinstance(updates.get("content"), dict):
        updates["content"] = BlockContent.model_validate(updates["content"])
    updated = page.model_copy(update={**updates, "updated_at": utcnow_iso()})
    adapter.upsert_page(updated)
    return updated


def touch_page(adapter: StorageAdapter, page_id: str) -> Page:
    """Record a visit without counting it as an edit."""
    page = require_page(adapter, page_id)
    updated = page.model_copy(update={"last_accessed_at": utcnow_iso()})
    adapter.upsert_page(updated)
    return updated


def toggle_favorite(adapter: StorageAdapter, page_id: str) -> Page:
    page = require_page(adapter, page_id)
    return update_page(adapter, page_id, is_favorite=not page.is_favorite)


def move_page(adapter: StorageAdapter, page_id: str, new_parent_page_id: Optional[str]) -> Page:
    page = require_page(adapter, page_id)
    if new_parent_page_id is not None:
        if new_parent_page_id == page_id:
            raise ValueError("Cannot move page to itself")
        if is_descendant(adapter, page_id, new_parent_page_id):
            raise ValueError("Cannot move page to its own descendant")

    updated = page.model_copy(
        update={"parent_page_id": new_parent_page_id, "updated_at": utcnow_iso()}
    )
    adapter.upsert_page(updated)
    return updated


def delete_page_tree(
    adapter: StorageAdapter, page_id: str, *, delete_children: bool = True
) -> list[str]:
    """Delete a page and, by default, its whole subtree.

    Descendants are removed deepest first and the root last. Database pages
    take their database definition and rows with them. Returns the deleted ids.
    """
    targets = [page_id]
    if delete_children:
        targets.extend(child.id for child in walk_descendants(adapter, page_id))

    deleted: list[str] = []
    for target_id in reversed(targets):
        page = adapter.get_page(target_id)
        if page is not None and page.type == "database":
            adapter.delete_database(target_id)
        adapter.delete_page(target_id)
        deleted.append(target_id)

    logger.info(
        "Deleted page %s and %d descendants",
        page_id,
        len(deleted) - 1,
        extra={"page_id": page_id},
    )
    return deleted


def orphan_children(adapter: StorageAdapter, page_id: str) -> list[PageSummary]:
    """Move the direct children of ``page_id`` to the workspace root."""
    children = adapter.get_child_pages(page_id)
    now = utcnow_iso()
    for child in children:
        page = adapter.get_page(child.id)
        if page is not None:
            adapter.upsert_page(page.model_copy(update={"parent_page_id": None, "updated_at": now}))
    return children


def duplicate_page(adapter: StorageAdapter, page_id: str) -> Page:
    """Copy a single page (children are not copied)."""
    original = require_page(adapter, page_id)
    now = utcnow_iso()
    duplicate = original.model_copy(
        update={
            "id": str(uuid4()),
            "title": f"{original.title} (copy)",
            "is_favorite": False,
            "created_at": now,
            "updated_at": now,
        },
        deep=True,
    )
    adapter.upsert_page(duplicate)
    if original.type == "database":
        # A database page needs its own definition; rows stay with the original.
        database = adapter.get_database(original.id)
        if database is not None:
            adapter.upsert_database(database.model_copy(update={"page_id": duplicate.id}, deep=True))
    return duplicate


def workspace_tree(adapter: StorageAdapter, workspace_id: str) -> list[PageTreeNode]:
    return build_page_tree(adapter.list_pages(workspace_id))
