"""Traversal of the page forest formed by ``parentPageId`` links."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator, Optional

from .schemas import PageSummary

if TYPE_CHECKING:
    from .adapter import StorageAdapter

logger = logging.getLogger(__name__)


def walk_descendants(adapter: StorageAdapter, page_id: str) -> Iterator[PageSummary]:
    """Yield every descendant of ``page_id`` breadth-first.

    A page reached twice (a cycle in the parent links) is skipped, as is the
    root itself, so the walk always terminates.
    """
    visited = {page_id}
    queue = deque([page_id])
    while queue:
        parent_id = queue.popleft()
        for child in adapter.get_child_pages(parent_id):
            if child.id in visited:
                logger.warning(
                    "Cycle in page hierarchy: %s is reachable from itself via %s",
                    child.id,
                    parent_id,
                )
                continue
            visited.add(child.id)
            queue.append(child.id)
            yield child


def is_descendant(adapter: StorageAdapter, ancestor_id: str, page_id: str) -> bool:
    """True when ``ancestor_id`` appears on the parent chain of ``page_id``."""
    seen: set[str] = set()
    page = adapter.get_page(page_id)
    while page is not None and page.parent_page_id is not None:
        if page.parent_page_id == ancestor_id:
            return True
        if page.parent_page_id in seen:
            return False
        seen.add(page.parent_page_id)
        page = adapter.get_page(page.parent_page_id)
    return False


@dataclass
class PageTreeNode:
    page: PageSummary
    children: list[PageTreeNode] = field(default_factory=list)

    def to_dict(self) -> dict:
        payload = self.page.to_record()
        payload["children"] = [child.to_dict() for child in self.children]
        return payload


def _on_parent_cycle(page: PageSummary, nodes: dict[str, PageTreeNode]) -> bool:
    seen: set[str] = set()
    parent_id = page.parent_page_id
    while parent_id is not None and parent_id in nodes:
        if parent_id == page.id:
            return True
        if parent_id in seen:
            return False
        seen.add(parent_id)
        parent_id = nodes[parent_id].page.parent_page_id
    return False


def build_page_tree(pages: list[PageSummary]) -> list[PageTreeNode]:
    """Nest a flat page list; pages with unknown parents become roots.

    A page whose parent chain leads back to itself is also treated as a
    root, so every page appears exactly once. Siblings are sorted by title,
    case-insensitively.
    """
    nodes = {page.id: PageTreeNode(page=page) for page in pages}
    roots: list[PageTreeNode] = []
    for page in pages:
        node = nodes[page.id]
        parent: Optional[PageTreeNode] = (
            nodes.get(page.parent_page_id) if page.parent_page_id else None
        )
        if parent is not None and _on_parent_cycle(page, nodes):
            logger.warning(
                "Cycle in page hierarchy: %s is its own ancestor; listing it as a root",
                page.id,
            )
            parent = None
        if parent is None:
            roots.append(node)
        else:
            parent.children.append(node)

    def _sort(level: list[PageTreeNode]) -> None:
        level.sort(key=lambda item: item.page.title.lower())
        for item in level:
            _sort(item.children)

    _sort(roots)
    return roots
