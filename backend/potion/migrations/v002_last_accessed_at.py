"""Version 2: pages carry ``lastAccessedAt``, initialised from ``updatedAt``.

Each side of the change is an explicit record type. The step itself is the
pure mapping ``upgrade_page(PageV1) -> PageV2`` and its inverse.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ConfigDict

from ..schemas import Page, StorageModel
from .base import Migration

if TYPE_CHECKING:
    from ..adapter import StorageAdapter

logger = logging.getLogger(__name__)


class PageV1(StorageModel):
    model_config = ConfigDict(extra="allow")

    id: str
    workspace_id: str
    updated_at: str


class PageV2(PageV1):
    last_accessed_at: str


def upgrade_page(page: PageV1) -> PageV2:
    return PageV2.model_validate(
        {**page.model_dump(by_alias=True), "lastAccessedAt": page.updated_at}
    )


def downgrade_page(page: PageV2) -> PageV1:
    record = page.model_dump(by_alias=True)
    record.pop("lastAccessedAt", None)
    return PageV1.model_validate(record)


def _as_v1(record: dict[str, Any]) -> PageV1:
    record = dict(record)
    record.pop("lastAccessedAt", None)
    return PageV1.model_validate(record)


def _iter_pages(adapter: StorageAdapter):
    for workspace in adapter.list_workspaces():
        for summary in adapter.list_pages(workspace.id):
            page = adapter.get_page(summary.id)
            if page is not None:
                yield page


def up(adapter: StorageAdapter) -> None:
    upgraded = 0
    for page in _iter_pages(adapter):
        if page.last_accessed_at is not None:
            continue
        v2 = upgrade_page(_as_v1(page.to_record()))
        adapter.upsert_page(Page.model_validate(v2.model_dump(by_alias=True)))
        upgraded += 1
    logger.info("Initialised lastAccessedAt on %d pages", upgraded)


def down(adapter: StorageAdapter) -> None:
    for page in _iter_pages(adapter):
        if page.last_accessed_at is None:
            continue
        v1 = downgrade_page(PageV2.model_validate(page.to_record()))
        record = v1.model_dump(by_alias=True)
        record["lastAccessedAt"] = None
        adapter.upsert_page(Page.model_validate(record))


MIGRATION = Migration(
    version=2,
    name="add-lastAccessedAt",
    description="Add lastAccessedAt to every page, defaulting to updatedAt.",
    up=up,
    down=down,
)
