from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union
from uuid import uuid4

from ..adapter import StorageAdapter
from ..config import DEFAULT_WORKSPACE_ID, WORKSPACE_SCHEMA_VERSION
from ..content import make_block
from ..errors import NotFoundError
from ..schemas import BlockContent, ImportMode, ImportResult, Page, Workspace, WorkspaceExport
from ..transfer import page_to_markdown, parse_export_document, utcnow_iso

logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE_NAME = "My Workspace"
WELCOME_PAGE_TITLE = "Welcome to Potion"

PathLike = Union[str, Path]


def create_workspace(
    adapter: StorageAdapter, name: str, *, workspace_id: Optional[str] = None
) -> Workspace:
    now = utcnow_iso()
    workspace = Workspace(
        id=workspace_id or str(uuid4()),
        name=name,
        created_at=now,
        updated_at=now,
        version=WORKSPACE_SCHEMA_VERSION,
    )
    adapter.upsert_workspace(workspace)
    return workspace


def _welcome_content() -> BlockContent:
    return BlockContent(
        blocks=[
            make_block("heading", "Welcome to Potion!", props={"level": 1}),
            make_block(
                "paragraph",
                "Potion is a local-only workspace for notes and databases. "
                "All of your data stays on this machine.",
            ),
            make_block("heading", "Backup Your Work", props={"level": 2}),
            make_block(
                "paragraph",
                "Export your workspace regularly to keep a JSON backup you can "
                "import later or on another device.",
            ),
            make_block("heading", "Getting Started", props={"level": 2}),
            make_block("numberedListItem", "Create a new page from the sidebar"),
            make_block("numberedListItem", "Use the / command to insert different block types"),
            make_block("numberedListItem", "Star pages to add them to your favorites"),
        ]
    )


def _welcome_page(workspace_id: str, timestamp: str) -> Page:
    return Page(
        id=str(uuid4()),
        workspace_id=workspace_id,
        parent_page_id=None,
        title=WELCOME_PAGE_TITLE,
        type="page",
        icon="👋",
        content=_welcome_content(),
        created_at=timestamp,
        updated_at=timestamp,
        last_accessed_at=timestamp,
    )


def get_or_create_default_workspace(adapter: StorageAdapter) -> Workspace:
    workspace = adapter.get_workspace(DEFAULT_WORKSPACE_ID)
    if workspace is not None:
        return workspace

    workspace = create_workspace(
        adapter, DEFAULT_WORKSPACE_NAME, workspace_id=DEFAULT_WORKSPACE_ID
    )
    if not adapter.list_pages(DEFAULT_WORKSPACE_ID):
        adapter.upsert_page(_welcome_page(DEFAULT_WORKSPACE_ID, workspace.created_at))
    logger.info("Created default workspace", extra={"workspace_id": DEFAULT_WORKSPACE_ID})
    return workspace


def rename_workspace(adapter: StorageAdapter, workspace_id: str, name: str) -> Workspace:
    workspace = adapter.get_workspace(workspace_id)
    if workspace is None:
        raise NotFoundError("Workspace", workspace_id)
    updated = workspace.model_copy(update={"name": name, "updated_at": utcnow_iso()})
    adapter.upsert_workspace(updated)
    return updated


def slugify(title: Optional[str], fallback: str = "page") -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (title or "").lower()).strip("-")
    return slug or fallback


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _write_json(path: Path, export: WorkspaceExport) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(export.to_record(), indent=2, ensure_ascii=False), encoding="utf-8"
    )
    return path


def _resolve_target(destination: PathLike, default_name: str) -> Path:
    target = Path(destination).expanduser()
    if target.is_dir():
        return target / default_name
    return target


def export_workspace_to_file(
    adapter: StorageAdapter,
    destination: PathLike,
    workspace_id: str = DEFAULT_WORKSPACE_ID,
) -> Path:
    """Write a workspace export. A directory destination gets a dated file name."""
    export = adapter.export_workspace(workspace_id)
    target = _resolve_target(destination, f"potion-workspace-{_today()}.json")
    logger.info("Exporting workspace to %s", target, extra={"workspace_id": workspace_id})
    return _write_json(target, export)


def export_page_to_file(
    adapter: StorageAdapter,
    page_id: str,
    destination: PathLike,
    *,
    include_children: bool = True,
) -> Path:
    export = adapter.export_page(page_id, include_children)
    page = adapter.get_page(page_id)
    name = f"potion-{slugify(page.title if page else None)}-{_today()}.json"
    return _write_json(_resolve_target(destination, name), export)


def export_page_markdown_to_file(
    adapter: StorageAdapter, page_id: str, destination: PathLike
) -> Path:
    page = adapter.get_page(page_id)
    if page is None:
        raise NotFoundError("Page", page_id)
    target = _resolve_target(destination, f"{slugify(page.title)}.md")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(page_to_markdown(page), encoding="utf-8")
    return target


def import_workspace_from_file(
    adapter: StorageAdapter,
    source: PathLike,
    mode: ImportMode = "replace",
    workspace_id: Optional[str] = DEFAULT_WORKSPACE_ID,
) -> ImportResult:
    """Import an export file; failures come back in ``ImportResult.errors``."""
    try:
        raw = Path(source).expanduser().read_text(encoding="utf-8")
        data = parse_export_document(raw)
    except (OSError, ValueError) as exc:
        logger.warning("Could not read export file %s: %s", source, exc)
        return ImportResult(success=False, errors=[str(exc)])
    return adapter.import_workspace(workspace_id, data, mode)
