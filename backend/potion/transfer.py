"""Export and import of portable workspace documents.

Exports produce a :class:`WorkspaceExport` stamped with
``EXPORT_FORMAT_VERSION``. Imports accept any document at or below that
version and either replace the target workspace wholesale or merge into it
with last-writer-wins on ``updatedAt``.

Replace mode deletes and recreates the target inside one adapter
transaction, so a failure leaves the target untouched. Merge mode is not
atomic: entities written before a failure stay written. Either way the
failure is reported through ``ImportResult.errors`` instead of raised, with
the counters reached so far.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional, Union

from pydantic import ValidationError

from .config import DEFAULT_SETTINGS_ID, EXPORT_FORMAT_VERSION, UNTITLED
from .content import blocks_to_markdown
from .errors import InvalidExportError, NotFoundError, UnsupportedVersionError
from .schemas import (
    Database,
    ExportValidation,
    ImportConflict,
    ImportMode,
    ImportResult,
    Page,
    Row,
    WorkspaceExport,
)
from .tree import walk_descendants

if TYPE_CHECKING:
    from .adapter import StorageAdapter

logger = logging.getLogger(__name__)

RawExport = Union[str, bytes, dict[str, Any]]


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_newer(candidate: str, current: str) -> bool:
    """True when ``candidate`` is strictly later than ``current``."""
    candidate_dt = _parse_timestamp(candidate)
    current_dt = _parse_timestamp(current)
    if candidate_dt is None or current_dt is None:
        return str(candidate) > str(current)
    return candidate_dt > current_dt


def _collect_database_sets(
    adapter: StorageAdapter, pages: list[Page]
) -> tuple[list[Database], list[Row]]:
    databases: list[Database] = []
    rows: list[Row] = []
    for page in pages:
        if page.type != "database":
            continue
        database = adapter.get_database(page.id)
        if database is None:
            continue
        databases.append(database)
        rows.extend(adapter.list_full_rows(page.id))
    return databases, rows


def export_workspace(adapter: StorageAdapter, workspace_id: str) -> WorkspaceExport:
    workspace = adapter.get_workspace(workspace_id)
    if workspace is None:
        raise NotFoundError("Workspace", workspace_id)

    pages = adapter.list_full_pages(workspace_id)
    databases, rows = _collect_database_sets(adapter, pages)
    return WorkspaceExport(
        version=EXPORT_FORMAT_VERSION,
        exported_at=utcnow_iso(),
        workspace=workspace,
        pages=pages,
        databases=databases,
        rows=rows,
        settings=adapter.get_settings(DEFAULT_SETTINGS_ID),
    )


def export_page(
    adapter: StorageAdapter, page_id: str, include_children: bool = True
) -> WorkspaceExport:
    page = adapter.get_page(page_id)
    if page is None:
        raise NotFoundError("Page", page_id)
    workspace = adapter.get_workspace(page.workspace_id)
    if workspace is None:
        raise NotFoundError("Workspace", page.workspace_id)

    pages = [page]
    if include_children:
        for summary in walk_descendants(adapter, page_id):
            child = adapter.get_page(summary.id)
            if child is not None:
                pages.append(child)

    databases, rows = _collect_database_sets(adapter, pages)
    return WorkspaceExport(
        version=EXPORT_FORMAT_VERSION,
        exported_at=utcnow_iso(),
        workspace=workspace,
        pages=pages,
        databases=databases,
        rows=rows,
        settings=None,
    )


def export_database(adapter: StorageAdapter, database_page_id: str) -> WorkspaceExport:
    page = adapter.get_page(database_page_id)
    if page is None or page.type != "database":
        raise NotFoundError(
            "Database page",
            database_page_id,
            f"Database page not found: {database_page_id}",
        )
    workspace = adapter.get_workspace(page.workspace_id)
    if workspace is None:
        raise NotFoundError("Workspace", page.workspace_id)
    database = adapter.get_database(database_page_id)
    if database is None:
        raise NotFoundError(
            "Database definition",
            database_page_id,
            f"Database definition not found: {database_page_id}",
        )

    rows = adapter.list_full_rows(database_page_id)
    pages = [page]
    for row in rows:
        row_page = adapter.get_page(row.page_id)
        if row_page is not None:
            pages.append(row_page)

    return WorkspaceExport(
        version=EXPORT_FORMAT_VERSION,
        exported_at=utcnow_iso(),
        workspace=workspace,
        pages=pages,
        databases=[database],
        rows=rows,
        settings=None,
    )


def _check_version(version: Any) -> None:
    if not isinstance(version, int) or isinstance(version, bool):
        raise InvalidExportError("Missing or invalid version field")
    if version > EXPORT_FORMAT_VERSION:
        raise UnsupportedVersionError(version, EXPORT_FORMAT_VERSION)


def _replace(
    adapter: StorageAdapter,
    target_id: str,
    data: WorkspaceExport,
    result: ImportResult,
) -> None:
    # Delete and recreate commit together; a failure leaves the target as it was.
    with adapter.transaction():
        if adapter.get_workspace(target_id) is not None:
            adapter.delete_workspace(target_id)

        adapter.upsert_workspace(
            data.workspace.model_copy(update={"id": target_id, "updated_at": utcnow_iso()})
        )
        for page in data.pages:
            adapter.upsert_page(page.model_copy(update={"workspace_id": target_id}))
            result.pages_added += 1
        for database in data.databases:
            adapter.upsert_database(database)
        for row in data.rows:
            adapter.upsert_row(row)
            result.rows_added += 1
        if data.settings is not None:
            adapter.upsert_settings(data.settings)


def _merge(
    adapter: StorageAdapter,
    target_id: str,
    data: WorkspaceExport,
    result: ImportResult,
) -> None:
    if adapter.get_workspace(target_id) is None:
        adapter.upsert_workspace(
            data.workspace.model_copy(update={"id": target_id, "updated_at": utcnow_iso()})
        )

    # Row conflicts report companion page titles as they were before this
    # import touched any page.
    local_rows: dict[str, Row] = {}
    local_row_titles: dict[str, str] = {}
    for imported_row in data.rows:
        existing_row = adapter.get_row(imported_row.id)
        if existing_row is None:
            continue
        local_rows[imported_row.id] = existing_row
        companion = adapter.get_page(existing_row.page_id)
        local_row_titles[imported_row.id] = companion.title if companion else UNTITLED

    for imported_page in data.pages:
        existing_page = adapter.get_page(imported_page.id)
        incoming = imported_page.model_copy(update={"workspace_id": target_id})
        if existing_page is None:
            adapter.upsert_page(incoming)
            result.pages_added += 1
            continue

        result.conflicts.append(
            ImportConflict(
                type="page",
                id=imported_page.id,
                local_updated_at=existing_page.updated_at,
                imported_updated_at=imported_page.updated_at,
                local_title=existing_page.title,
                imported_title=imported_page.title,
            )
        )
        if is_newer(imported_page.updated_at, existing_page.updated_at):
            adapter.upsert_page(incoming)
            result.pages_updated += 1

    for database in data.databases:
        adapter.upsert_database(database)

    imported_titles = {page.id: page.title for page in data.pages}
    for imported_row in data.rows:
        existing_row = local_rows.get(imported_row.id)
        if existing_row is None:
            adapter.upsert_row(imported_row)
            result.rows_added += 1
            continue

        result.conflicts.append(
            ImportConflict(
                type="row",
                id=imported_row.id,
                local_updated_at=existing_row.updated_at,
                imported_updated_at=imported_row.updated_at,
                local_title=local_row_titles.get(imported_row.id, UNTITLED),
                imported_title=imported_titles.get(imported_row.page_id, UNTITLED),
            )
        )
        if is_newer(imported_row.updated_at, existing_row.updated_at):
            adapter.upsert_row(imported_row)
            result.rows_updated += 1


def import_workspace(
    adapter: StorageAdapter,
    workspace_id: Optional[str],
    data: WorkspaceExport,
    mode: ImportMode,
) -> ImportResult:
    result = ImportResult()
    try:
        _check_version(data.version)
        target_id = workspace_id if workspace_id is not None else data.workspace.id
        if mode == "replace":
            _replace(adapter, target_id, data, result)
        elif mode == "merge":
            _merge(adapter, target_id, data, result)
        else:
            raise ValueError(f"Unknown import mode: {mode}")
    except Exception as exc:
        result.success = False
        result.errors.append(str(exc))
        logger.error(
            "Import into %s failed: %s",
            workspace_id if workspace_id is not None else data.workspace.id,
            exc,
            exc_info=not isinstance(exc, UnsupportedVersionError),
        )
        return result

    logger.info(
        "Imported workspace %s (%s): %d pages added, %d updated, %d rows added, "
        "%d updated, %d conflicts",
        target_id,
        mode,
        result.pages_added,
        result.pages_updated,
        result.rows_added,
        result.rows_updated,
        len(result.conflicts),
        extra={"workspace_id": target_id},
    )
    return result


def _load_raw(raw: RawExport) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidExportError(f"Export document is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise InvalidExportError("Export document must be a JSON object")
    return payload


def parse_export_document(raw: RawExport) -> WorkspaceExport:
    """Parse and validate a portable export document.

    The version is checked before the body so that documents from a newer
    build fail with :class:`UnsupportedVersionError` rather than a schema
    error.
    """
    payload = _load_raw(raw)
    _check_version(payload.get("version"))
    if not isinstance(payload.get("workspace"), dict) or not isinstance(
        payload.get("pages"), list
    ):
        raise InvalidExportError("Invalid export file format")
    try:
        return WorkspaceExport.model_validate(payload)
    except ValidationError as exc:
        raise InvalidExportError(f"Invalid export file format: {exc}") from exc


def validate_export_document(raw: RawExport) -> ExportValidation:
    try:
        payload = _load_raw(raw)
    except InvalidExportError as exc:
        return ExportValidation(valid=False, errors=[str(exc)])

    errors: list[str] = []
    version = payload.get("version")
    if not isinstance(version, int) or isinstance(version, bool):
        errors.append("Missing or invalid version field")
        version = None
    elif version > EXPORT_FORMAT_VERSION:
        errors.append(str(UnsupportedVersionError(version, EXPORT_FORMAT_VERSION)))

    workspace = payload.get("workspace")
    workspace_name = None
    if isinstance(workspace, dict) and isinstance(workspace.get("name"), str):
        workspace_name = workspace["name"]
    else:
        errors.append("Missing or invalid workspace field")

    pages = payload.get("pages")
    if not isinstance(pages, list):
        errors.append("Missing or invalid pages array")

    if not errors:
        try:
            WorkspaceExport.model_validate(payload)
        except ValidationError as exc:
            errors.append(f"Invalid export file format: {exc.error_count()} invalid fields")

    exported_at = payload.get("exportedAt")
    return ExportValidation(
        valid=not errors,
        version=version,
        page_count=len(pages) if isinstance(pages, list) else 0,
        workspace_name=workspace_name,
        exported_at=exported_at if isinstance(exported_at, str) else None,
        errors=errors,
    )


def page_to_markdown(page: Page) -> str:
    """Render a page as a Markdown document headed by its title."""
    title = page.title or UNTITLED
    heading = f"# {page.icon} {title}" if page.icon else f"# {title}"
    body = blocks_to_markdown(page.content)
    return f"{heading}\n\n{body}\n" if body else f"{heading}\n"
