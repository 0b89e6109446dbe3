from __future__ import annotations

from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from .errors import InvalidExportError, NotFoundError, UnsupportedVersionError
from .logging_setup import configure_logging
from .provider import StorageContext, StorageProvider
from .schemas import (
    BackupInfo,
    ExportValidation,
    ImportRequest,
    ImportResult,
    MigrationStatus,
    Page,
    PageSummary,
    RowSummary,
    StorageStats,
    Workspace,
    WorkspaceExport,
)
from .services.pages import workspace_tree
from .transfer import page_to_markdown, parse_export_document, validate_export_document

storage_provider = StorageProvider()

app = FastAPI(
    title="Potion Storage",
    description="Local storage engine for Potion workspaces: CRUD, migrations, backups, export and import.",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_context() -> StorageContext:
    return storage_provider.get()


@app.on_event("startup")
def startup_event() -> None:
    configure_logging()
    storage_provider.get()


@app.on_event("shutdown")
def shutdown_event() -> None:
    storage_provider.reset()


@app.get("/health")
def health_check(context: StorageContext = Depends(get_context)) -> dict[str, Any]:
    state = context.runner.get_state()
    return {
        "status": "ok",
        "schemaVersion": state.current_version,
        "targetVersion": context.runner.get_target_version(),
    }


@app.get("/api/stats", response_model=StorageStats)
def get_stats(context: StorageContext = Depends(get_context)) -> StorageStats:
    return context.adapter.get_stats()


@app.get("/api/workspaces", response_model=list[Workspace])
def list_workspaces(context: StorageContext = Depends(get_context)) -> list[Workspace]:
    return context.adapter.list_workspaces()


@app.get("/api/workspaces/{workspace_id}", response_model=Workspace)
def get_workspace(workspace_id: str, context: StorageContext = Depends(get_context)) -> Workspace:
    workspace = context.adapter.get_workspace(workspace_id)
    if workspace is None:
        raise HTTPException(status_code=404, detail="Workspace not found")
    return workspace


@app.get("/api/workspaces/{workspace_id}/pages", response_model=list[PageSummary])
def list_pages(workspace_id: str, context: StorageContext = Depends(get_context)) -> list[PageSummary]:
    return context.adapter.list_pages(workspace_id)


@app.get("/api/workspaces/{workspace_id}/tree")
def get_page_tree(workspace_id: str, context: StorageContext = Depends(get_context)) -> list[dict[str, Any]]:
    return [node.to_dict() for node in workspace_tree(context.adapter, workspace_id)]


@app.get("/api/workspaces/{workspace_id}/search", response_model=list[PageSummary])
def search_pages(
    workspace_id: str,
    q: str = Query(default="", max_length=500),
    context: StorageContext = Depends(get_context),
) -> list[PageSummary]:
    return context.adapter.search_pages(workspace_id, q)


@app.get("/api/pages/{page_id}", response_model=Page)
def get_page(page_id: str, context: StorageContext = Depends(get_context)) -> Page:
    page = context.adapter.get_page(page_id)
    if page is None:
        raise HTTPException(status_code=404, detail="Page not found")
    return page


@app.get("/api/databases/{page_id}/rows", response_model=list[RowSummary])
def list_rows(page_id: str, context: StorageContext = Depends(get_context)) -> list[RowSummary]:
    return context.adapter.list_rows(page_id)


@app.get("/api/workspaces/{workspace_id}/export", response_model=WorkspaceExport)
def export_workspace(workspace_id: str, context: StorageContext = Depends(get_context)) -> WorkspaceExport:
    try:
        return context.adapter.export_workspace(workspace_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/pages/{page_id}/export", response_model=WorkspaceExport)
def export_page(
    page_id: str,
    include_children: bool = Query(default=True),
    context: StorageContext = Depends(get_context),
) -> WorkspaceExport:
    try:
        return context.adapter.export_page(page_id, include_children)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/pages/{page_id}/markdown", response_class=PlainTextResponse)
def export_page_markdown(page_id: str, context: StorageContext = Depends(get_context)) -> str:
    page = context.adapter.get_page(page_id)
    if page is None:
        raise HTTPException(status_code=404, detail="Page not found")
    return page_to_markdown(page)


@app.get("/api/databases/{page_id}/export", response_model=WorkspaceExport)
def export_database(page_id: str, context: StorageContext = Depends(get_context)) -> WorkspaceExport:
    try:
        return context.adapter.export_database(page_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/api/import", response_model=ImportResult)
def import_workspace(payload: ImportRequest, context: StorageContext = Depends(get_context)) -> ImportResult:
    try:
        data = parse_export_document(payload.data)
    except UnsupportedVersionError as exc:
        return ImportResult(success=False, errors=[str(exc)])
    except InvalidExportError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return context.adapter.import_workspace(payload.workspace_id, data, payload.mode)


@app.post("/api/import/validate", response_model=ExportValidation)
def validate_import(payload: dict[str, Any] = Body(...)) -> ExportValidation:
    return validate_export_document(payload)


@app.get("/api/migrations", response_model=MigrationStatus)
def get_migrations(context: StorageContext = Depends(get_context)) -> MigrationStatus:
    return context.runner.status()


@app.get("/api/backups", response_model=list[BackupInfo])
def list_backups(context: StorageContext = Depends(get_context)) -> list[BackupInfo]:
    return context.backups.list_backups()
