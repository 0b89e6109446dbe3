from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import (
    BLOCK_CONTENT_VERSION,
    DEFAULT_SETTINGS_ID,
    WORKSPACE_SCHEMA_VERSION,
)

PageType = Literal["page", "database"]
PropertyType = Literal["text", "number", "date", "checkbox", "select", "multiSelect", "url"]
ThemePreference = Literal["light", "dark", "system"]
EditorWidth = Literal["narrow", "medium", "wide", "full"]
ImportMode = Literal["replace", "merge"]
ConflictType = Literal["page", "row"]


class StorageModel(BaseModel):
    """Base for everything that crosses the wire: camelCase on the outside."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class RecordModel(StorageModel):
    """Persisted records keep any fields they were written with."""

    model_config = ConfigDict(extra="allow")


class Workspace(RecordModel):
    id: str
    name: str
    created_at: str
    updated_at: str
    version: int = WORKSPACE_SCHEMA_VERSION


class BlockContent(RecordModel):
    # Blocks are the editor's document and are stored verbatim. Each block is
    # a mapping with an optional "content" list of inline runs ({"type",
    # "text", ...}) and an optional "children" list of nested blocks.
    version: int = BLOCK_CONTENT_VERSION
    blocks: list[dict[str, Any]] = Field(default_factory=list)


class _PageFields(StorageModel):
    id: str
    workspace_id: str
    parent_page_id: Optional[str] = None
    title: str = ""
    type: PageType = "page"
    icon: Optional[str] = None
    is_favorite: bool = False
    is_full_width: bool = False
    created_at: str
    updated_at: str
    # Absent on records written before schema version 2.
    last_accessed_at: Optional[str] = None


class PageSummary(_PageFields):
    pass


class Page(_PageFields, RecordModel):
    content: BlockContent = Field(default_factory=BlockContent)
    cover_image: Optional[str] = None

    def summary(self) -> PageSummary:
        return PageSummary.model_validate(
            self.model_dump(include=set(PageSummary.model_fields))
        )


class SelectOption(RecordModel):
    id: str
    name: str
    color: str = "gray"


class PropertyDefinition(RecordModel):
    id: str
    name: str
    type: PropertyType
    options: Optional[list[SelectOption]] = None


class ViewFilter(RecordModel):
    property_id: str
    operator: Literal[
        "equals",
        "notEquals",
        "contains",
        "notContains",
        "isEmpty",
        "isNotEmpty",
        "gt",
        "gte",
        "lt",
        "lte",
    ]
    value: Any = None


class ViewSort(RecordModel):
    property_id: str
    direction: Literal["asc", "desc"] = "asc"


class DatabaseView(RecordModel):
    id: str
    name: str
    type: Literal["table", "list"] = "table"
    filters: list[ViewFilter] = Field(default_factory=list)
    sorts: list[ViewSort] = Field(default_factory=list)


class Database(RecordModel):
    page_id: str
    properties: list[PropertyDefinition] = Field(default_factory=list)
    views: list[DatabaseView] = Field(default_factory=list)


class Row(RecordModel):
    id: str
    database_page_id: str
    page_id: str
    values: dict[str, Any] = Field(default_factory=dict)
    created_at: str
    updated_at: str


class RowSummary(StorageModel):
    id: str
    database_page_id: str
    page_id: str
    title: str
    created_at: str
    updated_at: str


class Settings(RecordModel):
    id: str = DEFAULT_SETTINGS_ID
    theme: ThemePreference = "system"
    font_size: int = 16
    editor_width: EditorWidth = "medium"
    sidebar_collapsed: bool = False


class WorkspaceExport(StorageModel):
    version: int
    exported_at: str
    workspace: Workspace
    pages: list[Page] = Field(default_factory=list)
    databases: list[Database] = Field(default_factory=list)
    rows: list[Row] = Field(default_factory=list)
    settings: Optional[Settings] = None


class ImportConflict(StorageModel):
    type: ConflictType
    id: str
    local_updated_at: str
    imported_updated_at: str
    local_title: str
    imported_title: str


class ImportResult(StorageModel):
    success: bool = True
    pages_added: int = 0
    pages_updated: int = 0
    rows_added: int = 0
    rows_updated: int = 0
    conflicts: list[ImportConflict] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class ExportValidation(StorageModel):
    valid: bool
    version: Optional[int] = None
    page_count: int = 0
    workspace_name: Optional[str] = None
    exported_at: Optional[str] = None
    errors: list[str] = Field(default_factory=list)


class StorageStats(StorageModel):
    workspace_count: int
    page_count: int
    database_count: int
    row_count: int
    estimated_size_bytes: int


class MigrationRecord(StorageModel):
    version: int
    name: str
    applied_at: str
    success: bool
    error: Optional[str] = None
    backup_key: Optional[str] = None


class MigrationState(StorageModel):
    current_version: int = 0
    history: list[MigrationRecord] = Field(default_factory=list)
    last_migration_at: Optional[str] = None


class MigrationRunResult(StorageModel):
    success: bool = True
    migrations_run: int = 0
    final_version: int = 0
    errors: list[str] = Field(default_factory=list)


class BackupInfo(StorageModel):
    key: str
    version: int
    created_at: str


class ImportRequest(StorageModel):
    workspace_id: Optional[str] = None
    mode: ImportMode = "merge"
    data: dict[str, Any]


class MigrationInfo(StorageModel):
    version: int
    name: str
    description: str
    destructive: bool = False


class MigrationStatus(StorageModel):
    current_version: int
    target_version: int
    needs_migrations: bool
    pending: list[MigrationInfo] = Field(default_factory=list)
    history: list[MigrationRecord] = Field(default_factory=list)
    last_migration_at: Optional[str] = None
