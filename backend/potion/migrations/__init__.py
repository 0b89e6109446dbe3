from __future__ import annotations

from typing import Optional

from .base import Migration, MigrationRegistry
from .ledger import MigrationLedger
from .runner import MigrationRunner
from . import v001_initial, v002_last_accessed_at

BUILTIN_MIGRATIONS = (v001_initial.MIGRATION, v002_last_accessed_at.MIGRATION)


def build_default_registry() -> MigrationRegistry:
    return MigrationRegistry(BUILTIN_MIGRATIONS)


DEFAULT_REGISTRY = build_default_registry()


def _registry(registry: Optional[MigrationRegistry]) -> MigrationRegistry:
    return registry if registry is not None else DEFAULT_REGISTRY


def register_migration(
    migration: Migration, registry: Optional[MigrationRegistry] = None
) -> Migration:
    """Add ``migration`` to ``registry`` (the default one when omitted)."""
    return _registry(registry).register(migration)


def get_migrations(registry: Optional[MigrationRegistry] = None) -> tuple[Migration, ...]:
    return _registry(registry).migrations


def get_pending_migrations(
    current_version: int, registry: Optional[MigrationRegistry] = None
) -> list[Migration]:
    return _registry(registry).get_pending_migrations(current_version)


def get_target_version(registry: Optional[MigrationRegistry] = None) -> int:
    return _registry(registry).get_target_version()


__all__ = [
    "BUILTIN_MIGRATIONS",
    "DEFAULT_REGISTRY",
    "Migration",
    "MigrationLedger",
    "MigrationRegistry",
    "MigrationRunner",
    "build_default_registry",
    "get_migrations",
    "get_pending_migrations",
    "get_target_version",
    "register_migration",
]
