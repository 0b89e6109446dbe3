from __future__ import annotations

from typing import TYPE_CHECKING

from ..errors import MigrationError
from .base import Migration

if TYPE_CHECKING:
    from ..adapter import StorageAdapter


def up(adapter: StorageAdapter) -> None:
    # Tables and indexes are created by init(); version 1 only marks the baseline.
    return None


def down(adapter: StorageAdapter) -> None:
    raise MigrationError("The initial schema cannot be rolled back")


MIGRATION = Migration(
    version=1,
    name="initial-schema",
    description="Baseline schema: workspaces, pages, databases, rows, settings.",
    up=up,
    down=down,
)
