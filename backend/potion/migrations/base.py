from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from ..errors import DuplicateMigrationError, MigrationError

if TYPE_CHECKING:
    from ..adapter import StorageAdapter

MigrationStep = Callable[["StorageAdapter"], None]


@dataclass(frozen=True)
class Migration:
    """One versioned schema or data change.

    ``destructive`` migrations get a backup taken before ``up`` runs.
    ``down`` is only ever invoked explicitly by an operator.
    """

    version: int
    name: str
    description: str
    up: MigrationStep
    destructive: bool = False
    down: Optional[MigrationStep] = None


class MigrationRegistry:
    """Migrations kept sorted ascending by version."""

    def __init__(self, migrations: Iterable[Migration] = ()) -> None:
        self._migrations: list[Migration] = []
        for migration in migrations:
            self.register(migration)

    def register(self, migration: Migration) -> Migration:
        if not isinstance(migration.version, int) or migration.version <= 0:
            raise MigrationError(
                f"Migration version must be a positive integer, got {migration.version!r}"
            )
        if any(existing.version == migration.version for existing in self._migrations):
            raise DuplicateMigrationError(
                f"Migration version {migration.version} already registered"
            )
        self._migrations.append(migration)
        self._migrations.sort(key=lambda item: item.version)
        return migration

    @property
    def migrations(self) -> tuple[Migration, ...]:
        return tuple(self._migrations)

    def get(self, version: int) -> Optional[Migration]:
        for migration in self._migrations:
            if migration.version == version:
                return migration
        return None

    def get_pending_migrations(self, current_version: int) -> list[Migration]:
        return [m for m in self._migrations if m.version > current_version]

    def get_target_version(self) -> int:
        return self._migrations[-1].version if self._migrations else 0

    def previous_version(self, version: int) -> int:
        earlier = [m.version for m in self._migrations if m.version < version]
        return earlier[-1] if earlier else 0

    def __len__(self) -> int:
        return len(self._migrations)
