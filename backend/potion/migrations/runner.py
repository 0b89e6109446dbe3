from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from ..backups import BackupManager
from ..config import BACKUP_KEEP_COUNT
from ..errors import MigrationError
from ..schemas import (
    MigrationInfo,
    MigrationRecord,
    MigrationRunResult,
    MigrationState,
    MigrationStatus,
)
from .base import MigrationRegistry
from .ledger import MigrationLedger

if TYPE_CHECKING:
    from ..adapter import StorageAdapter

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MigrationRunner:
    """Applies pending migrations in ascending order, stopping at the first failure.

    The ledger is rewritten after every attempt, so an interrupted run resumes
    from the last completed version. Successful migrations are never re-applied.
    """

    def __init__(
        self,
        registry: MigrationRegistry,
        ledger: MigrationLedger,
        backups: BackupManager,
        *,
        keep_backups: int = BACKUP_KEEP_COUNT,
    ) -> None:
        self.registry = registry
        self.ledger = ledger
        self.backups = backups
        self.keep_backups = keep_backups

    def get_state(self) -> MigrationState:
        return self.ledger.load()

    def get_target_version(self) -> int:
        return self.registry.get_target_version()

    def needs_migrations(self) -> bool:
        return self.get_state().current_version < self.get_target_version()

    def status(self) -> MigrationStatus:
        state = self.get_state()
        target = self.get_target_version()
        return MigrationStatus(
            current_version=state.current_version,
            target_version=target,
            needs_migrations=state.current_version < target,
            pending=[
                MigrationInfo(
                    version=m.version,
                    name=m.name,
                    description=m.description,
                    destructive=m.destructive,
                )
                for m in self.registry.get_pending_migrations(state.current_version)
            ],
            history=state.history,
            last_migration_at=state.last_migration_at,
        )

    def run(self, adapter: StorageAdapter) -> MigrationRunResult:
        state = self.ledger.load()
        pending = self.registry.get_pending_migrations(state.current_version)
        result = MigrationRunResult(final_version=state.current_version)
        if not pending:
            logger.debug("No pending migrations at version %d", state.current_version)
            return result

        logger.info(
            "Running %d migrations from version %d to %d",
            len(pending),
            state.current_version,
            pending[-1].version,
        )
        for migration in pending:
            backup_key: Optional[str] = None
            if migration.destructive:
                backup_key = self.backups.create_backup(adapter, state.current_version)

            try:
                migration.up(adapter)
            except Exception as exc:
                applied_at = _now_iso()
                state.history.append(
                    MigrationRecord(
                        version=migration.version,
                        name=migration.name,
                        applied_at=applied_at,
                        success=False,
                        error=str(exc),
                        backup_key=backup_key,
                    )
                )
                state.last_migration_at = applied_at
                self.ledger.save(state)
                result.success = False
                result.errors.append(f"Migration {migration.version} ({migration.name}) failed: {exc}")
                logger.error(
                    "Migration %d (%s) failed; stopping at version %d",
                    migration.version,
                    migration.name,
                    state.current_version,
                    exc_info=True,
                    extra={"migration_version": migration.version, "backup_key": backup_key},
                )
                break

            applied_at = _now_iso()
            state.history.append(
                MigrationRecord(
                    version=migration.version,
                    name=migration.name,
                    applied_at=applied_at,
                    success=True,
                    backup_key=backup_key,
                )
            )
            state.current_version = migration.version
            state.last_migration_at = applied_at
            self.ledger.save(state)
            result.migrations_run += 1
            logger.info(
                "Applied migration %d (%s)",
                migration.version,
                migration.name,
                extra={"migration_version": migration.version},
            )

        result.final_version = state.current_version
        if result.success:
            self.backups.prune_backups(self.keep_backups)
        return result

    def rollback(self, adapter: StorageAdapter, version: Optional[int] = None) -> MigrationState:
        """Reverse the current migration by calling its ``down`` step.

        Operator-invoked only. ``version`` defaults to the current version and
        must equal it.
        """
        state = self.ledger.load()
        target = state.current_version if version is None else version
        if target != state.current_version or target <= 0:
            raise MigrationError(
                f"Can only roll back the current version {state.current_version}, got {target}"
            )
        migration = self.registry.get(target)
        if migration is None:
            raise MigrationError(f"Migration {target} is not registered")
        if migration.down is None:
            raise MigrationError(f"Migration {target} ({migration.name}) has no down step")

        migration.down(adapter)

        applied_at = _now_iso()
        state.history.append(
            MigrationRecord(
                version=migration.version,
                name=f"{migration.name} (rollback)",
                applied_at=applied_at,
                success=True,
            )
        )
        state.current_version = self.registry.previous_version(target)
        state.last_migration_at = applied_at
        self.ledger.save(state)
        logger.warning(
            "Rolled back migration %d (%s); now at version %d",
            migration.version,
            migration.name,
            state.current_version,
            extra={"migration_version": migration.version},
        )
        return state
