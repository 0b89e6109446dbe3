"""Export-based backups kept in the side-channel key-value store.

The record store cannot take atomic whole-database snapshots, so a backup is
a JSON collection of workspace exports. Backups are best-effort: a full or
unavailable side channel is logged and skipped, never raised into the
migration that asked for the backup.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from .config import BACKUP_KEEP_COUNT, BACKUP_KEY_PREFIX
from .errors import BackupError, NotFoundError
from .kvstore import KeyValueStore
from .schemas import BackupInfo, ImportResult, WorkspaceExport

if TYPE_CHECKING:
    from .adapter import StorageAdapter

logger = logging.getLogger(__name__)


def backup_key(version: int, timestamp_ms: int) -> str:
    return f"{BACKUP_KEY_PREFIX}{version}-{timestamp_ms}"


class BackupManager:
    def __init__(self, kv_store: KeyValueStore) -> None:
        self.kv_store = kv_store

    def _new_key(self, version: int) -> str:
        timestamp_ms = int(time.time() * 1000)
        existing = set(self.kv_store.keys(f"{BACKUP_KEY_PREFIX}{version}-"))
        while backup_key(version, timestamp_ms) in existing:
            timestamp_ms += 1
        return backup_key(version, timestamp_ms)

    def create_backup(self, adapter: StorageAdapter, version: int) -> str:
        """Snapshot every workspace under a new key and return the key.

        The key is returned even when the write was skipped, so the caller
        can still record which snapshot was attempted.
        """
        key = backup_key(version, int(time.time() * 1000))
        try:
            key = self._new_key(version)
            exports = [
                adapter.export_workspace(workspace.id).to_record()
                for workspace in adapter.list_workspaces()
            ]
            payload = {
                "version": version,
                "createdAt": datetime.now(timezone.utc).isoformat(),
                "workspaces": exports,
            }
            self.kv_store.set(key, json.dumps(payload, ensure_ascii=False))
        except (BackupError, sqlite3.Error, OSError) as exc:
            logger.warning(
                "Could not write backup %s: %s",
                key,
                exc,
                extra={"backup_key": key},
            )
            return key
        except Exception:
            logger.warning(
                "Could not snapshot workspaces for backup %s",
                key,
                exc_info=True,
                extra={"backup_key": key},
            )
            return key

        logger.info(
            "Created backup %s (%d workspaces)",
            key,
            len(exports),
            extra={"backup_key": key},
        )
        return key

    def list_backups(self) -> list[BackupInfo]:
        backups: list[BackupInfo] = []
        for key in self.kv_store.keys(BACKUP_KEY_PREFIX):
            try:
                data = json.loads(self.kv_store.get(key) or "{}")
                backups.append(
                    BackupInfo(
                        key=key,
                        version=int(data.get("version") or 0),
                        created_at=str(data.get("createdAt") or "unknown"),
                    )
                )
            except (TypeError, ValueError, AttributeError):
                logger.debug("Skipping unreadable backup entry %s", key)
        backups.sort(key=lambda item: (item.version, item.created_at), reverse=True)
        return backups

    def prune_backups(self, keep_count: int = BACKUP_KEEP_COUNT) -> list[str]:
        removed: list[str] = []
        for backup in self.list_backups()[max(0, keep_count):]:
            self.kv_store.delete(backup.key)
            removed.append(backup.key)
        if removed:
            logger.info("Pruned %d old backups", len(removed))
        return removed

    def load_backup(self, key: str) -> list[WorkspaceExport]:
        raw = self.kv_store.get(key)
        if raw is None:
            raise NotFoundError("Backup", key)
        data = json.loads(raw)
        return [WorkspaceExport.model_validate(item) for item in data.get("workspaces") or []]

    def restore_backup(self, adapter: StorageAdapter, key: str) -> list[ImportResult]:
        """Re-import every workspace in the snapshot, replacing current data."""
        results = [
            adapter.import_workspace(export.workspace.id, export, "replace")
            for export in self.load_backup(key)
        ]
        logger.info(
            "Restored backup %s (%d workspaces)",
            key,
            len(results),
            extra={"backup_key": key},
        )
        return results
