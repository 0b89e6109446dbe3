"""Process-wide storage handle with single-flight initialization.

The first caller of :meth:`StorageProvider.get` opens the adapter and runs
pending migrations. Callers arriving while that is in progress wait on the
same future instead of starting a second initialization.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .adapter import SqliteStorageAdapter, StorageAdapter
from .backups import BackupManager
from .config import BACKUP_KEEP_COUNT, DATABASE_PATH, KV_MAX_BYTES, KV_PATH
from .kvstore import KeyValueStore
from .migrations import DEFAULT_REGISTRY, MigrationLedger, MigrationRegistry, MigrationRunner
from .schemas import MigrationRunResult

logger = logging.getLogger(__name__)


@dataclass
class StorageContext:
    adapter: StorageAdapter
    kv_store: KeyValueStore
    backups: BackupManager
    ledger: MigrationLedger
    runner: MigrationRunner
    last_migration_result: Optional[MigrationRunResult] = None


class StorageProvider:
    def __init__(
        self,
        database_path: Union[str, Path, None] = None,
        kv_path: Union[str, Path, None] = None,
        *,
        registry: Optional[MigrationRegistry] = None,
        kv_max_bytes: Optional[int] = None,
        keep_backups: int = BACKUP_KEEP_COUNT,
    ) -> None:
        self.database_path = database_path if database_path is not None else DATABASE_PATH
        self.kv_path = kv_path if kv_path is not None else KV_PATH
        self.registry = registry if registry is not None else DEFAULT_REGISTRY
        self.kv_max_bytes = KV_MAX_BYTES if kv_max_bytes is None else kv_max_bytes
        self.keep_backups = keep_backups
        self._lock = threading.Lock()
        self._future: Optional[Future] = None
        self.init_count = 0

    def build_context(self) -> StorageContext:
        adapter = SqliteStorageAdapter(self.database_path)
        kv_store = KeyValueStore(self.kv_path, max_bytes=self.kv_max_bytes)
        backups = BackupManager(kv_store)
        ledger = MigrationLedger(kv_store)
        runner = MigrationRunner(
            self.registry, ledger, backups, keep_backups=self.keep_backups
        )
        return StorageContext(
            adapter=adapter,
            kv_store=kv_store,
            backups=backups,
            ledger=ledger,
            runner=runner,
        )

    def _initialize(self) -> StorageContext:
        self.init_count += 1
        context = self.build_context()
        context.adapter.init()
        try:
            result = context.runner.run(context.adapter)
        except Exception:
            context.adapter.close()
            raise
        context.last_migration_result = result
        if not result.success:
            logger.error(
                "Storage is running at schema version %d after failed migrations: %s",
                result.final_version,
                "; ".join(result.errors),
            )
        else:
            logger.info("Storage ready at schema version %d", result.final_version)
        return context

    def get(self) -> StorageContext:
        with self._lock:
            future = self._future
            owner = future is None
            if owner:
                future = Future()
                self._future = future

        if not owner:
            return future.result()

        try:
            context = self._initialize()
        except BaseException as exc:
            with self._lock:
                if self._future is future:
                    self._future = None
            future.set_exception(exc)
            raise
        future.set_result(context)
        return context

    @property
    def is_ready(self) -> bool:
        future = self._future
        return future is not None and future.done() and future.exception() is None

    def reset(self) -> None:
        """Drop the current context and close its adapter.

        An initialization still in flight is closed as soon as it finishes.
        """
        with self._lock:
            future = self._future
            self._future = None
        if future is not None:
            future.add_done_callback(_close_context)


def _close_context(future: Future) -> None:
    if future.exception() is None:
        future.result().adapter.close()
