from __future__ import annotations

import logging

from pydantic import ValidationError

from ..config import MIGRATION_STATE_KEY
from ..kvstore import KeyValueStore
from ..schemas import MigrationState

logger = logging.getLogger(__name__)


class MigrationLedger:
    """Persisted ``MigrationState`` under a single fixed key."""

    def __init__(self, kv_store: KeyValueStore, key: str = MIGRATION_STATE_KEY) -> None:
        self.kv_store = kv_store
        self.key = key

    def load(self) -> MigrationState:
        raw = self.kv_store.get(self.key)
        if not raw:
            return MigrationState()
        try:
            return MigrationState.model_validate_json(raw)
        except ValidationError:
            logger.warning("Migration state under %s is unreadable; treating as version 0", self.key)
            return MigrationState()

    def save(self, state: MigrationState) -> None:
        # The ledger is exempt from the side-channel quota: losing it would
        # re-run migrations that already succeeded.
        self.kv_store.set(self.key, state.model_dump_json(by_alias=True), enforce_quota=False)
