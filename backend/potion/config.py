from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parents[2]

try:
    from dotenv import load_dotenv

    load_dotenv(PROJECT_ROOT / ".env", override=True)
except Exception:
    pass


def _env_int(
    name: str,
    default: int,
    *,
    min_value: Optional[int] = None,
    max_value: Optional[int] = None,
) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        parsed = default
    else:
        try:
            parsed = int(raw.strip())
        except ValueError:
            parsed = default

    if min_value is not None:
        parsed = max(min_value, parsed)
    if max_value is not None:
        parsed = min(max_value, parsed)
    return parsed


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = (PROJECT_ROOT / path).resolve()
    return path


# Primary record store (embedded SQLite) and the side-channel key-value file
# that holds migration state and backup snapshots.
DATA_DIR = _env_path("POTION_DATA_DIR", PROJECT_ROOT / "data")
DATABASE_PATH = _env_path("POTION_DATABASE_PATH", DATA_DIR / "potion.db")
KV_PATH = _env_path("POTION_KV_PATH", DATA_DIR / "potion-kv.db")
# 0 disables the quota. Backups that would exceed it are skipped.
KV_MAX_BYTES = _env_int("POTION_KV_MAX_BYTES", 0, min_value=0)

BACKUP_KEEP_COUNT = _env_int("POTION_BACKUP_KEEP_COUNT", 3, min_value=1, max_value=100)
BACKUP_KEY_PREFIX = "potion-backup-v"
MIGRATION_STATE_KEY = "potion-migration-state"

# Portable export document format understood by this build.
EXPORT_FORMAT_VERSION = 1
WORKSPACE_SCHEMA_VERSION = 1
BLOCK_CONTENT_VERSION = 1

DEFAULT_SETTINGS_ID = "default"
DEFAULT_WORKSPACE_ID = "default-workspace"
UNTITLED = "Untitled"

LOG_LEVEL = os.getenv("POTION_LOG_LEVEL", "INFO").strip().upper() or "INFO"
LOG_JSON = _env_bool("POTION_LOG_JSON", True)
