"""Error taxonomy for the storage engine.

Store I/O failures are not wrapped: ``sqlite3.Error`` propagates to callers
as raised by the driver.
"""

from __future__ import annotations


class StorageError(Exception):
    """Base class for storage engine failures."""


class NotInitializedError(StorageError, RuntimeError):
    """Raised when the adapter is used before ``init()`` or after ``close()``."""


class NotFoundError(StorageError, LookupError):
    """Raised when an export or cascade root is missing."""

    def __init__(self, kind: str, entity_id: str, message: str | None = None) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(message or f"{kind} not found: {entity_id}")

    def __str__(self) -> str:
        return str(self.args[0])


class UnsupportedVersionError(StorageError, ValueError):
    """Raised when an export document is newer than this build understands."""

    def __init__(self, version: int, supported: int) -> None:
        self.version = version
        self.supported = supported
        super().__init__(
            f"Unsupported export version: {version}. "
            f"This build supports version {supported} or lower; please update the app."
        )


class InvalidExportError(StorageError, ValueError):
    """Raised when an export document is structurally invalid."""


class MigrationError(StorageError):
    """Raised for invalid migration registration or rollback requests."""


class DuplicateMigrationError(MigrationError):
    """Raised when a migration version is registered twice."""


class BackupError(StorageError):
    """Raised by the side-channel store; backup creation logs and skips it."""


class KeyValueStoreFullError(BackupError):
    """Raised when a write would exceed the side-channel quota."""
