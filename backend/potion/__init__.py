"""Local storage engine for Potion workspaces."""

from .adapter import SqliteStorageAdapter, StorageAdapter
from .provider import StorageContext, StorageProvider

__version__ = "0.1.0"

__all__ = ["SqliteStorageAdapter", "StorageAdapter", "StorageContext", "StorageProvider"]
