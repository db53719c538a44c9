"""Storage clients for the directory tables."""

from __future__ import annotations

from storedirectory.storage.base import StorageClient, UpsertResult, iter_pages
from storedirectory.storage.memory import MemoryStorage
from storedirectory.storage.postgres import PostgresStorage, open_storage

__all__ = [
    "MemoryStorage",
    "PostgresStorage",
    "StorageClient",
    "UpsertResult",
    "iter_pages",
    "open_storage",
]
