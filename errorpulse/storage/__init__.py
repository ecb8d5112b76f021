"""Persistence layer for errorpulse.

Exports:
    Store              -- Abstract async storage interface.
    StorageError       -- Raised when a backend read or write fails.
    DuplicateEventError -- StorageError for an event id recorded twice.
    GroupNotFoundError -- Raised for unknown group ids.
    InMemoryStore      -- Dict-backed store guarded by an asyncio lock.
    SQLiteStore        -- sqlite3-backed store with atomic fingerprint upserts.
    build_store        -- Factory used by the application bootstrap.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from errorpulse.storage.base import DuplicateEventError, GroupNotFoundError, StorageError, Store
from errorpulse.storage.memory import InMemoryStore
from errorpulse.storage.sqlite import SQLiteStore

if TYPE_CHECKING:
    from errorpulse.models.config import StorageConfig

__all__ = [
    "DuplicateEventError",
    "GroupNotFoundError",
    "InMemoryStore",
    "SQLiteStore",
    "StorageError",
    "Store",
    "build_store",
]


def build_store(config: StorageConfig) -> Store:
    """Build the configured storage backend."""
    if config.backend == "sqlite":
        return SQLiteStore(config.sqlite_path)
    if config.backend == "memory":
        return InMemoryStore()
    raise ValueError(f"Unknown storage backend: {config.backend!r}")
