"""Storage module for session persistence.

Provides the SessionStore interface with in-memory and SQLite
implementations, and the SessionRepository built on top of them.
"""

from __future__ import annotations

from tabletop_engine.core.config import StorageSettings
from tabletop_engine.storage.base import SessionStore, apply_patch
from tabletop_engine.storage.database import SQLiteSessionStore
from tabletop_engine.storage.memory import InMemorySessionStore
from tabletop_engine.storage.repository import SessionRepository


def create_store(settings: StorageSettings) -> SessionStore:
    """Build the session store selected by the storage settings."""
    if settings.backend == "memory":
        return InMemorySessionStore()
    return SQLiteSessionStore(
        settings.database_path,
        busy_timeout=settings.busy_timeout_seconds,
    )


__all__ = [
    "SessionStore",
    "apply_patch",
    "InMemorySessionStore",
    "SQLiteSessionStore",
    "SessionRepository",
    "create_store",
]
