"""Document store back-ends consumed by the collaboration layer."""

from __future__ import annotations

from taskcollab.config import Settings
from taskcollab.store.base import DocumentStore, ServerClock
from taskcollab.store.memory import MemoryDocumentStore
from taskcollab.store.null import NullDocumentStore
from taskcollab.store.sqlite import SQLiteDocumentStore


def create_store(settings: Settings) -> DocumentStore:
    """Build the store back-end named by ``settings.store``.

    Unknown names fall back to the unconfigured (local-only) store.
    """
    if settings.store == "memory":
        return MemoryDocumentStore()
    if settings.store == "sqlite":
        return SQLiteDocumentStore(settings.store_path)
    return NullDocumentStore()


__all__ = [
    "DocumentStore",
    "MemoryDocumentStore",
    "NullDocumentStore",
    "SQLiteDocumentStore",
    "ServerClock",
    "create_store",
]
