"""Document store backends."""

from __future__ import annotations

from smartcare.config import StoreConfig
from smartcare.errors import ConfigError
from smartcare.store.base import (
    CALL_TRANSCRIPTS,
    CHAT_HISTORY,
    REQUEST_TRACKING,
    TICKETS,
    USER_TICKETS,
    USERS,
    DocumentStore,
)
from smartcare.store.memory import MemoryDocumentStore


def create_store(config: StoreConfig) -> DocumentStore:
    """Build the document store selected by ``config.backend``."""
    if config.backend == "memory":
        return MemoryDocumentStore()
    if config.backend == "supabase":
        from smartcare.store.supabase import SupabaseDocumentStore

        return SupabaseDocumentStore.from_config(config)
    raise ConfigError(f"Unknown store backend: {config.backend}")


__all__ = [
    "CALL_TRANSCRIPTS",
    "CHAT_HISTORY",
    "REQUEST_TRACKING",
    "TICKETS",
    "USER_TICKETS",
    "USERS",
    "DocumentStore",
    "MemoryDocumentStore",
    "create_store",
]
