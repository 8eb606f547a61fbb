"""Document store interface.

The gateway treats persistence as a keyed collection store: records are plain
dicts grouped into named collections, each with a generated string ``id``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

# Collection names are shared with downstream staff tooling
TICKETS = "supportRequests"
USER_TICKETS = "userTickets"
CALL_TRANSCRIPTS = "callTranscripts"
CHAT_HISTORY = "chatHistory"
REQUEST_TRACKING = "requestTracking"
USERS = "users"


class DocumentStore(ABC):
    """Abstract base class for document stores.

    Every method raises :class:`~smartcare.errors.StoreUnavailable` when the
    backend cannot be reached or rejects the operation.
    """

    @abstractmethod
    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Insert a record and return its generated id."""
        ...

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        """Fetch one record by id, or None."""
        ...

    @abstractmethod
    async def find(
        self, collection: str, field: str, value: Any, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Return records whose ``field`` equals ``value``."""
        ...

    @abstractmethod
    async def find_suffix(
        self, collection: str, field: str, suffix: str, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Return records whose string ``field`` ends with ``suffix``."""
        ...

    @abstractmethod
    async def update(self, collection: str, record_id: str, changes: dict[str, Any]) -> bool:
        """Merge ``changes`` into a record. Returns False if it does not exist."""
        ...
