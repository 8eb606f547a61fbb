"""In-process document store used for development and tests."""

from __future__ import annotations

import copy
import uuid
from typing import Any

from smartcare.store.base import DocumentStore


class MemoryDocumentStore(DocumentStore):
    """Dict-backed store. Records are deep-copied in and out."""

    def __init__(self, seed: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        for collection, records in (seed or {}).items():
            for record in records:
                record_id = str(record.get("id") or uuid.uuid4().hex)
                self._bucket(collection)[record_id] = {**copy.deepcopy(record), "id": record_id}

    def _bucket(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        record_id = uuid.uuid4().hex
        self._bucket(collection)[record_id] = {**copy.deepcopy(data), "id": record_id}
        return record_id

    async def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        record = self._bucket(collection).get(record_id)
        return copy.deepcopy(record) if record else None

    async def find(
        self, collection: str, field: str, value: Any, limit: int | None = None
    ) -> list[dict[str, Any]]:
        matches = [r for r in self._bucket(collection).values() if r.get(field) == value]
        return copy.deepcopy(matches[:limit] if limit else matches)

    async def find_suffix(
        self, collection: str, field: str, suffix: str, limit: int | None = None
    ) -> list[dict[str, Any]]:
        matches = [
            r
            for r in self._bucket(collection).values()
            if isinstance(r.get(field), str) and r[field].endswith(suffix)
        ]
        return copy.deepcopy(matches[:limit] if limit else matches)

    async def update(self, collection: str, record_id: str, changes: dict[str, Any]) -> bool:
        record = self._bucket(collection).get(record_id)
        if record is None:
            return False
        record.update(copy.deepcopy(changes))
        return True

    def all(self, collection: str) -> list[dict[str, Any]]:
        """Snapshot of every record in a collection."""
        return copy.deepcopy(list(self._bucket(collection).values()))
