"""Supabase-backed document store.

Each collection maps to a table of the same name with a text ``id`` primary
key. The supabase client is synchronous, so every call runs in a worker
thread to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Callable

from loguru import logger
from supabase import Client, create_client

from smartcare.config import StoreConfig
from smartcare.errors import ConfigError, StoreUnavailable
from smartcare.store.base import DocumentStore


class SupabaseDocumentStore(DocumentStore):
    """Document store on top of Supabase tables."""

    def __init__(self, client: Client) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: StoreConfig) -> SupabaseDocumentStore:
        if not config.supabase_url or not config.supabase_key:
            raise ConfigError("store.supabase_url and store.supabase_key are required for the supabase backend")
        return cls(create_client(config.supabase_url, config.supabase_key))

    async def _run(self, description: str, fn: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(fn)
        except Exception as e:
            logger.error(f"Supabase {description} failed: {e}")
            raise StoreUnavailable(f"{description}: {e}") from e

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        record_id = uuid.uuid4().hex
        row = {**data, "id": record_id}
        await self._run(
            f"insert into {collection}",
            lambda: self._client.table(collection).insert(row).execute(),
        )
        return record_id

    async def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        result = await self._run(
            f"select from {collection}",
            lambda: self._client.table(collection).select("*").eq("id", record_id).limit(1).execute(),
        )
        return result.data[0] if result.data else None

    async def find(
        self, collection: str, field: str, value: Any, limit: int | None = None
    ) -> list[dict[str, Any]]:
        def query():
            q = self._client.table(collection).select("*").eq(field, value)
            if limit:
                q = q.limit(limit)
            return q.execute()

        result = await self._run(f"query {collection}.{field}", query)
        return list(result.data or [])

    async def find_suffix(
        self, collection: str, field: str, suffix: str, limit: int | None = None
    ) -> list[dict[str, Any]]:
        def query():
            q = self._client.table(collection).select("*").like(field, f"%{suffix}")
            if limit:
                q = q.limit(limit)
            return q.execute()

        result = await self._run(f"suffix query {collection}.{field}", query)
        return list(result.data or [])

    async def update(self, collection: str, record_id: str, changes: dict[str, Any]) -> bool:
        result = await self._run(
            f"update {collection}",
            lambda: self._client.table(collection).update(changes).eq("id", record_id).execute(),
        )
        return bool(result.data)
