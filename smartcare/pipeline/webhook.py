"""Ticket webhook forwarding.

After a ticket is created its extracted fields, plus ``ticketId`` and
``ticketNumber``, can be POSTed to an external URL (staff dashboards,
automation tools). Delivery is best effort: a failed POST is logged and never
affects the ticket.
"""

from __future__ import annotations

import asyncio
from typing import Any

import aiohttp
from loguru import logger

from smartcare.pipeline.tickets import TicketRef


class TicketWebhook:
    """Posts created tickets to a configured URL.

    Args:
        url: Destination URL. An empty URL disables forwarding.
        timeout_seconds: Total time allowed for one POST.
    """

    def __init__(self, url: str = "", timeout_seconds: float = 10.0) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                headers={"Content-Type": "application/json"},
            )
        return self._session

    @staticmethod
    def payload(ref: TicketRef) -> dict[str, Any]:
        """Extracted ticket fields plus the ids assigned on creation."""
        data = ref.ticket.model_dump(by_alias=True, exclude={"transcript", "ticket_id"})
        data["ticketId"] = ref.ticket_id
        data["ticketNumber"] = ref.ticket_number
        return data

    async def send(self, ref: TicketRef) -> bool:
        """POST the ticket. Returns True when the receiver accepted it."""
        if not self.enabled or ref.ticket is None:
            return False

        try:
            session = await self._get_session()
            async with session.post(self.url, json=self.payload(ref)) as resp:
                if resp.status < 300:
                    logger.info(f"Ticket {ref.ticket_number} forwarded to webhook")
                    return True
                error = await resp.text()
                logger.warning(
                    f"Webhook rejected ticket {ref.ticket_number}: HTTP {resp.status} {error[:200]}"
                )
                return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Could not forward ticket {ref.ticket_number} to webhook: {e}")
            return False

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
