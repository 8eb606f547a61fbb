"""Ticket confirmation messages.

Confirmations go out as SMS through the telephony provider. Delivery is best
effort: a failure is logged and never reaches the caller.
"""

from __future__ import annotations

from loguru import logger

from smartcare.errors import NotificationFailure, TelephonyError
from smartcare.pipeline.tickets import Ticket
from smartcare.providers.base import Telephony


def format_confirmation(ticket: Ticket) -> str:
    return (
        f"Ticket Number: {ticket.ticket_number}\n"
        f"Status: {ticket.status}\n"
        f"Date: {ticket.created_at[:10]}"
    )


class SmsNotifier:
    """Sends ticket confirmations by SMS."""

    def __init__(self, telephony: Telephony | None, enabled: bool = True) -> None:
        self._telephony = telephony
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled and self._telephony is not None

    async def notify(self, phone: str | None, ticket: Ticket) -> None:
        if not self.enabled:
            logger.debug(f"Notifications disabled, not confirming {ticket.ticket_number}")
            return
        if not phone:
            logger.info(f"No phone number for ticket {ticket.ticket_number}, confirmation skipped")
            return

        try:
            await self._send(phone, format_confirmation(ticket))
        except NotificationFailure as e:
            logger.warning(f"Confirmation for {ticket.ticket_number} not delivered: {e}")
            return
        logger.info(f"Confirmation for {ticket.ticket_number} sent to {phone}")

    async def _send(self, phone: str, body: str) -> None:
        try:
            await self._telephony.send_sms(phone, body)
        except TelephonyError as e:
            raise NotificationFailure(str(e)) from e
        except Exception as e:
            raise NotificationFailure(f"unexpected error: {e}") from e
