"""Ticket model, numbering and persistence.

Ticket numbers look like ``TKT-<6 clock digits><12 random digits>``. The clock
digits are the last six digits of the epoch-millisecond time and the random
digits come from :mod:`secrets`. Uniqueness is probabilistic: two numbers
collide only if they share a millisecond window modulo 10^6 *and* draw the
same 12-digit suffix. Collisions are not detected.
"""

from __future__ import annotations

import re
import secrets
import time
from datetime import datetime, timezone

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, model_validator

from smartcare.errors import StoreUnavailable
from smartcare.store import TICKETS, USER_TICKETS, DocumentStore

CATEGORIES = ("Plumbing", "Electrical", "HVAC", "Structural", "Appliance", "Other")
PRIORITIES = ("Low", "Medium", "High", "Emergency")

DEFAULT_PREFIX = "TKT"
MANUAL_PREFIX = "TKT-MANUAL"
UNKNOWN = "UNKNOWN"
SUMMARY_MAX_CHARS = 150

TIME_DIGITS = 6
RANDOM_DIGITS = 12
TICKET_NUMBER_RE = re.compile(rf"^(?P<prefix>[A-Z]+(?:-[A-Z]+)*)-\d{{{TIME_DIGITS + RANDOM_DIGITS}}}$")


def next_ticket_number(prefix: str = DEFAULT_PREFIX) -> str:
    """Generate a human-readable ticket number."""
    clock = int(time.time() * 1000) % 10**TIME_DIGITS
    suffix = secrets.randbelow(10**RANDOM_DIGITS)
    return f"{prefix}-{clock:0{TIME_DIGITS}d}{suffix:0{RANDOM_DIGITS}d}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _normalize(value: str, vocabulary: tuple[str, ...], default: str) -> str:
    wanted = (value or "").strip().lower()
    for term in vocabulary:
        if term.lower() == wanted:
            return term
    return default


class TicketFields(BaseModel):
    """Structured details extracted from a conversation."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    resident_name: str = Field(alias="residentName")
    problem_description: str = Field(alias="problemDescription")
    preferred_service_time: str = Field(alias="preferredServiceTime")
    community: str = UNKNOWN
    unit_number: str = Field(UNKNOWN, alias="unitNumber")
    category: str = "Other"
    priority: str = "Medium"
    summary: str = ""

    @model_validator(mode="after")
    def _apply_defaults(self) -> TicketFields:
        self.community = (self.community or "").strip() or UNKNOWN
        self.unit_number = (self.unit_number or "").strip() or UNKNOWN
        self.category = _normalize(self.category, CATEGORIES, "Other")
        self.priority = _normalize(self.priority, PRIORITIES, "Medium")
        if not self.summary:
            self.summary = self.problem_description[:SUMMARY_MAX_CHARS]
        else:
            self.summary = self.summary[:SUMMARY_MAX_CHARS]
        return self


class Ticket(TicketFields):
    """A persisted maintenance request."""

    ticket_id: str = Field("", alias="ticketId")
    ticket_number: str = Field(alias="ticketNumber")
    status: str = "pending"
    transcript: str = ""
    user_id: str | None = Field(None, alias="userId")
    created_at: str = Field(default_factory=_now_iso, alias="createdAt")
    updated_at: str = Field(default_factory=_now_iso, alias="updatedAt")

    def to_record(self) -> dict:
        """The stored field set, using the collection's camelCase names."""
        return self.model_dump(by_alias=True, exclude={"ticket_id"})


class TicketRef(BaseModel):
    """Reference to a created ticket.

    When the store was unavailable ``error`` is set and the id/number are
    synthetic placeholders, so callers can still answer the end user.
    """

    ticket_id: str
    ticket_number: str
    error: bool = False
    ticket: Ticket | None = None

    @classmethod
    def unavailable(cls) -> TicketRef:
        return cls(
            ticket_id="error-creating-ticket",
            ticket_number=f"ERROR-{int(time.time() * 1000)}",
            error=True,
        )


class TicketStore:
    """Creates and looks up tickets in the document store."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def create_ticket(
        self,
        fields: TicketFields,
        transcript: str,
        owner_id: str | None = None,
        prefix: str = DEFAULT_PREFIX,
    ) -> TicketRef:
        """Persist a new ticket and, for known owners, a cross-reference.

        Never raises: a store failure yields an error-tagged reference.
        """
        ticket = Ticket(
            **fields.model_dump(),
            ticket_number=next_ticket_number(prefix),
            transcript=transcript,
            user_id=owner_id,
        )

        try:
            ticket.ticket_id = await self._store.add(TICKETS, ticket.to_record())
        except StoreUnavailable as e:
            logger.error(f"Ticket {ticket.ticket_number} could not be stored: {e}")
            return TicketRef.unavailable()

        logger.info(f"Ticket created: {ticket.ticket_number} (id: {ticket.ticket_id})")

        if owner_id:
            await self._write_cross_reference(owner_id, ticket)

        return TicketRef(ticket_id=ticket.ticket_id, ticket_number=ticket.ticket_number, ticket=ticket)

    async def _write_cross_reference(self, owner_id: str, ticket: Ticket) -> None:
        try:
            await self._store.add(
                USER_TICKETS,
                {
                    "userId": owner_id,
                    "ticketId": ticket.ticket_id,
                    "ticketNumber": ticket.ticket_number,
                    "summary": ticket.summary,
                    "status": ticket.status,
                    "createdAt": ticket.created_at,
                },
            )
        except StoreUnavailable as e:
            logger.warning(f"Cross-reference for ticket {ticket.ticket_number} and user {owner_id} failed: {e}")

    async def get(self, ticket_id: str) -> Ticket | None:
        record = await self._store.get(TICKETS, ticket_id)
        return self._to_ticket(record) if record else None

    async def find_by_number(self, ticket_number: str) -> Ticket | None:
        records = await self._store.find(TICKETS, "ticketNumber", ticket_number, limit=1)
        return self._to_ticket(records[0]) if records else None

    async def list_user_tickets(self, user_id: str) -> list[dict]:
        """Cross-reference entries for a user's tickets."""
        return await self._store.find(USER_TICKETS, "userId", user_id)

    @staticmethod
    def _to_ticket(record: dict) -> Ticket:
        data = dict(record)
        data["ticketId"] = data.pop("id", data.get("ticketId", ""))
        return Ticket.model_validate(data)
