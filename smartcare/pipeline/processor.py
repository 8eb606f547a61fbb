"""Post-conversation ticket pipeline.

A finished call or chat is processed at most once per session key:

    claim key -> resolve caller -> save transcript -> extract fields
    -> apply verified-user details -> create ticket -> forward to webhook
    -> send confirmation

Every entry point returns a :class:`PipelineOutcome`; no exception escapes.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from loguru import logger

from smartcare.config import PipelineConfig
from smartcare.errors import StoreUnavailable, TelephonyError
from smartcare.pipeline.extractor import ExtractionMalformed, TranscriptExtractor
from smartcare.pipeline.notifier import SmsNotifier
from smartcare.pipeline.tickets import MANUAL_PREFIX, TicketFields, TicketRef, TicketStore
from smartcare.pipeline.webhook import TicketWebhook
from smartcare.providers.base import Telephony
from smartcare.session import ProcessedCall, ProcessedCallRegistry
from smartcare.store import CALL_TRANSCRIPTS, DocumentStore
from smartcare.users import CallerIdentity, User, UserDirectory

MANUAL_RESIDENT_NAME = "Unknown Caller"
MANUAL_DESCRIPTION = "Call completed without a usable transcript. Details to be collected by staff."


class PipelineStatus(str, Enum):
    CREATED = "created"
    ALREADY_PROCESSED = "already_processed"
    MALFORMED = "malformed"
    EMPTY = "empty"
    STORE_UNAVAILABLE = "store_unavailable"
    MANUAL = "manual"
    FAILED = "failed"


@dataclass
class PipelineOutcome:
    status: PipelineStatus
    session_key: str
    ticket: TicketRef | None = None
    failure: ExtractionMalformed | None = None

    @property
    def ticket_number(self) -> str | None:
        return self.ticket.ticket_number if self.ticket else None

    @property
    def created_ticket(self) -> bool:
        """True when this run wrote a ticket (automatic or manual)."""
        return self.status in (PipelineStatus.CREATED, PipelineStatus.MANUAL)

    def to_dict(self) -> dict:
        data: dict = {"status": self.status.value, "sessionKey": self.session_key}
        if self.ticket:
            data["ticketId"] = self.ticket.ticket_id
            data["ticketNumber"] = self.ticket.ticket_number
        if self.failure:
            data["failure"] = self.failure.reason.value
        return data


def looks_like_call_sid(key: str) -> bool:
    return key.startswith("CA") and len(key) == 34


class TicketPipeline:
    """Turns finished conversations into tickets."""

    def __init__(
        self,
        extractor: TranscriptExtractor,
        tickets: TicketStore,
        notifier: SmsNotifier,
        users: UserDirectory,
        store: DocumentStore,
        registry: ProcessedCallRegistry,
        telephony: Telephony | None = None,
        config: PipelineConfig | None = None,
        webhook: TicketWebhook | None = None,
    ) -> None:
        self.extractor = extractor
        self.tickets = tickets
        self.notifier = notifier
        self.users = users
        self.store = store
        self.registry = registry
        self.telephony = telephony
        self.config = config or PipelineConfig()
        self.webhook = webhook or TicketWebhook()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def process_call(
        self,
        key: str,
        transcript: str,
        caller_phone: str | None = None,
        direction: str | None = None,
    ) -> PipelineOutcome:
        """Process the transcript of a finished phone call."""
        if not transcript.strip() and key not in self.registry:
            # Leave the key unclaimed so the status callback can still log the call
            logger.info(f"Call {key} ended without a transcript, nothing to process")
            return PipelineOutcome(PipelineStatus.EMPTY, key)

        won, record = self.registry.claim(key)
        if not won:
            return self._already_processed(key, record)

        async def run() -> PipelineOutcome:
            identity = await self.resolve_caller(key, caller_phone)
            await self._save_transcript(key, transcript, identity, direction)
            return await self._extract_and_create(key, transcript, identity, identity.phone)

        return await self._guarded(key, run)

    async def process_transcript(
        self,
        key: str,
        transcript: str,
        user: User | None = None,
        notify_phone: str | None = None,
    ) -> PipelineOutcome:
        """Process a chat transcript for an already-identified user."""
        if not transcript.strip():
            return PipelineOutcome(PipelineStatus.EMPTY, key)

        won, record = self.registry.claim(key)
        if not won:
            return self._already_processed(key, record)

        identity = CallerIdentity(phone=notify_phone or (user.phone if user else ""), user=user)
        return await self._guarded(
            key, lambda: self._extract_and_create(key, transcript, identity, identity.phone)
        )

    async def create_manual_ticket(
        self,
        key: str,
        phone: str | None = None,
        summary: str | None = None,
        transcript: str = "",
        claim: bool = False,
    ) -> PipelineOutcome:
        """Create a minimal ticket staff can complete by hand.

        With ``claim`` set the key goes through the same at-most-once check
        as the automatic paths.
        """
        if claim:
            won, record = self.registry.claim(key)
            if not won:
                return self._already_processed(key, record)

        async def run() -> PipelineOutcome:
            identity = await self.resolve_caller(key, phone)
            ref = await self._create_manual(transcript, identity, summary)
            status = PipelineStatus.STORE_UNAVAILABLE if ref.error else PipelineStatus.MANUAL
            return PipelineOutcome(status, key, ticket=ref)

        if claim:
            return await self._guarded(key, run)
        try:
            return await run()
        except Exception as e:
            logger.exception(f"Manual ticket for {key} failed: {e}")
            return PipelineOutcome(PipelineStatus.FAILED, key)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def resolve_caller(self, key: str, phone_hint: str | None = None) -> CallerIdentity:
        """Work out the caller's phone number and matching resident, if any."""
        phone = phone_hint or ""
        if not phone and self.telephony is not None and looks_like_call_sid(key):
            try:
                phone = (await self.telephony.fetch_call(key)).caller_phone
            except TelephonyError as e:
                logger.warning(f"Could not fetch call details for {key}: {e}")

        user = await self.users.find_by_phone(phone) if phone else None
        if user:
            logger.info(f"Caller {phone} matched registered user {user.id}")
        return CallerIdentity(phone=phone, user=user)

    async def _save_transcript(
        self, key: str, transcript: str, identity: CallerIdentity, direction: str | None
    ) -> None:
        try:
            await self.store.add(
                CALL_TRANSCRIPTS,
                {
                    "callSid": key,
                    "transcript": transcript,
                    "userId": identity.user_id,
                    "phone": identity.phone,
                    "direction": direction or "",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
            )
        except StoreUnavailable as e:
            logger.warning(f"Transcript for {key} not saved: {e}")

    async def _extract_and_create(
        self, key: str, transcript: str, identity: CallerIdentity, notify_phone: str
    ) -> PipelineOutcome:
        result = await self.extractor.extract(transcript)

        if isinstance(result, ExtractionMalformed):
            if not self.config.manual_fallback:
                logger.warning(f"No ticket for {key}: extraction {result.reason.value}")
                return PipelineOutcome(PipelineStatus.MALFORMED, key, failure=result)
            ref = await self._create_manual(transcript, identity)
            status = PipelineStatus.STORE_UNAVAILABLE if ref.error else PipelineStatus.MANUAL
            return PipelineOutcome(status, key, ticket=ref, failure=result)

        fields = self._apply_user(result.fields, identity.user)
        ref = await self.tickets.create_ticket(
            fields, transcript, owner_id=identity.user_id, prefix=self.config.ticket_prefix
        )
        if ref.error:
            return PipelineOutcome(PipelineStatus.STORE_UNAVAILABLE, key, ticket=ref)

        await self.webhook.send(ref)
        await self.notifier.notify(notify_phone, ref.ticket)
        return PipelineOutcome(PipelineStatus.CREATED, key, ticket=ref)

    async def _create_manual(
        self, transcript: str, identity: CallerIdentity, summary: str | None = None
    ) -> TicketRef:
        fields = TicketFields(
            resident_name=MANUAL_RESIDENT_NAME,
            problem_description=summary or MANUAL_DESCRIPTION,
            preferred_service_time=datetime.now(timezone.utc).isoformat(),
        )
        fields = self._apply_user(fields, identity.user)
        ref = await self.tickets.create_ticket(
            fields, transcript, owner_id=identity.user_id, prefix=MANUAL_PREFIX
        )
        if not ref.error:
            await self.notifier.notify(identity.phone, ref.ticket)
        return ref

    @staticmethod
    def _apply_user(fields: TicketFields, user: User | None) -> TicketFields:
        """Verified resident details replace whatever was extracted."""
        if user is None:
            return fields
        updates = {}
        if user.full_name:
            updates["resident_name"] = user.full_name
        if user.community:
            updates["community"] = user.community
        if user.unit_number:
            updates["unit_number"] = user.unit_number
        return fields.model_copy(update=updates)

    # ------------------------------------------------------------------
    # Dedup bookkeeping
    # ------------------------------------------------------------------

    async def _guarded(self, key: str, run) -> PipelineOutcome:
        started = time.time()
        try:
            outcome = await run()
        except Exception as e:
            logger.exception(f"Pipeline for {key} failed: {e}")
            outcome = PipelineOutcome(PipelineStatus.FAILED, key)
        self.registry.complete(key, outcome)
        logger.info(
            f"Pipeline for {key} finished: {outcome.status.value} "
            f"(ticket: {outcome.ticket_number or '-'}, {int((time.time() - started) * 1000)}ms)"
        )
        return outcome

    @staticmethod
    def _already_processed(key: str, record: ProcessedCall) -> PipelineOutcome:
        logger.info(f"Session {key} already processed, skipping")
        previous = record.outcome if record.done else None
        return PipelineOutcome(
            PipelineStatus.ALREADY_PROCESSED,
            key,
            ticket=previous.ticket if previous else None,
        )
