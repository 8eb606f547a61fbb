"""Call and chat orchestration.

``CallOrchestrator`` is the single object the HTTP layer talks to. It owns the
session registry, the dedup registry and the ticket pipeline, starts a
``RealtimeBridge`` per media stream, answers Twilio's webhooks and runs the
request/response chat.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from loguru import logger
from twilio.twiml.voice_response import Connect, VoiceResponse

from smartcare.bridge import RealtimeBridge
from smartcare.config import GatewayConfig, RealtimeAIConfig
from smartcare.errors import StoreUnavailable, TelephonyError
from smartcare.pipeline.extractor import TranscriptExtractor
from smartcare.pipeline.notifier import SmsNotifier
from smartcare.pipeline.processor import PipelineOutcome, PipelineStatus, TicketPipeline
from smartcare.pipeline.tickets import TicketStore
from smartcare.pipeline.webhook import TicketWebhook
from smartcare.providers.base import CompletionService, Message, Telephony
from smartcare.session import CallSession, ProcessedCallRegistry, SessionManager
from smartcare.store import CALL_TRANSCRIPTS, CHAT_HISTORY, REQUEST_TRACKING, DocumentStore, create_store
from smartcare.transports.base import BaseTransport
from smartcare.transports.websocket import realtime_transport
from smartcare.users import UserDirectory

# Reference data for request numbers that predate the ticket store
TRACKING_REFERENCE = {
    "12345": {
        "requestNumber": "12345",
        "status": "In Progress",
        "expectedCompletion": "2024-12-15",
        "description": "Maintenance request for a water leak in unit 45, Sedra community",
    },
    "67890": {
        "requestNumber": "67890",
        "status": "Completed",
        "completedOn": "2024-11-10",
        "description": "Rent payment tracking request for unit 12, Alarous community",
    },
}

CALL_LOG_SUMMARY = "Call log: the call completed without a transcript. Please follow up with the caller."


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _mark_ticket(session: CallSession | None, outcome: PipelineOutcome) -> None:
    if session is not None and outcome.created_ticket:
        session.ticket_created = True


class CallOrchestrator:
    """Entry point for calls, webhooks and chat.

    Usage:
        orchestrator = CallOrchestrator.from_config(load_config("gateway.yaml"))
        call_sid = await orchestrator.make_call("+15551234567", "https://example.ngrok.app")
    """

    def __init__(
        self,
        config: GatewayConfig,
        store: DocumentStore,
        completion: CompletionService,
        telephony: Telephony | None = None,
        ai_transport_factory: Callable[[RealtimeAIConfig], BaseTransport] = realtime_transport,
        sessions: SessionManager | None = None,
        registry: ProcessedCallRegistry | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.completion = completion
        self.telephony = telephony
        self.sessions = sessions or SessionManager()
        self.registry = registry or ProcessedCallRegistry()
        self.users = UserDirectory(store)
        self.tickets = TicketStore(store)
        self.webhook = TicketWebhook(config.pipeline.webhook_url, config.pipeline.webhook_timeout_seconds)
        self.pipeline = TicketPipeline(
            extractor=TranscriptExtractor(completion, config.extraction),
            tickets=self.tickets,
            notifier=SmsNotifier(telephony, enabled=config.pipeline.notify),
            users=self.users,
            store=store,
            registry=self.registry,
            telephony=telephony,
            config=config.pipeline,
            webhook=self.webhook,
        )
        self._ai_transport_factory = ai_transport_factory
        self._background: set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls,
        config: GatewayConfig,
        store: DocumentStore | None = None,
        completion: CompletionService | None = None,
        telephony: Telephony | None = None,
        **kwargs: Any,
    ) -> CallOrchestrator:
        """Build an orchestrator, creating any collaborator not supplied."""
        if store is None:
            store = create_store(config.store)
        if completion is None:
            from smartcare.providers.openai import OpenAICompletion

            completion = OpenAICompletion(
                api_key=config.ai.api_key,
                model=config.extraction.model,
                chat_model=config.chat.model,
                timeout=config.extraction.timeout_seconds,
                max_retries=config.extraction.max_retries,
            )
        if telephony is None and config.telephony_enabled:
            from smartcare.providers.twilio import TwilioTelephony

            telephony = TwilioTelephony.from_config(config.telephony)
        if telephony is None:
            logger.warning("Twilio credentials not configured: outbound calls and SMS are disabled")
        return cls(config, store, completion, telephony, **kwargs)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def make_call(self, to: str, base_url: str) -> str:
        """Originate an outbound call that connects back to this gateway."""
        if self.telephony is None:
            raise TelephonyError("telephony is not configured")
        base_url = base_url.rstrip("/")
        return await self.telephony.create_call(
            to,
            answer_url=f"{base_url}/incoming-call",
            status_callback=f"{base_url}/call-status",
        )

    def incoming_call_twiml(self, host: str, form: dict[str, str] | None = None) -> str:
        """TwiML that greets the caller and connects the call to the media stream."""
        form = form or {}
        response = VoiceResponse()
        response.say(self.config.telephony.greeting)

        connect = Connect()
        stream = connect.stream(url=f"wss://{host}{self.config.server.media_path}")
        stream.parameter(name="callSid", value=form.get("CallSid", ""))
        stream.parameter(name="from", value=form.get("From", ""))
        stream.parameter(name="to", value=form.get("To", ""))
        stream.parameter(name="direction", value=form.get("Direction", "inbound"))
        response.append(connect)

        logger.info(f"Incoming call {form.get('CallSid', '-')} from {form.get('From', '-')} routed to media stream")
        return str(response)

    async def handle_media_stream(self, transport: BaseTransport, call_sid: str | None = None) -> None:
        """Bridge one accepted media-stream connection until it closes."""
        bridge = RealtimeBridge(
            inbound=transport,
            ai=self._ai_transport_factory(self.config.ai),
            sessions=self.sessions,
            pipeline=self.pipeline,
            config=self.config.ai,
            call_sid=call_sid,
        )
        try:
            await bridge.run()
        finally:
            if bridge.pipeline_task is not None:
                self._track(bridge.pipeline_task)

    async def handle_call_status(
        self,
        call_sid: str,
        call_status: str,
        to: str = "",
        from_: str = "",
        direction: str = "",
    ) -> dict[str, Any]:
        """Handle Twilio's call-status callback.

        A completed call that the media-stream path has not processed yet is
        processed here, from the live session's transcript when there is one,
        otherwise as a manual call-log ticket.
        """
        logger.info(f"Call status update: {call_sid} → {call_status}")

        if call_sid in self.registry:
            return {"status": "already processed"}
        if call_status != "completed":
            return {"status": "received", "callStatus": call_status}

        session = self.sessions.get(call_sid)
        transcript = await self._saved_transcript(call_sid)
        if not transcript and session is not None:
            transcript = session.transcript

        phone = to if direction.startswith("outbound") else from_
        if session is not None and session.caller_phone:
            phone = session.caller_phone

        if transcript:
            outcome = await self.pipeline.process_call(
                call_sid, transcript, caller_phone=phone or None, direction=direction or None
            )
        else:
            outcome = await self.pipeline.create_manual_ticket(
                call_sid, phone or None, summary=CALL_LOG_SUMMARY, claim=True
            )
        _mark_ticket(session, outcome)

        if outcome.status is PipelineStatus.ALREADY_PROCESSED:
            return {"status": "already processed"}
        return {"status": "processed", "result": outcome.to_dict()}

    async def _saved_transcript(self, call_sid: str) -> str:
        try:
            records = await self.store.find(CALL_TRANSCRIPTS, "callSid", call_sid, limit=1)
        except StoreUnavailable as e:
            logger.warning(f"Saved transcript lookup for {call_sid} failed: {e}")
            return ""
        return records[0].get("transcript", "") if records else ""

    async def manual_ticket(self, call_sid: str | None = None, phone: str | None = None) -> PipelineOutcome:
        """Create a minimal ticket by hand, deduplicated per call when a call id is given."""
        key = call_sid or f"manual_{int(time.time() * 1000)}"
        return await self.pipeline.create_manual_ticket(key, phone, claim=bool(call_sid))

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(
        self,
        text: str = "",
        image: str = "",
        user_id: str | None = None,
        create_ticket: bool = False,
    ) -> dict[str, Any]:
        """Answer one chat message, optionally turning the conversation into a ticket.

        Raises:
            ValueError: If neither text nor image is given.
        """
        if not text and not image:
            raise ValueError("text or image is required")

        self._evict_idle_chats()
        key = f"chat:{user_id}" if user_id else f"chat:anonymous:{uuid.uuid4().hex}"
        session = self.sessions.get_or_create(key, direction="chat")
        session.metadata["last_active"] = time.time()
        history: list[Message] = session.metadata.setdefault("messages", [])

        user_message = Message(role="user", content=text, image_url=image)
        window = history[-self.config.chat.max_turns:]
        reply = await self.completion.chat(
            [Message(role="system", content=self.config.chat.system_prompt), *window, user_message]
        )

        history.extend([user_message, Message(role="assistant", content=reply)])
        del history[:-self.config.chat.max_turns]
        session.append_turn("User", text or "[image]")
        session.append_turn("Agent", reply)

        user = None
        if user_id:
            user = await self.users.get(user_id)
            await self._log(CHAT_HISTORY, {
                "userId": user_id,
                "userMessage": text,
                "hasImage": bool(image),
                "aiResponse": reply,
                "timestamp": _now_iso(),
            })

        result: dict[str, Any] = {"status": "success", "message": reply}

        if create_ticket:
            outcome = await self.pipeline.process_transcript(
                f"{key}:{int(session.started_at * 1000)}",
                session.transcript,
                user=user,
            )
            result["ticket"] = outcome.to_dict()
            _mark_ticket(session, outcome)
            # The next message starts a new conversation
            self.sessions.remove(key)
        elif not user_id:
            self.sessions.remove(key)

        return result

    def _evict_idle_chats(self) -> None:
        cutoff = time.time() - self.config.chat.idle_timeout_seconds
        idle = [
            s.key
            for s in self.sessions.all_sessions
            if s.direction == "chat" and s.metadata.get("last_active", s.started_at) < cutoff
        ]
        for key in idle:
            logger.info(f"Dropping idle chat session {key}")
            self.sessions.remove(key)

    async def track_request(self, request_number: str, user_id: str | None = None) -> dict[str, Any] | None:
        """Look up a request by its human-readable number.

        Stored tickets win; otherwise the built-in reference table is
        consulted. Returns None when neither knows the number.
        """
        ticket = None
        try:
            ticket = await self.tickets.find_by_number(request_number)
        except StoreUnavailable as e:
            logger.warning(f"Ticket lookup for {request_number} failed: {e}")

        if ticket is not None:
            result = {
                "source": "store",
                "request": ticket.model_dump(by_alias=True, exclude={"transcript"}),
            }
            request_id = ticket.ticket_id
        elif request_number in TRACKING_REFERENCE:
            result = {"source": "reference", "request": TRACKING_REFERENCE[request_number]}
            request_id = request_number
        else:
            logger.info(f"No request found for number {request_number}")
            return None

        if user_id:
            await self._log(REQUEST_TRACKING, {
                "userId": user_id,
                "requestId": request_id,
                "requestNumber": request_number,
                "timestamp": _now_iso(),
            })
        return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _track(self, task: asyncio.Task) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _log(self, collection: str, record: dict[str, Any]) -> None:
        try:
            await self.store.add(collection, record)
        except StoreUnavailable as e:
            logger.warning(f"Could not record {collection} entry: {e}")

    async def drain(self) -> None:
        """Wait for background pipeline runs to finish."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def shutdown(self) -> None:
        await self.drain()
        dropped = self.sessions.clear()
        if dropped:
            logger.warning(f"Shutdown dropped {dropped} in-flight sessions")
        await self.completion.close()
        await self.webhook.close()

    def stats(self) -> dict[str, Any]:
        return {
            "active_sessions": self.sessions.active_count,
            "processed_calls": len(self.registry),
            "pending_pipelines": len(self._background),
        }
