"""Realtime bridge between a Twilio media stream and the OpenAI Realtime API.

One ``RealtimeBridge`` owns one call: the inbound media-stream connection and
the outbound AI connection. Two reader tasks only push raw frames into the
bridge's mailbox; the bridge itself handles one message at a time, so the
session, the transcript and the connection state are never touched
concurrently.

State machine::

    CONNECTING --AI open--> READY --settle delay--> RELAYING
    (any state) --inbound close--> CLOSING --> CLOSED

Audio frames that arrive before the AI link is open are dropped and counted.
The AI service rejects configuration sent immediately on open, so
``session.update`` goes out once after ``settle_delay_ms``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any

from loguru import logger

from smartcare.config import RealtimeAIConfig
from smartcare.core.events import (
    AIError,
    AnyEvent,
    AudioDelta,
    AudioFrame,
    CustomEvent,
    Mark,
    ResponseDone,
    SessionUpdated,
    StreamStarted,
    StreamStopped,
    TranscriptionCompleted,
)
from smartcare.errors import ConnectionClosedError, TransportError
from smartcare.pipeline.processor import TicketPipeline
from smartcare.serializers.openai_realtime import LOG_EVENT_TYPES, OpenAIRealtimeSerializer
from smartcare.serializers.twilio import TwilioSerializer
from smartcare.session import CallSession, SessionManager
from smartcare.transports.base import BaseTransport

AGENT_TRANSCRIPT_PLACEHOLDER = "[agent transcript unavailable]"


def _mark_ticket_created(session: CallSession, task: asyncio.Task) -> None:
    if task.cancelled() or task.exception() is not None:
        return
    outcome = task.result()
    if outcome is not None and outcome.created_ticket:
        session.ticket_created = True


class BridgeState(str, Enum):
    CONNECTING = "connecting"
    READY = "ready"
    RELAYING = "relaying"
    CLOSING = "closing"
    CLOSED = "closed"


class MessageKind(str, Enum):
    INBOUND_FRAME = "inbound_frame"
    AI_FRAME = "ai_frame"
    AI_OPENED = "ai_opened"
    AI_CLOSED = "ai_closed"
    CONFIGURE = "configure"
    INBOUND_CLOSED = "inbound_closed"


@dataclass
class BridgeMessage:
    kind: MessageKind
    data: Any = None
    code: int | None = None
    reason: str = ""


class RealtimeBridge:
    """Per-call actor relaying audio between Twilio and the AI service.

    Args:
        inbound: The accepted media-stream connection.
        ai: An unconnected transport to the Realtime API.
        sessions: Registry the call's session lives in.
        pipeline: Ticket pipeline triggered when the inbound stream closes.
        config: Realtime session settings.
        call_sid: Provider call id from the connection, when known up front.
    """

    def __init__(
        self,
        inbound: BaseTransport,
        ai: BaseTransport,
        sessions: SessionManager,
        pipeline: TicketPipeline,
        config: RealtimeAIConfig,
        call_sid: str | None = None,
    ) -> None:
        self.inbound = inbound
        self.ai = ai
        self.sessions = sessions
        self.pipeline = pipeline
        self.config = config
        self.call_sid = call_sid

        self.state = BridgeState.CONNECTING
        self.session_key: str | None = None
        self.pipeline_task: asyncio.Task | None = None
        self.malformed_frames = 0

        self._ai_open = False
        self._mailbox: asyncio.Queue[BridgeMessage] = asyncio.Queue()
        self._tasks: set[asyncio.Task] = set()
        self._twilio = TwilioSerializer()
        self._realtime = OpenAIRealtimeSerializer()

    # ------------------------------------------------------------------
    # Message-passing entry points
    # ------------------------------------------------------------------

    def push_inbound(self, raw: bytes | str) -> None:
        self._mailbox.put_nowait(BridgeMessage(MessageKind.INBOUND_FRAME, raw))

    def push_ai(self, raw: bytes | str) -> None:
        self._mailbox.put_nowait(BridgeMessage(MessageKind.AI_FRAME, raw))

    def ai_opened(self) -> None:
        self._mailbox.put_nowait(BridgeMessage(MessageKind.AI_OPENED))

    def ai_closed(self, reason: str = "") -> None:
        self._mailbox.put_nowait(BridgeMessage(MessageKind.AI_CLOSED, reason=reason))

    def inbound_closed(self, code: int | None = None, reason: str = "") -> None:
        self._mailbox.put_nowait(BridgeMessage(MessageKind.INBOUND_CLOSED, code=code, reason=reason))

    @property
    def session(self) -> CallSession | None:
        return self.sessions.get(self.session_key) if self.session_key else None

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> asyncio.Task | None:
        """Run the bridge until the inbound stream closes.

        Returns:
            The background pipeline task scheduled on close, if any.
        """
        self._spawn(self._read_inbound())
        self._spawn(self._run_ai())

        try:
            while self.state is not BridgeState.CLOSED:
                message = await self._mailbox.get()
                await self.handle(message)
        finally:
            for task in self._tasks:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks.clear()
            if self.state is not BridgeState.CLOSED:
                await self._close("bridge stopped")

        return self.pipeline_task

    async def handle(self, message: BridgeMessage) -> None:
        """Process one mailbox message."""
        if self.state is BridgeState.CLOSED:
            logger.debug(f"Bridge closed, ignoring {message.kind.value}")
            return

        if message.kind is MessageKind.INBOUND_FRAME:
            await self._on_inbound_frame(message.data)
        elif message.kind is MessageKind.AI_FRAME:
            await self._on_ai_frame(message.data)
        elif message.kind is MessageKind.AI_OPENED:
            self._on_ai_opened()
        elif message.kind is MessageKind.CONFIGURE:
            await self._configure_ai()
        elif message.kind is MessageKind.AI_CLOSED:
            self._on_ai_closed(message.reason)
        elif message.kind is MessageKind.INBOUND_CLOSED:
            logger.info(f"Media stream closed (code={message.code}, reason={message.reason or 'n/a'})")
            await self._close(message.reason)

    # ------------------------------------------------------------------
    # Reader tasks
    # ------------------------------------------------------------------

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _read_inbound(self) -> None:
        try:
            while True:
                self.push_inbound(await self.inbound.recv())
        except ConnectionClosedError as e:
            self.inbound_closed(e.code, e.reason)
        except TransportError as e:
            self.inbound_closed(None, str(e))

    async def _run_ai(self) -> None:
        try:
            await self.ai.connect()
        except TransportError as e:
            logger.error(f"AI realtime connection failed: {e}")
            self.ai_closed(str(e))
            return

        self.ai_opened()
        try:
            while True:
                self.push_ai(await self.ai.recv())
        except ConnectionClosedError as e:
            self.ai_closed(e.reason or f"code {e.code}")
        except TransportError as e:
            self.ai_closed(str(e))

    async def _configure_after_delay(self) -> None:
        await asyncio.sleep(self.config.settle_delay_ms / 1000.0)
        self._mailbox.put_nowait(BridgeMessage(MessageKind.CONFIGURE))

    # ------------------------------------------------------------------
    # Inbound (Twilio) side
    # ------------------------------------------------------------------

    async def _on_inbound_frame(self, raw: bytes | str) -> None:
        try:
            for event in self._twilio.deserialize(raw):
                await self._on_inbound_event(event)
        except TransportError as e:
            self._count_malformed("media stream", e)
        except Exception as e:
            logger.exception(f"Error handling media stream frame: {e}")
            self._count_malformed("media stream", e)

    async def _on_inbound_event(self, event: AnyEvent) -> None:
        if isinstance(event, (StreamStarted, AudioFrame, StreamStopped)):
            session = self._ensure_session(event)
        else:
            session = self.session

        if isinstance(event, StreamStarted):
            self._bind_stream(session, event)

        elif isinstance(event, AudioFrame):
            session.frames_in += 1
            if not self._ai_open:
                session.dropped_frames += 1
                return
            await self._send_ai(self._realtime.serialize(event))

        elif isinstance(event, StreamStopped):
            logger.info(f"Media stream stopped for {session.key}")

        elif isinstance(event, Mark):
            logger.debug(f"Playback mark reached: {event.name}")

        elif isinstance(event, CustomEvent):
            logger.debug(f"Unhandled media stream event: {event.custom_type}")

    def _ensure_session(self, event: AnyEvent) -> CallSession:
        session = self.session
        if session is not None:
            return session

        key = self.call_sid or (event.call_id if isinstance(event, StreamStarted) else "")
        is_fallback = not key
        if is_fallback:
            key = self.sessions.new_fallback_key()

        self.session_key = key
        return self.sessions.get_or_create(
            key,
            call_sid="" if is_fallback else key,
            is_fallback_key=is_fallback,
            voice=self.config.voice,
            ai_link_open=self._ai_open,
        )

    def _bind_stream(self, session: CallSession, event: StreamStarted) -> None:
        params = event.custom_parameters
        session.stream_sid = event.stream_sid
        session.language = params.get("language") or self.config.language or None
        session.custom_parameters = dict(params)
        if event.call_id and not session.call_sid:
            session.call_sid = event.call_id

        session.direction = params.get("direction", session.direction or "inbound")
        if session.direction.startswith("outbound"):
            session.caller_phone = params.get("to", "")
        else:
            session.caller_phone = params.get("from", "")

        logger.info(
            f"Media stream started: stream={event.stream_sid} call={session.call_sid or '-'} "
            f"direction={session.direction} caller={session.caller_phone or '-'} "
            f"language={session.language or 'auto'}"
        )

    # ------------------------------------------------------------------
    # AI (OpenAI Realtime) side
    # ------------------------------------------------------------------

    def _on_ai_opened(self) -> None:
        logger.info("Connected to the OpenAI Realtime API")
        self._ai_open = True
        if self.session:
            self.session.ai_link_open = True
        if self.state is BridgeState.CONNECTING:
            self.state = BridgeState.READY
            self._spawn(self._configure_after_delay())

    async def _configure_ai(self) -> None:
        if self.state is not BridgeState.READY:
            return
        logger.info("Sending session update")
        language = self.session.language if self.session else None
        await self._send_ai(self._realtime.build_session_update(self.config, language=language))
        if self._ai_open:
            self.state = BridgeState.RELAYING

    def _on_ai_closed(self, reason: str) -> None:
        # The caller may still be speaking, so the inbound side stays up
        logger.warning(f"AI realtime link closed: {reason or 'n/a'}")
        self._ai_open = False
        if self.session:
            self.session.ai_link_open = False

    async def _on_ai_frame(self, raw: bytes | str) -> None:
        try:
            for event in self._realtime.deserialize(raw):
                await self._on_ai_event(event)
        except TransportError as e:
            self._count_malformed("AI realtime", e)
        except Exception as e:
            logger.exception(f"Error handling AI realtime frame: {e}")
            self._count_malformed("AI realtime", e)

    async def _on_ai_event(self, event: AnyEvent) -> None:
        session = self.session

        if isinstance(event, TranscriptionCompleted):
            if session is None or not event.text:
                return
            session.append_turn("User", event.text)
            logger.info(f"User: {event.text}")

        elif isinstance(event, ResponseDone):
            if session is None:
                return
            text = event.text or AGENT_TRANSCRIPT_PLACEHOLDER
            session.append_turn("Agent", text)
            logger.info(f"Agent: {text}")

        elif isinstance(event, AudioDelta):
            if session is None or not session.stream_sid:
                return
            await self._send_inbound(self._twilio.serialize(event, stream_sid=session.stream_sid))
            session.frames_out += 1

        elif isinstance(event, SessionUpdated):
            logger.info("Session updated successfully")

        elif isinstance(event, AIError):
            logger.error(f"AI realtime error {event.code}: {event.message}")

        elif isinstance(event, CustomEvent) and event.custom_type in LOG_EVENT_TYPES:
            logger.info(f"Received event: {event.custom_type}")

    # ------------------------------------------------------------------
    # Sending and shutdown
    # ------------------------------------------------------------------

    async def _send_ai(self, frame: str) -> None:
        try:
            await self.ai.send(frame)
        except TransportError as e:
            logger.warning(f"Failed to send to AI realtime link: {e}")
            self._on_ai_closed(str(e))

    async def _send_inbound(self, frame: str) -> None:
        try:
            await self.inbound.send(frame)
        except TransportError as e:
            logger.warning(f"Failed to send audio to media stream: {e}")

    def _count_malformed(self, side: str, error: Exception) -> None:
        self.malformed_frames += 1
        if self.session:
            self.session.malformed_frames += 1
        logger.warning(f"Skipping malformed {side} frame: {error}")

    async def _close(self, reason: str = "") -> None:
        self.state = BridgeState.CLOSING

        if self._ai_open or self.ai.is_connected():
            await self.ai.disconnect()
        self._ai_open = False

        session = self.session
        if session is not None:
            session.end()
            self.pipeline_task = asyncio.create_task(
                self.pipeline.process_call(
                    session.key,
                    session.transcript,
                    caller_phone=session.caller_phone or None,
                    direction=session.direction or None,
                )
            )
            self.pipeline_task.add_done_callback(partial(_mark_ticket_created, session))
            logger.info(
                f"Call {session.key} ended: {session.turn_count} turns, "
                f"{session.frames_in} frames in, {session.frames_out} out, "
                f"{session.dropped_frames} dropped"
            )
            self.sessions.remove(session.key)
        else:
            logger.info(f"Media stream closed before any stream event ({reason or 'n/a'})")

        self.state = BridgeState.CLOSED
