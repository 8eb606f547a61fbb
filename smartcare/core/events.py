"""Event model for the realtime bridge.

Both serializers translate wire messages into these events: the Twilio
serializer produces media-stream events, the OpenAI Realtime serializer
produces AI events. The bridge only ever reasons about these types.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    # Media stream (telephony side)
    STREAM_STARTED = "stream_started"
    AUDIO_FRAME = "audio_frame"
    STREAM_STOPPED = "stream_stopped"
    MARK = "mark"
    # AI realtime side
    SESSION_UPDATED = "session_updated"
    TRANSCRIPTION_COMPLETED = "transcription_completed"
    RESPONSE_DONE = "response_done"
    AUDIO_DELTA = "audio_delta"
    AI_ERROR = "ai_error"
    CUSTOM = "custom"


class Event(BaseModel):
    """Base event that all bridge events inherit from."""

    event_type: EventType
    call_id: str = ""
    timestamp: float = Field(default_factory=time.time)


class StreamStarted(Event):
    """The media stream announced itself and carries its stream identifier."""

    event_type: EventType = EventType.STREAM_STARTED
    stream_sid: str = ""
    account_sid: str = ""
    custom_parameters: dict[str, str] = Field(default_factory=dict)
    media_format: dict[str, Any] = Field(default_factory=dict)


class AudioFrame(Event):
    """A chunk of caller audio, kept base64-encoded as it arrived."""

    event_type: EventType = EventType.AUDIO_FRAME
    payload: str = ""
    stream_sid: str = ""


class StreamStopped(Event):
    """End of inbound audio. The connection may stay open afterwards."""

    event_type: EventType = EventType.STREAM_STOPPED
    stream_sid: str = ""


class Mark(Event):
    """Playback checkpoint echoed back by the provider."""

    event_type: EventType = EventType.MARK
    name: str = ""


class SessionUpdated(Event):
    """The AI service accepted the session configuration."""

    event_type: EventType = EventType.SESSION_UPDATED
    session: dict[str, Any] = Field(default_factory=dict)


class TranscriptionCompleted(Event):
    """A caller utterance finished transcribing."""

    event_type: EventType = EventType.TRANSCRIPTION_COMPLETED
    text: str = ""
    item_id: str = ""


class ResponseDone(Event):
    """The agent finished a response.

    ``text`` is the first assistant transcript fragment found in the response
    output, or None when the response carried no transcript.
    """

    event_type: EventType = EventType.RESPONSE_DONE
    text: str | None = None
    response_id: str = ""


class AudioDelta(Event):
    """A chunk of synthesized agent audio (base64)."""

    event_type: EventType = EventType.AUDIO_DELTA
    delta: str = ""


class AIError(Event):
    """Error event reported by the AI service."""

    event_type: EventType = EventType.AI_ERROR
    code: str = ""
    message: str = ""


class CustomEvent(Event):
    """Messages that don't map to a known event."""

    event_type: EventType = EventType.CUSTOM
    custom_type: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)


# Type alias for any event
AnyEvent = (
    StreamStarted
    | AudioFrame
    | StreamStopped
    | Mark
    | SessionUpdated
    | TranscriptionCompleted
    | ResponseDone
    | AudioDelta
    | AIError
    | CustomEvent
)
