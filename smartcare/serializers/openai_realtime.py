"""OpenAI Realtime API serializer.

Builds the client control frames the bridge sends (``session.update``,
``input_audio_buffer.append``) and parses the server event frames it cares
about into bridge events.

Protocol reference:
    https://platform.openai.com/docs/api-reference/realtime
"""

from __future__ import annotations

import json
from typing import Any

from smartcare.config import RealtimeAIConfig
from smartcare.core.events import (
    AIError,
    AnyEvent,
    AudioDelta,
    AudioFrame,
    CustomEvent,
    ResponseDone,
    SessionUpdated,
    TranscriptionCompleted,
)
from smartcare.serializers.base import BaseSerializer

# Server event types worth an info-level log line
LOG_EVENT_TYPES = frozenset({
    "response.content.done",
    "rate_limits.updated",
    "response.done",
    "input_audio_buffer.committed",
    "input_audio_buffer.speech_stopped",
    "input_audio_buffer.speech_started",
    "session.created",
    "response.text.done",
    "conversation.item.input_audio_transcription.completed",
})


class OpenAIRealtimeSerializer(BaseSerializer):
    """Serializer for the OpenAI Realtime WebSocket protocol."""

    @property
    def name(self) -> str:
        return "openai_realtime"

    # ------------------------------------------------------------------
    # Client frames
    # ------------------------------------------------------------------

    @staticmethod
    def build_session_update(config: RealtimeAIConfig, language: str | None = None) -> str:
        """Build the one-off ``session.update`` frame.

        ``language`` is passed to the transcription model as a hint.
        """
        transcription = {"model": config.transcription_model}
        if language:
            transcription["language"] = language
        return json.dumps(
            {
                "type": "session.update",
                "session": {
                    "turn_detection": {"type": config.turn_detection},
                    "input_audio_format": config.input_audio_format,
                    "output_audio_format": config.output_audio_format,
                    "voice": config.voice,
                    "instructions": config.instructions,
                    "modalities": ["text", "audio"],
                    "temperature": config.temperature,
                    "input_audio_transcription": transcription,
                },
            }
        )

    @staticmethod
    def build_audio_append(payload: str) -> str:
        """Build an ``input_audio_buffer.append`` frame from base64 audio."""
        return json.dumps({"type": "input_audio_buffer.append", "audio": payload})

    def serialize(self, event: AnyEvent, stream_sid: str = "") -> str | None:
        if isinstance(event, AudioFrame):
            return self.build_audio_append(event.payload)
        return None

    # ------------------------------------------------------------------
    # Server frames
    # ------------------------------------------------------------------

    def _events_from(self, msg: dict[str, Any]) -> list[AnyEvent]:
        """Parse a Realtime server event.

        Event types handled:
            * ``session.updated``
            * ``conversation.item.input_audio_transcription.completed``
            * ``response.done``
            * ``response.audio.delta`` (ignored when the delta is empty)
            * ``error``

        Everything else is surfaced as a :class:`CustomEvent`.
        """
        msg_type = msg.get("type", "")

        if msg_type == "session.updated":
            return [SessionUpdated(session=msg.get("session") or {})]

        if msg_type == "conversation.item.input_audio_transcription.completed":
            return [
                TranscriptionCompleted(
                    text=str(msg.get("transcript") or "").strip(),
                    item_id=msg.get("item_id") or "",
                )
            ]

        if msg_type == "response.done":
            response = msg.get("response") or {}
            return [
                ResponseDone(
                    text=self.first_transcript(response),
                    response_id=response.get("id", ""),
                )
            ]

        if msg_type == "response.audio.delta":
            delta = msg.get("delta")
            if not delta:
                return []
            return [AudioDelta(delta=delta)]

        if msg_type == "error":
            error = msg.get("error") or {}
            return [
                AIError(
                    code=str(error.get("code") or error.get("type") or ""),
                    message=str(error.get("message", "")),
                )
            ]

        return [CustomEvent(custom_type=msg_type, payload=msg)]

    @staticmethod
    def first_transcript(response: dict[str, Any]) -> str | None:
        """Return the first assistant transcript fragment in a response, if any."""
        for item in response.get("output") or []:
            if not isinstance(item, dict):
                continue
            for part in item.get("content") or []:
                if isinstance(part, dict) and part.get("transcript"):
                    return str(part["transcript"]).strip()
        return None
