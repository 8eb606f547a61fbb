"""Twilio Media Streams WebSocket serializer.

Translates between Twilio's Media Streams WebSocket protocol and the bridge's
event model. Twilio streams audio as base64-encoded mu-law at 8kHz over JSON
WebSocket messages; payloads are relayed without re-encoding.

Protocol reference:
    https://www.twilio.com/docs/voice/media-streams/websocket-messages
"""

from __future__ import annotations

import json
from typing import Any

from smartcare.core.events import (
    AnyEvent,
    AudioDelta,
    AudioFrame,
    CustomEvent,
    Mark,
    StreamStarted,
    StreamStopped,
)
from smartcare.errors import TransportError
from smartcare.serializers.base import BaseSerializer


class TwilioSerializer(BaseSerializer):
    """Serializer for the Twilio Media Streams WebSocket protocol.

    Twilio sends JSON messages with an ``event`` field that indicates the
    message type. Outbound audio must be tagged with the ``streamSid`` that
    Twilio assigned in its ``start`` message, so the serializer takes it as an
    argument rather than remembering it.
    """

    @property
    def name(self) -> str:
        return "twilio"

    # ------------------------------------------------------------------
    # Deserialization (Twilio -> bridge events)
    # ------------------------------------------------------------------

    def _events_from(self, msg: dict[str, Any]) -> list[AnyEvent]:
        """Parse a Twilio Media Streams message into bridge events.

        Message types handled:
            * ``connected`` -- initial handshake acknowledgement (ignored).
            * ``start``     -- stream metadata; produces :class:`StreamStarted`.
            * ``media``     -- audio payload; produces :class:`AudioFrame`.
            * ``mark``      -- playback checkpoint; produces :class:`Mark`.
            * ``stop``      -- end of inbound audio; produces :class:`StreamStopped`.

        Any unrecognised message type is surfaced as a :class:`CustomEvent`.
        """
        event_type = msg.get("event", "")

        if event_type == "connected":
            return []

        if event_type == "start":
            return self._handle_start(msg)

        if event_type == "media":
            return self._handle_media(msg)

        if event_type == "mark":
            mark_data = msg.get("mark") or {}
            return [Mark(name=mark_data.get("name", ""))]

        if event_type == "stop":
            stop_data = msg.get("stop") or {}
            return [
                StreamStopped(
                    call_id=stop_data.get("callSid", ""),
                    stream_sid=msg.get("streamSid", ""),
                )
            ]

        return [CustomEvent(custom_type=f"twilio.{event_type}", payload=msg)]

    # ------------------------------------------------------------------
    # Serialization (bridge events -> Twilio wire format)
    # ------------------------------------------------------------------

    def serialize(self, event: AnyEvent, stream_sid: str = "") -> str | None:
        """Convert an event to a Twilio Media Streams message.

        Supported outbound events:
            * :class:`AudioDelta` / :class:`AudioFrame` -- a ``media`` message.
            * :class:`Mark` -- a ``mark`` message.

        Returns ``None`` for event types that Twilio does not accept.
        """
        if isinstance(event, AudioDelta):
            return self.build_media_message(event.delta, stream_sid)

        if isinstance(event, AudioFrame):
            return self.build_media_message(event.payload, stream_sid)

        if isinstance(event, Mark):
            return json.dumps(
                {
                    "event": "mark",
                    "streamSid": stream_sid,
                    "mark": {"name": event.name},
                }
            )

        return None

    @staticmethod
    def build_media_message(payload: str, stream_sid: str) -> str:
        """Build a ``media`` message carrying base64 audio for playback."""
        return json.dumps(
            {
                "event": "media",
                "streamSid": stream_sid,
                "media": {"payload": payload},
            }
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _handle_start(self, msg: dict) -> list[AnyEvent]:
        """Process a Twilio ``start`` message."""
        start_data = msg.get("start")
        if not isinstance(start_data, dict):
            raise TransportError("Twilio start message without a start block")

        stream_sid = start_data.get("streamSid") or msg.get("streamSid", "")
        if not stream_sid:
            raise TransportError("Twilio start message without a streamSid")

        custom_params = {
            str(k): str(v) for k, v in (start_data.get("customParameters") or {}).items()
        }

        return [
            StreamStarted(
                call_id=start_data.get("callSid", ""),
                stream_sid=stream_sid,
                account_sid=start_data.get("accountSid", ""),
                custom_parameters=custom_params,
                media_format=start_data.get("mediaFormat") or {},
            )
        ]

    def _handle_media(self, msg: dict) -> list[AnyEvent]:
        """Process a Twilio ``media`` message."""
        media_data = msg.get("media")
        if not isinstance(media_data, dict) or not isinstance(media_data.get("payload"), str):
            raise TransportError("Twilio media message without a payload")

        return [
            AudioFrame(
                payload=media_data["payload"],
                stream_sid=msg.get("streamSid", ""),
            )
        ]
