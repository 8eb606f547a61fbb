"""Base serializer interface.

Serializers are pure message translators with no I/O: they convert between a
provider's wire format and the bridge's event model.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from pydantic import ValidationError

from smartcare.core.events import AnyEvent
from smartcare.errors import TransportError


class BaseSerializer(ABC):
    """Abstract base class for wire-protocol serializers.

    Key principles:
    - Serializers do NO I/O (no network calls, no file access)
    - Per-connection state lives in CallSession, not here
    - Unparseable frames raise TransportError so the caller can skip them
    """

    def deserialize(self, raw: bytes | str | dict) -> list[AnyEvent]:
        """Parse a raw message into bridge events.

        Returns:
            List of events. Empty list if the message should be ignored.

        Raises:
            TransportError: If the frame is not a JSON object, or its fields
                have the wrong shape to build events from.
        """
        msg = self._parse_message(raw)
        try:
            return self._events_from(msg)
        except (ValidationError, TypeError, AttributeError) as e:
            raise TransportError(f"Malformed {self.name} frame: {e}") from e

    @abstractmethod
    def _events_from(self, msg: dict[str, Any]) -> list[AnyEvent]:
        """Build events from a decoded frame."""
        ...

    @abstractmethod
    def serialize(self, event: AnyEvent, stream_sid: str = "") -> str | None:
        """Convert an event to the wire format.

        Args:
            event: The event to send.
            stream_sid: Stream identifier to tag the message with, when the
                protocol needs one.

        Returns:
            The serialized message, or None if the event has no wire mapping.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name of this serializer (e.g., 'twilio')."""
        ...

    @staticmethod
    def _parse_message(raw: bytes | str | dict) -> dict[str, Any]:
        """Normalise the raw WebSocket frame into a dict."""
        if isinstance(raw, dict):
            return raw
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            msg = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise TransportError(f"Invalid JSON frame: {str(raw)[:100]}") from e
        if not isinstance(msg, dict):
            raise TransportError(f"Expected a JSON object, got {type(msg).__name__}")
        return msg
