"""Base interfaces for the external services the gateway talks to.

The completion service (structured extraction and chat) and the telephony
provider (call control and SMS) are reached only through these narrow
interfaces, so tests and alternative backends can swap them freely.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Data classes for provider communication
# ---------------------------------------------------------------------------

@dataclass
class Message:
    """A conversation message for the completion service."""

    role: str  # "system", "user", "assistant"
    content: str = ""
    # Optional image reference (URL or data URI) attached to a user message
    image_url: str = ""


@dataclass
class CallInfo:
    """Call details as reported by the telephony provider."""

    sid: str
    status: str = ""
    to: str = ""
    from_: str = ""
    direction: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def caller_phone(self) -> str:
        """The resident's number: the callee for outbound calls, else the caller."""
        if self.direction.startswith("outbound"):
            return self.to
        return self.from_


# ---------------------------------------------------------------------------
# Abstract Base Classes
# ---------------------------------------------------------------------------

class CompletionService(ABC):
    """Request/response AI completion service."""

    @abstractmethod
    async def complete_json(
        self,
        system_prompt: str,
        user_content: str,
        schema_name: str,
        schema: dict[str, Any],
    ) -> str | None:
        """Request a JSON object conforming to ``schema``.

        Returns:
            The raw response text (not yet validated), or None if the
            service returned no content.
        """
        ...

    @abstractmethod
    async def chat(self, messages: list[Message]) -> str:
        """Return the assistant reply for a conversation."""
        ...

    async def close(self) -> None:
        """Release any underlying client resources."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...


class Telephony(ABC):
    """Call-control and messaging surface of the telephony provider.

    All methods raise :class:`~smartcare.errors.TelephonyError` on failure.
    """

    @abstractmethod
    async def create_call(self, to: str, answer_url: str, status_callback: str = "") -> str:
        """Originate an outbound call. Returns the provider call id."""
        ...

    @abstractmethod
    async def fetch_call(self, call_sid: str) -> CallInfo:
        """Look up an existing call."""
        ...

    @abstractmethod
    async def send_sms(self, to: str, body: str) -> str:
        """Send a text message. Returns the provider message id."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        ...
