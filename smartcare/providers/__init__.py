"""External service providers (completion service, telephony)."""

from smartcare.providers.base import CallInfo, CompletionService, Message, Telephony

__all__ = ["CallInfo", "CompletionService", "Message", "Telephony"]
