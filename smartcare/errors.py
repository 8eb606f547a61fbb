"""Error taxonomy for the SmartCare gateway.

Transport and notification errors are recovered where they happen and only
logged. Store errors are converted into error-tagged ticket references by the
ticket store. Extraction failures are not exceptions at all: the extractor
returns an ``ExtractionMalformed`` value (see ``smartcare.pipeline.extractor``).
"""

from __future__ import annotations


class SmartCareError(Exception):
    """Base class for all gateway errors."""


class ConfigError(SmartCareError):
    """Raised when required configuration is missing or invalid."""


class TransportError(SmartCareError):
    """A connection dropped or delivered a frame that could not be parsed."""


class ConnectionClosedError(TransportError):
    """The remote end closed the connection."""

    def __init__(self, code: int | None = None, reason: str = "") -> None:
        self.code = code
        self.reason = reason
        super().__init__(f"connection closed (code={code}, reason={reason or 'n/a'})")


class StoreUnavailable(SmartCareError):
    """The document store could not be reached or rejected a write."""


class TelephonyError(SmartCareError):
    """The telephony provider rejected or failed a call-control request."""


class NotificationFailure(SmartCareError):
    """A confirmation message could not be delivered."""
