"""SmartCare - voice and chat support gateway.

Bridges Twilio phone calls to the OpenAI Realtime API and turns finished
conversations into maintenance tickets, confirmed to the resident by SMS.

Quick start:
    $ pip install smartcare-gateway
    $ smartcare init          # generates gateway.yaml
    $ smartcare run --config gateway.yaml

Programmatic:
    from smartcare import CallOrchestrator, load_config
    from smartcare.server import create_app

    app = create_app(load_config("gateway.yaml"))
"""

__version__ = "0.1.0"

# Core
from smartcare.bridge import BridgeState, RealtimeBridge
from smartcare.config import GatewayConfig, load_config
from smartcare.orchestrator import CallOrchestrator
from smartcare.session import CallSession, ProcessedCallRegistry, SessionManager

# Errors
from smartcare.errors import (
    ConfigError,
    ConnectionClosedError,
    NotificationFailure,
    SmartCareError,
    StoreUnavailable,
    TelephonyError,
    TransportError,
)

# Pipeline
from smartcare.pipeline import (
    ExtractionMalformed,
    ExtractionSuccess,
    MalformedReason,
    PipelineOutcome,
    PipelineStatus,
    SmsNotifier,
    Ticket,
    TicketFields,
    TicketPipeline,
    TicketRef,
    TicketStore,
    TranscriptExtractor,
    next_ticket_number,
)

# Stores and providers
from smartcare.providers.base import CompletionService, Message, Telephony
from smartcare.store import DocumentStore, MemoryDocumentStore

__all__ = [
    # Core
    "RealtimeBridge",
    "BridgeState",
    "GatewayConfig",
    "load_config",
    "CallOrchestrator",
    "CallSession",
    "SessionManager",
    "ProcessedCallRegistry",
    # Errors
    "SmartCareError",
    "ConfigError",
    "TransportError",
    "ConnectionClosedError",
    "StoreUnavailable",
    "TelephonyError",
    "NotificationFailure",
    # Pipeline
    "TicketPipeline",
    "PipelineOutcome",
    "PipelineStatus",
    "TranscriptExtractor",
    "ExtractionSuccess",
    "ExtractionMalformed",
    "MalformedReason",
    "Ticket",
    "TicketFields",
    "TicketRef",
    "TicketStore",
    "SmsNotifier",
    "next_ticket_number",
    # Stores and providers
    "DocumentStore",
    "MemoryDocumentStore",
    "CompletionService",
    "Telephony",
    "Message",
]
