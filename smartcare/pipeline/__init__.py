"""Post-conversation processing: extraction, ticket creation and confirmation."""

from smartcare.pipeline.extractor import (
    ExtractionMalformed,
    ExtractionResult,
    ExtractionSuccess,
    MalformedReason,
    TranscriptExtractor,
)
from smartcare.pipeline.notifier import SmsNotifier
from smartcare.pipeline.processor import PipelineOutcome, PipelineStatus, TicketPipeline
from smartcare.pipeline.tickets import Ticket, TicketFields, TicketRef, TicketStore, next_ticket_number
from smartcare.pipeline.webhook import TicketWebhook

__all__ = [
    "ExtractionMalformed",
    "ExtractionResult",
    "ExtractionSuccess",
    "MalformedReason",
    "PipelineOutcome",
    "PipelineStatus",
    "SmsNotifier",
    "Ticket",
    "TicketFields",
    "TicketPipeline",
    "TicketRef",
    "TicketStore",
    "TicketWebhook",
    "TranscriptExtractor",
    "next_ticket_number",
]
