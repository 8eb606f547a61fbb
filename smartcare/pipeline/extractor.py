"""Transcript extraction.

Turns a free-text conversation into :class:`TicketFields` by asking the
completion service for a JSON object matching ``EXTRACTION_SCHEMA``. The
response is validated here; anything that does not validate comes back as an
:class:`ExtractionMalformed` value with a reason code instead of an exception.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable

from loguru import logger
from pydantic import ValidationError

from smartcare.config import ExtractionConfig
from smartcare.pipeline.tickets import CATEGORIES, PRIORITIES, TicketFields
from smartcare.providers.base import CompletionService

SCHEMA_NAME = "resident_details_extraction"
REQUIRED_FIELDS = ("residentName", "problemDescription", "preferredServiceTime")

EXTRACTION_SCHEMA = {
    "type": "object",
    "properties": {
        "residentName": {"type": "string"},
        "problemDescription": {"type": "string"},
        "preferredServiceTime": {"type": "string"},
        "community": {"type": "string"},
        "unitNumber": {"type": "string"},
        "category": {"type": "string", "enum": list(CATEGORIES)},
        "priority": {"type": "string", "enum": list(PRIORITIES)},
        "summary": {"type": "string"},
    },
    "required": list(REQUIRED_FIELDS),
}


class MalformedReason(str, Enum):
    EMPTY_RESPONSE = "empty_response"
    NOT_JSON = "not_json"
    NOT_OBJECT = "not_object"
    MISSING_FIELDS = "missing_fields"
    SERVICE_ERROR = "service_error"


@dataclass(frozen=True)
class ExtractionSuccess:
    fields: TicketFields

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class ExtractionMalformed:
    """The service response could not be turned into ticket fields."""

    reason: MalformedReason
    detail: str = ""

    @property
    def ok(self) -> bool:
        return False


ExtractionResult = ExtractionSuccess | ExtractionMalformed


class TranscriptExtractor:
    """Extracts ticket fields from conversation transcripts.

    Args:
        service: Completion service used for the structured request.
        config: Prompt and timeout settings.
        today: Clock used to fill the prompt's date; injectable for tests.
    """

    def __init__(
        self,
        service: CompletionService,
        config: ExtractionConfig | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._service = service
        self._config = config or ExtractionConfig()
        self._today = today

    def build_prompt(self) -> str:
        return self._config.prompt.format(today=self._today().isoformat())

    async def extract(self, transcript: str) -> ExtractionResult:
        """Extract ticket fields from ``transcript``. Never raises."""
        try:
            raw = await self._service.complete_json(
                self.build_prompt(), transcript, SCHEMA_NAME, EXTRACTION_SCHEMA
            )
        except Exception as e:
            logger.error(f"Extraction request failed: {e}")
            return ExtractionMalformed(MalformedReason.SERVICE_ERROR, str(e))

        result = self.parse(raw)
        if isinstance(result, ExtractionMalformed):
            logger.warning(f"Extraction malformed ({result.reason.value}): {result.detail}")
        else:
            logger.info(
                f"Extracted ticket fields: category={result.fields.category}, "
                f"priority={result.fields.priority}, unit={result.fields.unit_number}"
            )
        return result

    @staticmethod
    def parse(raw: str | None) -> ExtractionResult:
        """Validate a raw service response."""
        if raw is None or not raw.strip():
            return ExtractionMalformed(MalformedReason.EMPTY_RESPONSE, "no content")

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            return ExtractionMalformed(MalformedReason.NOT_JSON, f"{e}: {raw[:100]}")

        if not isinstance(data, dict):
            return ExtractionMalformed(MalformedReason.NOT_OBJECT, f"got {type(data).__name__}")

        missing = [
            name for name in REQUIRED_FIELDS
            if not isinstance(data.get(name), str) or not data[name].strip()
        ]
        if missing:
            return ExtractionMalformed(MalformedReason.MISSING_FIELDS, ", ".join(missing))

        # Optional fields arrive as strings, numbers or null
        cleaned = {k: str(v) for k, v in data.items() if v is not None}
        try:
            return ExtractionSuccess(TicketFields.model_validate(cleaned))
        except ValidationError as e:
            return ExtractionMalformed(MalformedReason.MISSING_FIELDS, str(e))
