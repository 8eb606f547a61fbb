"""Shared fakes and fixtures for the SmartCare test suite."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from smartcare.config import GatewayConfig, PipelineConfig
from smartcare.errors import ConnectionClosedError, StoreUnavailable, TelephonyError
from smartcare.pipeline.extractor import TranscriptExtractor
from smartcare.pipeline.notifier import SmsNotifier
from smartcare.pipeline.processor import TicketPipeline
from smartcare.pipeline.webhook import TicketWebhook
from smartcare.pipeline.tickets import TicketStore
from smartcare.providers.base import CallInfo, CompletionService, Message, Telephony
from smartcare.session import ProcessedCallRegistry, SessionManager
from smartcare.store import MemoryDocumentStore
from smartcare.transports.base import BaseTransport
from smartcare.users import UserDirectory

AC_TRANSCRIPT = "User: my AC is broken\nAgent: sorry, unit number?\nUser: 52\n"

AC_EXTRACTION = json.dumps({
    "residentName": "Unknown",
    "problemDescription": "AC broken",
    "preferredServiceTime": "2024-01-01T00:00:00Z",
    "unitNumber": "52",
})

CALL_SID = "CA" + "0" * 31 + "1"


class FakeTransport(BaseTransport):
    """In-memory transport driven by a queue of incoming frames."""

    def __init__(self, connect_error: Exception | None = None) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[str] = []
        self.connected = False
        self.connect_calls = 0
        self.disconnect_calls = 0
        self._connect_error = connect_error

    async def connect(self, **kwargs) -> None:
        self.connect_calls += 1
        if self._connect_error:
            raise self._connect_error
        self.connected = True

    async def send(self, data: bytes | str) -> None:
        if not self.connected:
            raise ConnectionClosedError(reason="not connected")
        self.sent.append(data)

    async def recv(self) -> bytes | str:
        item = await self.incoming.get()
        if isinstance(item, Exception):
            self.connected = False
            raise item
        return item

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False

    def is_connected(self) -> bool:
        return self.connected

    def feed(self, frame: Any) -> None:
        self.incoming.put_nowait(frame if isinstance(frame, (str, bytes)) else json.dumps(frame))

    def close(self, code: int = 1000, reason: str = "") -> None:
        self.incoming.put_nowait(ConnectionClosedError(code, reason))

    @property
    def sent_json(self) -> list[dict]:
        return [json.loads(s) for s in self.sent]


class FakeCompletion(CompletionService):
    """Completion service returning canned responses."""

    def __init__(self, json_response: str | None = AC_EXTRACTION, chat_reply: str = "How can I help?") -> None:
        self.json_response = json_response
        self.chat_reply = chat_reply
        self.error: Exception | None = None
        self.json_calls: list[dict] = []
        self.chat_calls: list[list[Message]] = []
        self.closed = False

    async def complete_json(self, system_prompt, user_content, schema_name, schema):
        self.json_calls.append({
            "system_prompt": system_prompt,
            "user_content": user_content,
            "schema_name": schema_name,
            "schema": schema,
        })
        if self.error:
            raise self.error
        return self.json_response

    async def chat(self, messages):
        self.chat_calls.append(list(messages))
        if self.error:
            raise self.error
        return self.chat_reply

    async def close(self) -> None:
        self.closed = True

    @property
    def name(self) -> str:
        return "fake"


class FakeTelephony(Telephony):
    """Telephony provider that records requests."""

    def __init__(self) -> None:
        self.sms: list[tuple[str, str]] = []
        self.calls: list[dict] = []
        self.call_info: dict[str, CallInfo] = {}
        self.fail_sms = False
        self.fail_calls = False

    async def create_call(self, to, answer_url, status_callback=""):
        if self.fail_calls:
            raise TelephonyError("call rejected")
        self.calls.append({"to": to, "answer_url": answer_url, "status_callback": status_callback})
        return CALL_SID

    async def fetch_call(self, call_sid):
        if call_sid not in self.call_info:
            raise TelephonyError("call not found")
        return self.call_info[call_sid]

    async def send_sms(self, to, body):
        if self.fail_sms:
            raise TelephonyError("sms rejected")
        self.sms.append((to, body))
        return "SM123"

    @property
    def name(self) -> str:
        return "fake"


class FlakyStore(MemoryDocumentStore):
    """Memory store whose writes fail for selected collections."""

    def __init__(self, failing: set[str] | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.failing = failing or set()

    async def add(self, collection, data):
        if collection in self.failing:
            raise StoreUnavailable(f"{collection} unavailable")
        return await super().add(collection, data)

    async def find(self, collection, field, value, limit=None):
        if collection in self.failing:
            raise StoreUnavailable(f"{collection} unavailable")
        return await super().find(collection, field, value, limit)


RESIDENT = {
    "id": "user-1",
    "firstName": "Sara",
    "lastName": "Ali",
    "phone": "+966501234567",
    "community": "Sedra",
    "unitNumber": "12B",
}


def build_pipeline(
    store: MemoryDocumentStore | None = None,
    completion: FakeCompletion | None = None,
    telephony: FakeTelephony | None = None,
    registry: ProcessedCallRegistry | None = None,
    config: PipelineConfig | None = None,
    webhook: TicketWebhook | None = None,
) -> TicketPipeline:
    store = store if store is not None else MemoryDocumentStore()
    completion = completion or FakeCompletion()
    return TicketPipeline(
        extractor=TranscriptExtractor(completion),
        tickets=TicketStore(store),
        notifier=SmsNotifier(telephony),
        users=UserDirectory(store),
        store=store,
        registry=registry or ProcessedCallRegistry(),
        telephony=telephony,
        config=config,
        webhook=webhook,
    )


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig.from_dict({
        "openai_api_key": "sk-test",
        "public_url": "https://gateway.example.com",
        "ai": {"settle_delay_ms": 0},
    })


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore(seed={"users": [RESIDENT]})


@pytest.fixture
def completion() -> FakeCompletion:
    return FakeCompletion()


@pytest.fixture
def telephony() -> FakeTelephony:
    return FakeTelephony()


@pytest.fixture
def sessions() -> SessionManager:
    return SessionManager()
