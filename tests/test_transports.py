"""Tests for the WebSocket transport adapters."""

from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocketDisconnect

from smartcare.errors import ConnectionClosedError
from smartcare.transports.websocket import FastAPIWebSocketTransport


class FakeWebSocket:

    def __init__(self, send_error=None, messages=None):
        self.send_text = AsyncMock(side_effect=send_error)
        self.send_bytes = AsyncMock(side_effect=send_error)
        self.receive = AsyncMock(side_effect=messages or [])
        self.close = AsyncMock()


class TestFastAPIWebSocketTransport:

    @pytest.mark.asyncio
    async def test_send_text_and_bytes(self):
        ws = FakeWebSocket()
        transport = FastAPIWebSocketTransport(ws)
        await transport.send("hello")
        await transport.send(b"\x00\x01")
        ws.send_text.assert_awaited_once_with("hello")
        ws.send_bytes.assert_awaited_once_with(b"\x00\x01")

    @pytest.mark.asyncio
    async def test_send_after_disconnect(self):
        transport = FastAPIWebSocketTransport(FakeWebSocket(send_error=WebSocketDisconnect(1006)))

        with pytest.raises(ConnectionClosedError) as exc_info:
            await transport.send("frame")

        assert exc_info.value.code == 1006
        assert transport.is_connected() is False

    @pytest.mark.asyncio
    async def test_send_on_closing_socket(self):
        error = RuntimeError('Cannot call "send" once a close message has been sent.')
        transport = FastAPIWebSocketTransport(FakeWebSocket(send_error=error))

        with pytest.raises(ConnectionClosedError):
            await transport.send(b"frame")
        assert transport.is_connected() is False

        # Later sends fail fast without touching the socket
        with pytest.raises(ConnectionClosedError):
            await transport.send("again")

    @pytest.mark.asyncio
    async def test_recv_disconnect(self):
        ws = FakeWebSocket(messages=[{"type": "websocket.disconnect", "code": 1000}])
        transport = FastAPIWebSocketTransport(ws)

        with pytest.raises(ConnectionClosedError) as exc_info:
            await transport.recv()

        assert exc_info.value.code == 1000
        assert transport.is_connected() is False
