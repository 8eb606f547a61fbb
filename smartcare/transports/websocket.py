"""WebSocket transports.

``WebSocketClientTransport`` is the outbound connection to the OpenAI Realtime
API, built on the ``websockets`` asyncio client. ``FastAPIWebSocketTransport``
wraps the media-stream WebSocket that Twilio opens against the FastAPI app.
"""

from __future__ import annotations

from typing import Any

import websockets.asyncio.client
from fastapi import WebSocketDisconnect
from loguru import logger
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.protocol import State

from smartcare.config import RealtimeAIConfig
from smartcare.errors import ConnectionClosedError, TransportError
from smartcare.transports.base import BaseTransport


class WebSocketClientTransport(BaseTransport):
    """WebSocket client transport for connecting to a remote endpoint."""

    def __init__(
        self,
        url: str | None = None,
        headers: dict[str, str] | None = None,
        **ws_kwargs: Any,
    ) -> None:
        self._url = url
        self._headers = headers or {}
        self._ws: Any | None = None
        self._ws_kwargs = ws_kwargs

    async def connect(self, **kwargs) -> None:
        url = kwargs.get("url", self._url)
        if not url:
            raise ValueError("WebSocket URL is required")
        self._url = url
        logger.info(f"Connecting to WebSocket: {url}")
        try:
            self._ws = await websockets.asyncio.client.connect(
                url,
                additional_headers=self._headers,
                **self._ws_kwargs,
            )
        except (OSError, TimeoutError, WebSocketException) as e:
            raise TransportError(f"Failed to connect to {url}: {e}") from e
        logger.info(f"Connected to {url}")

    async def send(self, data: bytes | str) -> None:
        if not self._ws:
            raise ConnectionClosedError(reason="not connected")
        try:
            await self._ws.send(data)
        except ConnectionClosed as e:
            raise ConnectionClosedError(e.rcvd.code if e.rcvd else None, "send failed") from e

    async def recv(self) -> bytes | str:
        if not self._ws:
            raise ConnectionClosedError(reason="not connected")
        try:
            return await self._ws.recv()
        except ConnectionClosed as e:
            code = e.rcvd.code if e.rcvd else None
            reason = e.rcvd.reason if e.rcvd else ""
            raise ConnectionClosedError(code, reason) from e

    async def disconnect(self) -> None:
        if self._ws:
            await self._ws.close()
            self._ws = None
            logger.info("WebSocket client disconnected")

    def is_connected(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN


def realtime_transport(config: RealtimeAIConfig) -> WebSocketClientTransport:
    """Create a client transport for the OpenAI Realtime API."""
    return WebSocketClientTransport(
        url=config.realtime_url,
        headers={
            "Authorization": f"Bearer {config.api_key}",
            "OpenAI-Beta": "realtime=v1",
        },
    )


class FastAPIWebSocketTransport(BaseTransport):
    """Adapter to make FastAPI's WebSocket work with the transport interface."""

    def __init__(self, ws: Any) -> None:
        self._ws = ws
        self._connected = True

    async def connect(self, **kwargs) -> None:
        pass  # Already accepted by the route handler

    async def send(self, data: bytes | str) -> None:
        if not self._connected:
            raise ConnectionClosedError(reason="not connected")
        try:
            if isinstance(data, bytes):
                await self._ws.send_bytes(data)
            else:
                await self._ws.send_text(data)
        except WebSocketDisconnect as e:
            self._connected = False
            raise ConnectionClosedError(e.code, e.reason or "send failed") from e
        except (RuntimeError, OSError) as e:
            # Raised by Starlette or the server once the socket is closing
            self._connected = False
            raise ConnectionClosedError(reason=str(e)) from e

    async def recv(self) -> bytes | str:
        msg = await self._ws.receive()
        if msg["type"] == "websocket.disconnect":
            self._connected = False
            raise ConnectionClosedError(msg.get("code"), msg.get("reason") or "")
        if msg.get("text") is not None:
            return msg["text"]
        if msg.get("bytes") is not None:
            return msg["bytes"]
        raise ConnectionClosedError(reason=f"unexpected message type {msg['type']}")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        try:
            await self._ws.close()
        except RuntimeError:
            # Starlette raises once the close handshake already happened
            pass

    def is_connected(self) -> bool:
        return self._connected

    @property
    def headers(self) -> dict[str, str]:
        return dict(getattr(self._ws, "headers", {}) or {})
