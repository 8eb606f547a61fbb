"""Base transport interface.

A call has two links: the media-stream socket Twilio opened to the gateway
(already accepted when the bridge starts) and the socket the gateway opens to
the OpenAI Realtime API. Both are driven through this interface so the bridge
and its tests never touch a concrete socket type.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseTransport(ABC):
    """One bidirectional text/bytes link. A closed link raises
    :class:`~smartcare.errors.ConnectionClosedError` from ``recv``."""

    @abstractmethod
    async def connect(self, **kwargs) -> None:
        """Establish the transport connection."""
        ...

    @abstractmethod
    async def send(self, data: bytes | str) -> None:
        """Send data over the transport."""
        ...

    @abstractmethod
    async def recv(self) -> bytes | str:
        """Receive the next message from the transport.

        Raises:
            ConnectionClosedError: If the connection is closed.
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the transport connection gracefully."""
        ...

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the transport is currently connected."""
        ...
