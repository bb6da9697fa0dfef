"""Transport abstractions for the agent socket."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006


class TransportClosed(ConnectionError):
    """Raised by ``receive`` once the peer or the client closed the socket."""

    def __init__(self, code: int = ABNORMAL_CLOSURE, reason: str = "") -> None:
        super().__init__(f"transport closed (code={code}{', ' + reason if reason else ''})")
        self.code = code
        self.reason = reason


class FrameDecodeError(ValueError):
    """Raised by ``receive`` for an inbound message that is not a JSON object."""


class BaseTransport(ABC):
    """Abstract WebSocket-like transport owned by the connection manager.

    ``connect`` returning is the *opened* signal, ``receive`` returning is the
    *frame received* signal, and ``receive`` raising :class:`TransportClosed`
    is the *closed with code* signal.
    """

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def send(self, message: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def receive(self) -> dict[str, Any]:
        ...

    @abstractmethod
    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        ...
