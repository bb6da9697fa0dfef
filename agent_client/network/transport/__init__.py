"""Transport implementations for the agent socket."""

from .base import ABNORMAL_CLOSURE, NORMAL_CLOSURE, BaseTransport, FrameDecodeError, TransportClosed
from .dummy import DummyTransport
from .websocket import WebSocketTransport

__all__ = [
    "ABNORMAL_CLOSURE",
    "NORMAL_CLOSURE",
    "BaseTransport",
    "FrameDecodeError",
    "TransportClosed",
    "DummyTransport",
    "WebSocketTransport",
]
