from .chat import AgentResponse, ChatMessage, ChatRequestPayload, UiIntent
from .envelope import ConnectionEstablishedPayload, ErrorDetail, Frame, FrameType, now_ms

__all__ = [
    "AgentResponse",
    "ChatMessage",
    "ChatRequestPayload",
    "UiIntent",
    "ConnectionEstablishedPayload",
    "ErrorDetail",
    "Frame",
    "FrameType",
    "now_ms",
]
