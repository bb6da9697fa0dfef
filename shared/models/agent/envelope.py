from __future__ import annotations

import enum
import time
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def now_ms() -> int:
    return int(time.time() * 1000)


class FrameType(str, enum.Enum):
    """Envelope types spoken by the agent WebSocket server."""

    CONNECTION_ESTABLISHED = "CONNECTION_ESTABLISHED"
    CHAT_MESSAGE = "CHAT_MESSAGE"
    CHAT_RESPONSE = "CHAT_RESPONSE"
    STREAM_CHUNK = "STREAM_CHUNK"
    STREAM_END = "STREAM_END"
    ERROR = "ERROR"
    PING = "PING"
    PONG = "PONG"


class Frame(BaseModel):
    """One message unit on the agent socket."""

    model_config = ConfigDict(extra="allow")

    type: str
    id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int = Field(default_factory=now_ms)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("payload", mode="before")
    @classmethod
    def _null_payload(cls, value: Any) -> Any:
        if value is None:
            return {}
        return value


class ConnectionEstablishedPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    session_id: str = Field(alias="sessionId")


class ErrorDetail(BaseModel):
    """Server error body; the server nests it under ``payload.error``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    message: Optional[str] = None
    code: Optional[str] = None
    status_code: Optional[int] = Field(default=None, alias="statusCode")
    severity: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def _stringify_code(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)
