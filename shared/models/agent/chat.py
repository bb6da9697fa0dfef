from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .envelope import now_ms


class UiIntent(BaseModel):
    """Rendering hint attached to an assistant reply; opaque beyond its type."""

    model_config = ConfigDict(extra="allow")

    type: str
    component: Optional[str] = None
    props: Dict[str, Any] = Field(default_factory=dict)


class ChatMessage(BaseModel):
    """A single conversation turn as exchanged with the dashboard UI."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    role: Literal["user", "assistant", "system"]
    content: str = ""
    timestamp: int = Field(default_factory=now_ms)
    ui_intent: Optional[UiIntent] = Field(default=None, alias="uiIntent")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("content", mode="before")
    @classmethod
    def _null_content(cls, value: Any) -> Any:
        return "" if value is None else value


class AgentResponse(ChatMessage):
    """Assistant reply returned by ``send_message``."""

    role: Literal["assistant"] = "assistant"


class ChatRequestPayload(BaseModel):
    """Payload of an outbound CHAT_MESSAGE frame."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    history: List[Dict[str, Any]] = Field(default_factory=list)
    session_id: Optional[str] = Field(default=None, alias="sessionId")
