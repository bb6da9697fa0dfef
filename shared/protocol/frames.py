"""Helpers for building/parsing agent socket frames."""

from __future__ import annotations

import uuid
from typing import Any, Dict, Iterable, Mapping, Optional

from pydantic import BaseModel

from shared.models.agent import ChatRequestPayload, ErrorDetail, Frame, FrameType, now_ms

Payload = Dict[str, Any] | BaseModel


def _payload_dict(payload: Optional[Payload]) -> Dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, BaseModel):
        return payload.model_dump(exclude_none=True, by_alias=True)
    return dict(payload)


def new_message_id(prefix: str = "msg") -> str:
    """Return a correlation id unique for the lifetime of the process."""

    return f"{prefix}_{now_ms()}_{uuid.uuid4().hex[:12]}"


def build_frame(
    frame_type: FrameType | str,
    payload: Optional[Payload] = None,
    *,
    frame_id: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> Dict[str, Any]:
    """Construct a frame dict ready for transport."""

    frame = Frame(
        type=frame_type.value if isinstance(frame_type, FrameType) else frame_type,
        id=frame_id or new_message_id(),
        payload=_payload_dict(payload),
        timestamp=timestamp if timestamp is not None else now_ms(),
    )
    return frame.model_dump()


def parse_frame(raw: Any) -> Frame:
    """Validate and parse a raw frame dict."""

    return Frame.model_validate(raw)


def _history_item(item: Any) -> Dict[str, Any]:
    if isinstance(item, BaseModel):
        return item.model_dump(by_alias=True, exclude_none=True)
    return dict(item)


def make_chat_request(
    request_id: str,
    message: str,
    history: Iterable[Any] = (),
    *,
    session_id: Optional[str] = None,
) -> Dict[str, Any]:
    payload = ChatRequestPayload(
        message=message,
        history=[_history_item(item) for item in history],
        session_id=session_id,
    )
    # sessionId is sent as null before the server has issued one
    return build_frame(
        FrameType.CHAT_MESSAGE,
        payload.model_dump(by_alias=True),
        frame_id=request_id,
    )


def make_ping() -> Dict[str, Any]:
    return build_frame(FrameType.PING, frame_id=new_message_id("ping"))


def error_detail(payload: Mapping[str, Any]) -> ErrorDetail:
    """Extract the error body from an ERROR frame payload.

    The server nests it as ``{"error": {...}}``; a flat ``{"message", "code"}``
    payload is accepted as well.
    """

    nested = payload.get("error")
    if isinstance(nested, Mapping):
        return ErrorDetail.model_validate(dict(nested))
    return ErrorDetail.model_validate(dict(payload))
