"""Dispatch of inbound agent frames."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from agent_client.errors import ServerError
from agent_client.network.events import EventChannel
from agent_client.network.pending import PendingExchangeTable
from agent_client.network.session import SessionContext
from shared.models.agent import ConnectionEstablishedPayload, ErrorDetail, Frame, FrameType
from shared.protocol import error_detail, parse_frame

LOGGER = logging.getLogger(__name__)


class MessageRouter:
    """Routes each frame to the pending table, the session, or observers.

    ``route`` never raises; every frame that parses is broadcast verbatim to
    ``raw_messages`` subscribers after its type-specific handling.
    """

    def __init__(
        self,
        pending: PendingExchangeTable,
        session: SessionContext,
        *,
        raw_messages: EventChannel[[Dict[str, Any]]],
        stream: EventChannel[[Frame]],
        errors: EventChannel[[BaseException]],
        on_pong: Optional[Callable[[], None]] = None,
    ) -> None:
        self._pending = pending
        self._session = session
        self._raw_messages = raw_messages
        self._stream = stream
        self._errors = errors
        self._on_pong = on_pong
        self._handlers: Dict[str, Callable[[Frame], None]] = {
            FrameType.CONNECTION_ESTABLISHED.value: self._handle_established,
            FrameType.CHAT_RESPONSE.value: self._handle_response,
            FrameType.STREAM_CHUNK.value: self._handle_stream,
            FrameType.STREAM_END.value: self._handle_stream,
            FrameType.ERROR.value: self._handle_error,
            FrameType.PONG.value: self._handle_pong,
        }

    def route(self, raw: Any) -> Optional[Frame]:
        try:
            frame = parse_frame(raw)
        except ValidationError as exc:
            LOGGER.warning("Dropping malformed frame: %s", exc.errors(include_url=False))
            return None

        handler = self._handlers.get(frame.type)
        if handler is None:
            LOGGER.warning("Unknown message type %s (id=%s); dropped", frame.type, frame.id)
        else:
            try:
                handler(frame)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Failed to handle %s frame id=%s", frame.type, frame.id)

        self._raw_messages.publish(raw)
        return frame

    def _handle_established(self, frame: Frame) -> None:
        try:
            payload = ConnectionEstablishedPayload.model_validate(frame.payload)
        except ValidationError:
            LOGGER.warning("CONNECTION_ESTABLISHED without sessionId; ignoring")
            return
        self._session.assign(payload.session_id)

    def _handle_response(self, frame: Frame) -> None:
        entry = self._pending.resolve(frame.id, frame.payload)
        if entry is None:
            LOGGER.debug("Response for unknown or finished exchange id=%s", frame.id)
            return
        self._session.record(entry.request, frame.payload)

    def _handle_stream(self, frame: Frame) -> None:
        LOGGER.debug("Stream frame %s id=%s", frame.type, frame.id)
        self._stream.publish(frame)

    def _handle_error(self, frame: Frame) -> None:
        try:
            detail = error_detail(frame.payload)
        except ValidationError:
            LOGGER.warning("ERROR frame id=%s with unreadable body: %s", frame.id, frame.payload)
            detail = ErrorDetail()
        error = ServerError(
            detail.message or "Server error",
            code=detail.code,
            details=detail.model_dump(by_alias=True, exclude_none=True),
        )
        if frame.id is None:
            LOGGER.warning("Uncorrelated server error: %s", error)
            self._errors.publish(error)
            return
        if self._pending.reject(frame.id, error) is None:
            LOGGER.debug("Error for unknown or finished exchange id=%s: %s", frame.id, error)

    def _handle_pong(self, frame: Frame) -> None:
        if self._on_pong:
            self._on_pong()
