"""Agent service client facade: correlation-based requests over one socket."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from agent_client.config import AgentClientSettings
from agent_client.errors import ConnectionClosed, ServerError
from agent_client.network.connection import ConnectionManager
from agent_client.network.events import EventChannel
from agent_client.network.pending import PendingExchangeTable
from agent_client.network.router import MessageRouter
from agent_client.network.session import ContextRestoreNotice, ExchangeRecord, SessionContext
from agent_client.network.state import ConnectionState
from agent_client.network.transport.base import BaseTransport
from agent_client.network.transport.websocket import WebSocketTransport
from shared.models.agent import AgentResponse, Frame, now_ms
from shared.protocol import make_chat_request, new_message_id

LOGGER = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


def parse_agent_response(request_id: str, payload: Dict[str, Any]) -> AgentResponse:
    """Build an ``AgentResponse`` from a CHAT_RESPONSE payload.

    The server wraps the reply as ``{"message": {...}, "sessionId": ...}``; a
    flat payload carrying ``content`` is accepted too.
    """

    body = payload.get("message")
    data = dict(body) if isinstance(body, dict) else dict(payload)
    data.setdefault("id", f"{request_id}_reply")
    data.setdefault("timestamp", now_ms())
    data["role"] = "assistant"
    try:
        return AgentResponse.model_validate(data)
    except ValidationError as exc:
        raise ServerError(
            "Malformed response payload",
            code="MALFORMED_RESPONSE",
            details={"errors": exc.errors(include_url=False)},
        ) from exc


@dataclass
class AgentServiceClient:
    """Sends chat messages to the agent backend and awaits the correlated reply."""

    settings: AgentClientSettings
    transport_factory: Callable[[AgentClientSettings], BaseTransport] = WebSocketTransport

    session: SessionContext = field(default_factory=SessionContext, init=False, repr=False)
    pending: PendingExchangeTable = field(default_factory=PendingExchangeTable, init=False, repr=False)
    connection: ConnectionManager = field(init=False, repr=False)
    router: MessageRouter = field(init=False, repr=False)

    _messages: EventChannel[[Dict[str, Any]]] = field(init=False, repr=False)
    _state_changes: EventChannel[[ConnectionState, ConnectionState]] = field(init=False, repr=False)
    _errors: EventChannel[[BaseException]] = field(init=False, repr=False)
    _stream: EventChannel[[Frame]] = field(init=False, repr=False)
    _context_notices: EventChannel[[ContextRestoreNotice]] = field(init=False, repr=False)
    _reconnects: EventChannel[[int, float]] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._messages = EventChannel("message")
        self._state_changes = EventChannel("connection")
        self._errors = EventChannel("error")
        self._stream = EventChannel("stream")
        self._context_notices = EventChannel("context_not_restored")
        self._reconnects = EventChannel("reconnect_scheduled")
        self.router = MessageRouter(
            self.pending,
            self.session,
            raw_messages=self._messages,
            stream=self._stream,
            errors=self._errors,
            on_pong=self._on_pong,
        )
        self.connection = ConnectionManager(
            self.settings,
            self.transport_factory,
            pending=self.pending,
            session=self.session,
            frame_handler=self.router.route,
            state_changed=self._state_changes,
            errors=self._errors,
            reconnect_scheduled=self._reconnects,
            context_not_restored=self._context_notices,
        )

    # -- Lifecycle --------------------------------------------------------

    async def connect(self) -> None:
        await self.connection.connect()

    def disconnect(self) -> None:
        self.connection.disconnect()

    async def aclose(self) -> None:
        await self.connection.aclose()

    async def __aenter__(self) -> "AgentServiceClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # -- Exchanges --------------------------------------------------------

    async def send_message(self, message: str, history: Iterable[Any] = ()) -> AgentResponse:
        """Send one chat message and wait for the reply correlated to it.

        The frame is queued when the socket is not open yet and a connection
        attempt is started if none is running. Raises ``MessageTimeout``,
        ``ServerError`` or ``ConnectionClosed`` for this exchange only.
        """

        request_id = new_message_id()
        frame = make_chat_request(request_id, message, history, session_id=self.session.session_id)
        future = self.pending.register(request_id, self.settings.message_timeout, request=frame)
        try:
            await self.connection.send_frame(frame)
        except ConnectionClosed as exc:
            self.pending.reject(request_id, exc)
        LOGGER.debug("Sent CHAT_MESSAGE id=%s (pending=%s)", request_id, len(self.pending))
        payload = await future
        return parse_agent_response(request_id, payload)

    # -- Observers --------------------------------------------------------

    def on_message(self, handler: Callable[[Dict[str, Any]], Any]) -> Unsubscribe:
        return self._messages.subscribe(handler)

    def on_connection_change(self, handler: Callable[[ConnectionState, ConnectionState], Any]) -> Unsubscribe:
        return self._state_changes.subscribe(handler)

    def on_error(self, handler: Callable[[BaseException], Any]) -> Unsubscribe:
        return self._errors.subscribe(handler)

    def on_stream(self, handler: Callable[[Frame], Any]) -> Unsubscribe:
        return self._stream.subscribe(handler)

    def on_context_not_restored(self, handler: Callable[[ContextRestoreNotice], Any]) -> Unsubscribe:
        return self._context_notices.subscribe(handler)

    def on_reconnect_scheduled(self, handler: Callable[[int, float], Any]) -> Unsubscribe:
        return self._reconnects.subscribe(handler)

    # -- Inspection -------------------------------------------------------

    def get_connection_state(self) -> ConnectionState:
        return self.connection.state

    def is_connected(self) -> bool:
        return self.connection.is_connected()

    @property
    def session_id(self) -> Optional[str]:
        return self.session.session_id

    @property
    def history(self) -> List[ExchangeRecord]:
        return list(self.session.history)

    def clear_history(self) -> None:
        self.session.clear_history()

    def _on_pong(self) -> None:
        self.connection.acknowledge_heartbeat()
