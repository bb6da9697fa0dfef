"""WebSocket transport implementation."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pydantic_core import to_jsonable_python
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from agent_client.config import AgentClientSettings
from agent_client.network.transport.base import (
    ABNORMAL_CLOSURE,
    NORMAL_CLOSURE,
    BaseTransport,
    FrameDecodeError,
    TransportClosed,
)

LOGGER = logging.getLogger(__name__)


class WebSocketTransport(BaseTransport):
    """WebSocket-based agent transport (JSON text frames)."""

    def __init__(self, settings: AgentClientSettings) -> None:
        self._settings = settings
        self._ws: Optional[ClientConnection] = None

    async def connect(self) -> None:
        LOGGER.info("Connecting to agent WebSocket at %s", self._settings.server_url)
        # Liveness is driven by the PING/PONG keepalive, not protocol pings.
        self._ws = await connect(
            str(self._settings.server_url),
            open_timeout=None,
            ping_interval=None,
        )

    async def send(self, message: dict[str, Any]) -> None:
        if not self._ws:
            raise TransportClosed(ABNORMAL_CLOSURE, "WebSocket transport not connected")
        payload = json.dumps(to_jsonable_python(message))
        LOGGER.debug("WebSocket send: %s", payload)
        try:
            await self._ws.send(payload)
        except ConnectionClosed as exc:
            raise _closed_from(exc) from exc

    async def receive(self) -> dict[str, Any]:
        if not self._ws:
            raise TransportClosed(ABNORMAL_CLOSURE, "WebSocket transport not connected")
        try:
            raw = await self._ws.recv()
        except ConnectionClosed as exc:
            raise _closed_from(exc) from exc
        LOGGER.debug("WebSocket receive: %s", raw)
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise FrameDecodeError(f"invalid JSON frame: {exc}") from exc
        if not isinstance(data, dict):
            raise FrameDecodeError(f"frame must be a JSON object, got {type(data).__name__}")
        return data

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        if self._ws:
            LOGGER.info("Closing WebSocket transport (code=%s)", code)
            ws = self._ws
            self._ws = None
            await ws.close(code=code, reason=reason)


def _closed_from(exc: ConnectionClosed) -> TransportClosed:
    close = exc.rcvd
    if close is None:
        return TransportClosed(ABNORMAL_CLOSURE, "connection lost")
    return TransportClosed(close.code, close.reason)
