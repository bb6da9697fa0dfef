"""Primary/fallback composition of agent services."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Tuple, Type

from agent_client.errors import ConnectError, ConnectionClosed, MessageTimeout, ReconnectExhausted
from shared.models.agent import AgentResponse

from .base import AgentService

LOGGER = logging.getLogger(__name__)

CONNECTIVITY_ERRORS: Tuple[Type[BaseException], ...] = (
    ConnectError,
    ConnectionClosed,
    ReconnectExhausted,
    MessageTimeout,
)


class FallbackAgentService:
    """Answers from ``fallback`` when ``primary`` cannot reach the backend.

    Only connectivity failures are absorbed; a ``ServerError`` is the backend's
    own answer and propagates to the caller.
    """

    def __init__(self, primary: AgentService, fallback: AgentService) -> None:
        self.primary = primary
        self.fallback = fallback

    async def send_message(self, message: str, history: Iterable[Any] = ()) -> AgentResponse:
        history = list(history)
        try:
            return await self.primary.send_message(message, history)
        except CONNECTIVITY_ERRORS as exc:
            LOGGER.warning("Agent backend unavailable (%s); answering offline", exc)
            return await self.fallback.send_message(message, history)
