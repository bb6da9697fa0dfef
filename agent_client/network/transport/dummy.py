"""No-op transport for offline runs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .base import NORMAL_CLOSURE, BaseTransport, TransportClosed

LOGGER = logging.getLogger(__name__)


class DummyTransport(BaseTransport):
    """Accepts every frame and never answers; ``receive`` blocks until closed."""

    def __init__(self, settings=None) -> None:
        self._settings = settings
        self._closed: asyncio.Event | None = None
        self._close_code = NORMAL_CLOSURE
        self._close_reason = ""

    def _event(self) -> asyncio.Event:
        if self._closed is None:
            self._closed = asyncio.Event()
        return self._closed

    async def connect(self) -> None:
        LOGGER.debug("Dummy transport connect()")
        self._event().clear()

    async def send(self, message: dict[str, Any]) -> None:
        LOGGER.debug("Dummy transport send(): %s", message)

    async def receive(self) -> dict[str, Any]:
        await self._event().wait()
        raise TransportClosed(self._close_code, self._close_reason)

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        LOGGER.debug("Dummy transport close()")
        self._close_code = code
        self._close_reason = reason
        self._event().set()
