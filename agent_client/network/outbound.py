"""FIFO buffer for frames accepted while the socket is not open."""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict

LOGGER = logging.getLogger(__name__)


class OutboundQueue:
    def __init__(self) -> None:
        self._entries: Deque[Dict[str, Any]] = deque()
        self._flushing = False

    @property
    def flushing(self) -> bool:
        return self._flushing

    def enqueue(self, frame: Dict[str, Any]) -> None:
        self._entries.append(frame)
        LOGGER.debug("Queued frame type=%s id=%s (depth=%s)", frame.get("type"), frame.get("id"), len(self._entries))

    async def flush(self, send: Callable[[Dict[str, Any]], Awaitable[None]]) -> int:
        """Send queued frames oldest-first; returns how many were sent.

        If a send fails, that frame goes back to the head of the queue ahead of
        the untouched remainder and the error is re-raised. Frames enqueued
        while a flush is running are sent by the same flush.
        """

        sent = 0
        self._flushing = True
        try:
            while self._entries:
                frame = self._entries.popleft()
                try:
                    await send(frame)
                except BaseException:
                    self._entries.appendleft(frame)
                    raise
                sent += 1
        finally:
            self._flushing = False
        return sent

    def clear(self) -> int:
        dropped = len(self._entries)
        self._entries.clear()
        if dropped:
            LOGGER.debug("Dropped %s queued frame(s)", dropped)
        return dropped

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)
