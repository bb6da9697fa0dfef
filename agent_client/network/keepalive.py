"""Periodic PING emitter for a connected socket."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Optional

from shared.protocol import make_ping

LOGGER = logging.getLogger(__name__)


class KeepaliveMonitor:
    """Sends a heartbeat frame every ``interval`` seconds while running.

    The monitor is a liveness signal to the server. It only judges the peer
    when ``max_missed`` is positive: that many PINGs without a PONG in between
    triggers ``on_missed``.
    """

    def __init__(
        self,
        interval: float,
        send: Callable[[Dict[str, Any]], Awaitable[None]],
        *,
        max_missed: int = 0,
        on_missed: Optional[Callable[[int], None]] = None,
        jitter: float = 0.0,
    ) -> None:
        self._interval = float(interval)
        self._send = send
        self._max_missed = int(max_missed)
        self._on_missed = on_missed
        self._jitter = float(jitter)
        self._task: Optional[asyncio.Task[None]] = None
        self._outstanding = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def outstanding(self) -> int:
        return self._outstanding

    def start(self) -> None:
        if self.running:
            return
        self._outstanding = 0
        self._task = asyncio.create_task(self._loop(), name="agent-keepalive")

    def stop(self) -> Optional[asyncio.Task[None]]:
        """Cancel the loop; returns the cancelled task so callers may await it."""

        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
        return task

    def acknowledge(self) -> None:
        self._outstanding = 0

    async def _loop(self) -> None:
        while True:
            interval = self._interval
            if self._jitter:
                interval += random.uniform(0, self._jitter)
            await asyncio.sleep(interval)
            if self._max_missed and self._outstanding >= self._max_missed:
                LOGGER.warning("No PONG for %s heartbeat(s); peer considered dead", self._outstanding)
                if self._on_missed:
                    self._on_missed(self._outstanding)
                return
            try:
                await self._send(make_ping())
                self._outstanding += 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Heartbeat send failed: %s", exc)
