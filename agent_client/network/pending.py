"""Correlation table for request/response exchanges awaiting an answer."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from agent_client.errors import MessageTimeout

LOGGER = logging.getLogger(__name__)


@dataclass
class PendingExchange:
    id: str
    future: asyncio.Future[Dict[str, Any]]
    deadline: float
    request: Optional[Dict[str, Any]] = None
    timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False)


class PendingExchangeTable:
    """Maps correlation ids to the futures their callers are awaiting.

    Every exchange ends exactly once: resolved, rejected, or expired. Completing
    an id that is unknown or already finished is a silent no-op, since late
    and duplicate frames are expected on a reconnecting socket.
    """

    def __init__(self) -> None:
        self._pending: Dict[str, PendingExchange] = {}

    def register(
        self,
        exchange_id: str,
        timeout: float,
        *,
        request: Optional[Dict[str, Any]] = None,
    ) -> asyncio.Future[Dict[str, Any]]:
        if exchange_id in self._pending:
            raise ValueError(f"Exchange {exchange_id} is already pending")
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Dict[str, Any]] = loop.create_future()
        entry = PendingExchange(
            id=exchange_id,
            future=future,
            deadline=loop.time() + timeout,
            request=request,
        )
        entry.timer = loop.call_later(timeout, self._expire, exchange_id, timeout)
        self._pending[exchange_id] = entry
        future.add_done_callback(lambda _fut: self._discard_cancelled(exchange_id, _fut))
        return future

    def resolve(self, exchange_id: Optional[str], payload: Dict[str, Any]) -> Optional[PendingExchange]:
        entry = self._pop(exchange_id)
        if entry is None:
            return None
        if not entry.future.done():
            entry.future.set_result(payload)
        return entry

    def reject(self, exchange_id: Optional[str], error: BaseException) -> Optional[PendingExchange]:
        entry = self._pop(exchange_id)
        if entry is None:
            return None
        if not entry.future.done():
            entry.future.set_exception(error)
        return entry

    def reject_all(self, error_factory: Callable[[str], BaseException]) -> int:
        """Reject every pending exchange; returns how many were still waiting."""

        entries = list(self._pending.values())
        self._pending.clear()
        for entry in entries:
            self._cancel_timer(entry)
            if not entry.future.done():
                entry.future.set_exception(error_factory(entry.id))
        if entries:
            LOGGER.debug("Rejected %s pending exchange(s)", len(entries))
        return len(entries)

    def ids(self) -> List[str]:
        return list(self._pending)

    def __contains__(self, exchange_id: object) -> bool:
        return exchange_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def _pop(self, exchange_id: Optional[str]) -> Optional[PendingExchange]:
        if exchange_id is None:
            return None
        entry = self._pending.pop(exchange_id, None)
        if entry is None:
            LOGGER.debug("No pending exchange for id=%s; ignoring", exchange_id)
            return None
        self._cancel_timer(entry)
        return entry

    def _expire(self, exchange_id: str, timeout: float) -> None:
        entry = self._pending.pop(exchange_id, None)
        if entry is None:
            return
        LOGGER.warning("Exchange %s timed out after %.0fms", exchange_id, timeout * 1000)
        if not entry.future.done():
            entry.future.set_exception(
                MessageTimeout(f"Message timeout after {timeout * 1000:.0f}ms", exchange_id=exchange_id)
            )

    def _discard_cancelled(self, exchange_id: str, future: asyncio.Future[Any]) -> None:
        if not future.cancelled():
            return
        entry = self._pending.get(exchange_id)
        if entry is not None and entry.future is future:
            del self._pending[exchange_id]
            self._cancel_timer(entry)

    @staticmethod
    def _cancel_timer(entry: PendingExchange) -> None:
        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None
