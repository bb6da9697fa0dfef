"""Typed publish/subscribe channels for client observers."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Generic, List, ParamSpec, Set

LOGGER = logging.getLogger(__name__)

P = ParamSpec("P")


class EventChannel(Generic[P]):
    """Fan-out of one event category to any number of subscribers.

    ``publish`` runs in the caller's event-loop turn. Plain handlers are called
    inline; coroutine handlers are scheduled as tasks. A failing handler is
    logged and never affects the publisher or the other subscribers.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: List[Callable[P, Any]] = []
        self._tasks: Set[asyncio.Task[Any]] = set()

    def subscribe(self, handler: Callable[P, Any]) -> Callable[[], None]:
        """Register ``handler``; the returned callable unsubscribes it."""

        self._handlers.append(handler)

        def _unsubscribe() -> None:
            self.unsubscribe(handler)

        return _unsubscribe

    def unsubscribe(self, handler: Callable[P, Any]) -> bool:
        if handler in self._handlers:
            self._handlers.remove(handler)
            return True
        return False

    def publish(self, *args: P.args, **kwargs: P.kwargs) -> None:
        # Snapshot: handlers may unsubscribe themselves while being called.
        for handler in list(self._handlers):
            try:
                result = handler(*args, **kwargs)
                if inspect.isawaitable(result):
                    self._spawn(result)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Observer failed on %s channel: %s", self.name, handler)

    def clear(self) -> None:
        self._handlers.clear()

    def __len__(self) -> int:
        return len(self._handlers)

    def _spawn(self, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Async observer failed on %s channel", self.name, exc_info=exc)
