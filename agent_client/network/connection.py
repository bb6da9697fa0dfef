"""Connection manager that owns the agent socket lifecycle."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Callable, Coroutine, Dict, List, Optional, Set

from agent_client.config import AgentClientSettings
from agent_client.errors import ConnectError, ConnectionClosed, ConnectTimeout, ReconnectExhausted
from agent_client.network.events import EventChannel
from agent_client.network.keepalive import KeepaliveMonitor
from agent_client.network.outbound import OutboundQueue
from agent_client.network.pending import PendingExchangeTable
from agent_client.network.session import ContextRestoreNotice, SessionContext
from agent_client.network.state import ConnectionState, ConnectionStateTracker
from agent_client.network.transport.base import (
    ABNORMAL_CLOSURE,
    NORMAL_CLOSURE,
    BaseTransport,
    FrameDecodeError,
    TransportClosed,
)

LOGGER = logging.getLogger(__name__)

HEARTBEAT_TIMEOUT_CODE = 4000


def backoff_delay(attempt: int, base: float, maximum: float) -> float:
    """Delay before the reconnect that follows ``attempt`` earlier ones."""

    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    return min(base * (2.0 ** min(attempt, 1023)), maximum)


def _connection_closed(message: str, *, code: Optional[int] = None, cause: Optional[BaseException] = None) -> ConnectionClosed:
    error = ConnectionClosed(message, code=code)
    error.__cause__ = cause
    return error


class ConnectionManager:
    """Owns the transport, the state machine and the reconnect schedule.

    All methods run on the event loop thread. ``disconnect`` is synchronous:
    pending exchanges are rejected and background tasks cancelled before it
    returns; ``aclose`` additionally waits for those tasks to unwind.
    """

    def __init__(
        self,
        settings: AgentClientSettings,
        transport_factory: Callable[[AgentClientSettings], BaseTransport],
        *,
        pending: PendingExchangeTable,
        session: SessionContext,
        frame_handler: Callable[[Dict[str, Any]], Any],
        state_changed: EventChannel[[ConnectionState, ConnectionState]],
        errors: EventChannel[[BaseException]],
        reconnect_scheduled: EventChannel[[int, float]],
        context_not_restored: EventChannel[[ContextRestoreNotice]],
    ) -> None:
        self._settings = settings
        self._transport_factory = transport_factory
        self._pending = pending
        self._session = session
        self._frame_handler = frame_handler
        self.state_changed = state_changed
        self.errors = errors
        self.reconnect_scheduled = reconnect_scheduled
        self.context_not_restored = context_not_restored

        self._tracker = ConnectionStateTracker()
        self._outbound = OutboundQueue()
        self._keepalive = KeepaliveMonitor(
            settings.ping_interval,
            self._send_heartbeat,
            max_missed=settings.max_missed_pongs,
            on_missed=self._on_heartbeat_missed,
        )
        self._transport: Optional[BaseTransport] = None
        self._attempts = 0
        self._ever_connected = False
        self._connect_task: Optional[asyncio.Task[None]] = None
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._flush_task: Optional[asyncio.Task[None]] = None
        self._waiters: List[asyncio.Future[None]] = []
        self._background: Set[asyncio.Task[Any]] = set()

    # -- Inspection -------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._tracker.state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def queued(self) -> int:
        return len(self._outbound)

    def is_connected(self) -> bool:
        return self._tracker.state is ConnectionState.CONNECTED

    # -- Public operations ------------------------------------------------

    async def connect(self) -> None:
        """Resolve once CONNECTED; joins an attempt already in flight."""

        state = self.state
        if state is ConnectionState.CONNECTED:
            return
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        if state in (ConnectionState.DISCONNECTED, ConnectionState.ERROR):
            self._begin_attempt()
        try:
            await waiter
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def disconnect(self) -> None:
        """Caller-initiated close; idempotent."""

        for task in (self._connect_task, self._receive_task, self._flush_task):
            if task is not None and not task.done():
                task.cancel()
        self._connect_task = None
        self._receive_task = None
        self._flush_task = None
        self._keepalive.stop()

        transport = self._transport
        self._transport = None
        if transport is not None:
            self._close_quietly(transport, NORMAL_CLOSURE, "Client disconnect")

        rejected = self._pending.reject_all(lambda _id: ConnectionClosed("Connection closed", code=NORMAL_CLOSURE))
        dropped = self._outbound.clear()
        self._attempts = 0
        self._session.reset()
        self._settle_waiters(ConnectionClosed("Connection closed before it was established"))
        if self.state is not ConnectionState.DISCONNECTED:
            LOGGER.info("Disconnected (rejected=%s, dropped=%s)", rejected, dropped)
            self._transition(ConnectionState.DISCONNECTED)

    async def aclose(self) -> None:
        self.disconnect()
        current = asyncio.current_task()
        tasks = [task for task in self._background if task is not current]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def send_frame(self, frame: Dict[str, Any]) -> None:
        """Write ``frame`` now when connected, otherwise queue it in order."""

        transport = self._transport
        if (
            self.state is ConnectionState.CONNECTED
            and transport is not None
            and not self._outbound
            and not self._outbound.flushing
        ):
            try:
                await transport.send(frame)
            except Exception as exc:  # noqa: BLE001
                raise _connection_closed(f"Send failed: {exc}", cause=exc) from exc
            return

        self._outbound.enqueue(frame)
        state = self.state
        if state is ConnectionState.CONNECTED:
            self._schedule_flush()
        elif state in (ConnectionState.DISCONNECTED, ConnectionState.ERROR):
            self._begin_attempt()

    def acknowledge_heartbeat(self) -> None:
        self._keepalive.acknowledge()

    # -- Opening ----------------------------------------------------------

    def _begin_attempt(self) -> None:
        self._attempts = 0
        self._transition(ConnectionState.CONNECTING)
        if self.state is not ConnectionState.CONNECTING:
            return
        self._connect_task = self._spawn(self._attempt(reconnect=False), name="agent-connect")

    async def _attempt(self, *, reconnect: bool) -> None:
        try:
            transport = await self._open()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            if reconnect:
                LOGGER.warning("Reconnect attempt %s failed: %s", self._attempts, exc)
                self._schedule_reconnect()
            else:
                self._fail(exc)
            return
        self._on_open(transport, reconnect=reconnect)

    async def _open(self) -> BaseTransport:
        transport = self._transport_factory(self._settings)
        try:
            await asyncio.wait_for(transport.connect(), timeout=self._settings.connect_timeout)
        except asyncio.TimeoutError as exc:
            self._close_quietly(transport, NORMAL_CLOSURE, "connect timeout")
            raise ConnectTimeout(f"Connection timeout after {self._settings.connect_timeout_ms}ms") from exc
        except asyncio.CancelledError:
            self._close_quietly(transport, NORMAL_CLOSURE, "connect cancelled")
            raise
        except Exception as exc:  # noqa: BLE001
            self._close_quietly(transport, NORMAL_CLOSURE, "connect failed")
            raise ConnectError(f"Failed to connect to server: {exc}") from exc
        return transport

    def _on_open(self, transport: BaseTransport, *, reconnect: bool) -> None:
        had_session = self._ever_connected
        self._transport = transport
        self._connect_task = None
        self._attempts = 0
        self._ever_connected = True
        LOGGER.info("Agent socket connected%s", " (reconnect)" if reconnect else "")
        self._receive_task = self._spawn(self._receive_loop(transport), name="agent-recv")
        self._transition(ConnectionState.CONNECTED)
        if self._transport is not transport:
            # an observer disconnected us from inside the transition
            return
        self._keepalive.start()
        self._settle_waiters(None)
        if had_session:
            notice = self._session.restore_notice()
            LOGGER.warning(
                "Conversation context not restored after reconnect (previous session=%s, %s exchange(s))",
                notice.previous_session_id,
                notice.history_length,
            )
            self.context_not_restored.publish(notice)
        if self._outbound:
            self._schedule_flush()

    # -- Receiving & closing ----------------------------------------------

    async def _receive_loop(self, transport: BaseTransport) -> None:
        while True:
            try:
                raw = await transport.receive()
            except asyncio.CancelledError:
                raise
            except FrameDecodeError as exc:
                LOGGER.warning("Dropping undecodable frame: %s", exc)
                continue
            except TransportClosed as exc:
                self._on_transport_closed(transport, exc.code, exc.reason)
                return
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Receive loop error: %s", exc)
                self._on_transport_closed(transport, ABNORMAL_CLOSURE, str(exc))
                return
            self._frame_handler(raw)

    def _on_transport_closed(self, transport: BaseTransport, code: int, reason: str) -> None:
        if transport is not self._transport:
            return
        self._transport = None
        self._receive_task = None
        self._keepalive.stop()
        if self._flush_task is not None and not self._flush_task.done():
            self._flush_task.cancel()
        self._flush_task = None
        LOGGER.warning("Agent socket closed unexpectedly (code=%s reason=%s)", code, reason or "-")
        self._pending.reject_all(
            lambda _id: ConnectionClosed(f"Connection closed (code {code})", code=code)
        )
        self._outbound.clear()
        self._schedule_reconnect()

    def _on_heartbeat_missed(self, missed: int) -> None:
        transport = self._transport
        if transport is None:
            return
        if self._receive_task is not None and not self._receive_task.done():
            self._receive_task.cancel()
        self._close_quietly(transport, HEARTBEAT_TIMEOUT_CODE, "heartbeat timeout")
        self._on_transport_closed(transport, HEARTBEAT_TIMEOUT_CODE, f"{missed} heartbeat(s) unanswered")

    # -- Reconnect schedule -----------------------------------------------

    def _schedule_reconnect(self) -> None:
        limit = self._settings.max_reconnect_attempts
        if self._attempts >= limit:
            self._exhaust()
            return
        delay = backoff_delay(self._attempts, self._settings.reconnect_delay, self._settings.max_reconnect_delay)
        jitter = self._settings.reconnect_jitter
        if jitter:
            delay = max(0.0, delay * random.uniform(1 - jitter, 1 + jitter))
        self._attempts += 1
        self._transition(ConnectionState.RECONNECTING)
        if self.state is not ConnectionState.RECONNECTING:
            return
        LOGGER.warning("Reconnecting in %.2fs (attempt %s/%s)", delay, self._attempts, limit)
        self._connect_task = self._spawn(self._reconnect_after(delay), name="agent-reconnect")
        self.reconnect_scheduled.publish(self._attempts, delay)

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._transition(ConnectionState.CONNECTING)
        await self._attempt(reconnect=True)

    def _exhaust(self) -> None:
        error = ReconnectExhausted(self._attempts)
        LOGGER.error("%s; giving up until connect() is called", error)
        self._enter_error(error)

    def _fail(self, exc: BaseException) -> None:
        LOGGER.error("Connection failed: %s", exc)
        self._enter_error(exc)
        self.errors.publish(exc)

    def _enter_error(self, exc: BaseException) -> None:
        self._connect_task = None
        self._keepalive.stop()
        self._pending.reject_all(lambda _id: _connection_closed(f"Connection failed: {exc}", cause=exc))
        self._outbound.clear()
        self._settle_waiters(exc)
        self._transition(ConnectionState.ERROR)

    # -- Helpers ----------------------------------------------------------

    def _transition(self, new_state: ConnectionState) -> None:
        old_state = self._tracker.state
        if old_state is new_state:
            return
        self._tracker.transition(new_state)
        if new_state is not ConnectionState.CONNECTED:
            self._keepalive.stop()
        LOGGER.debug("Connection state %s -> %s", old_state.value, new_state.value)
        self.state_changed.publish(new_state, old_state)

    def _schedule_flush(self) -> None:
        if self._flush_task is not None and not self._flush_task.done():
            return
        self._flush_task = self._spawn(self._flush(), name="agent-flush")

    async def _flush(self) -> None:
        transport = self._transport
        if transport is None:
            return

        async def _send_queued(frame: Dict[str, Any]) -> None:
            frame_id = frame.get("id")
            if frame_id not in self._pending:
                LOGGER.debug("Skipping queued frame id=%s; its exchange already finished", frame_id)
                return
            try:
                await transport.send(frame)
            except TransportClosed:
                raise
            except Exception as exc:  # noqa: BLE001
                # failure is local to this frame; the rest of the queue keeps flowing
                LOGGER.warning("Dropping queued frame id=%s: %s", frame_id, exc)
                self._pending.reject(frame_id, _connection_closed(f"Send failed: {exc}", cause=exc))

        try:
            sent = await self._outbound.flush(_send_queued)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Outbound flush interrupted with %s frame(s) still queued: %s", len(self._outbound), exc)
            return
        if sent:
            LOGGER.debug("Flushed %s queued frame(s)", sent)

    async def _send_heartbeat(self, frame: Dict[str, Any]) -> None:
        transport = self._transport
        if transport is None or self.state is not ConnectionState.CONNECTED:
            raise ConnectionClosed("Heartbeat skipped: not connected")
        await transport.send(frame)

    def _settle_waiters(self, exc: Optional[BaseException]) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if waiter.done():
                continue
            if exc is None:
                waiter.set_result(None)
            else:
                waiter.set_exception(exc)

    def _close_quietly(self, transport: BaseTransport, code: int, reason: str) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.debug("No running event loop; skipping transport close")
            return
        self._spawn(transport.close(code, reason), name="agent-transport-close")

    def _spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.debug("Suppress background task error (%s)", task.get_name(), exc_info=exc)
