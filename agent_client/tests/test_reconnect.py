import asyncio

import pytest

from agent_client.errors import ConnectionClosed, ReconnectExhausted
from agent_client.network.state import ConnectionState


@pytest.mark.asyncio
async def test_unexpected_close_reconnects_with_backoff(server, make_client, wait_until):
    client = make_client(server)
    scheduled = []
    client.on_reconnect_scheduled(lambda attempt, delay: scheduled.append((attempt, delay)))
    try:
        await client.connect()
        server.fail_connects = 1
        server.current.drop()

        await wait_until(lambda: len(server.transports) == 3 and client.is_connected())

        assert scheduled == [(1, 0.02), (2, 0.04)]
        assert client.connection.attempts == 0
        assert len(server.connect_times) == 3
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_state_sequence_during_reconnect(server, make_client, wait_until):
    client = make_client(server)
    states = []
    client.on_connection_change(lambda new, old: states.append(new))
    try:
        await client.connect()
        states.clear()
        server.current.drop()
        await wait_until(lambda: ConnectionState.RECONNECTING in states)
        await wait_until(lambda: client.is_connected())

        assert states == [
            ConnectionState.RECONNECTING,
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
        ]
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_pending_exchanges_rejected_on_close(server, make_client, wait_until):
    server.auto_reply = False
    client = make_client(server)
    try:
        await client.connect()
        task = asyncio.create_task(client.send_message("in flight"))
        await wait_until(lambda: len(server.chat_requests()) == 1)

        server.current.drop(code=1011, reason="internal error")

        with pytest.raises(ConnectionClosed) as excinfo:
            await task
        assert excinfo.value.code == 1011
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_messages_sent_while_reconnecting_are_flushed(server, make_client, wait_until):
    client = make_client(server)
    try:
        await client.connect()
        server.connect_delay = 0.02
        server.current.drop()
        await wait_until(lambda: client.get_connection_state() is not ConnectionState.CONNECTED)

        replies = await asyncio.gather(client.send_message("one"), client.send_message("two"))

        assert [reply.content for reply in replies] == ["echo: one", "echo: two"]
        assert [frame["payload"]["message"] for frame in server.current.sent if frame["type"] == "CHAT_MESSAGE"] == [
            "one",
            "two",
        ]
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_context_notice_after_reconnect(server, make_client, wait_until):
    client = make_client(server)
    notices = []
    client.on_context_not_restored(notices.append)
    try:
        await client.connect()
        await wait_until(lambda: client.session_id == "session-1")
        await client.send_message("remember me")
        assert notices == []

        server.current.drop()
        await wait_until(lambda: len(notices) == 1)

        [notice] = notices
        assert notice.previous_session_id == "session-1"
        assert notice.history_length == 1
        await wait_until(lambda: client.session_id == "session-2")
        assert len(client.history) == 1
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_budget_exhaustion_is_terminal(server, make_client, wait_until):
    client = make_client(server)
    scheduled = []
    states = []
    client.on_reconnect_scheduled(lambda attempt, delay: scheduled.append(attempt))
    client.on_connection_change(lambda new, old: states.append(new))
    try:
        await client.connect()
        server.fail_connects = 100
        server.current.drop()

        await wait_until(lambda: client.get_connection_state() is ConnectionState.ERROR)
        assert scheduled == [1, 2, 3]
        assert len(server.connect_times) == 1 + 3

        await asyncio.sleep(0.3)
        assert len(server.connect_times) == 1 + 3
        assert states[-1] is ConnectionState.ERROR
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_connect_waiting_on_episode_sees_exhaustion(server, make_client, wait_until):
    client = make_client(server, max_reconnect_attempts=1)
    try:
        await client.connect()
        server.fail_connects = 100
        server.current.drop()
        await wait_until(lambda: client.get_connection_state() is ConnectionState.RECONNECTING)

        with pytest.raises(ReconnectExhausted) as excinfo:
            await client.connect()
        assert excinfo.value.attempts == 1
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_zero_budget_goes_straight_to_error(server, make_client, wait_until):
    client = make_client(server, max_reconnect_attempts=0)
    scheduled = []
    client.on_reconnect_scheduled(lambda attempt, delay: scheduled.append(attempt))
    try:
        await client.connect()
        server.current.drop()
        await wait_until(lambda: client.get_connection_state() is ConnectionState.ERROR)
        assert scheduled == []
        assert len(server.connect_times) == 1
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_manual_connect_after_error_resets_budget(server, make_client, wait_until):
    client = make_client(server, max_reconnect_attempts=1)
    try:
        await client.connect()
        server.fail_connects = 1
        server.current.drop()
        await wait_until(lambda: client.get_connection_state() is ConnectionState.ERROR)

        await client.connect()
        assert client.is_connected()
        assert client.connection.attempts == 0
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_disconnect_during_backoff_cancels_reconnect(server, make_client, wait_until):
    client = make_client(server, reconnect_delay_ms=50)
    try:
        await client.connect()
        server.current.drop()
        await wait_until(lambda: client.get_connection_state() is ConnectionState.RECONNECTING)

        client.disconnect()
        await asyncio.sleep(0.1)

        assert client.get_connection_state() is ConnectionState.DISCONNECTED
        assert len(server.connect_times) == 1
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_observer_disconnect_inside_transition(server, make_client, wait_until):
    client = make_client(server)

    def _stop_on_reconnect(new, old):
        if new is ConnectionState.RECONNECTING:
            client.disconnect()

    try:
        await client.connect()
        client.on_connection_change(_stop_on_reconnect)
        server.current.drop()
        await wait_until(lambda: client.get_connection_state() is ConnectionState.DISCONNECTED)
        await asyncio.sleep(0.05)
        assert len(server.connect_times) == 1
    finally:
        await client.aclose()
