import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest

from agent_client.config import AgentClientSettings
from agent_client.network.client import AgentServiceClient
from agent_client.network.transport.base import ABNORMAL_CLOSURE, NORMAL_CLOSURE, TransportClosed
from agent_client.network.transport.dummy import DummyTransport
from shared.models.agent import FrameType, now_ms
from shared.protocol import build_frame


def reply_frame(request_id: str, content: str, session_id: Optional[str] = None) -> Dict[str, Any]:
    return build_frame(
        FrameType.CHAT_RESPONSE,
        {
            "message": {
                "id": f"reply_{request_id}",
                "role": "assistant",
                "content": content,
                "timestamp": now_ms(),
            },
            "sessionId": session_id,
        },
        frame_id=request_id,
    )


class FakeTransport(DummyTransport):
    """In-memory socket driven by a ``FakeServer``."""

    def __init__(self, server: "FakeServer", settings=None) -> None:
        super().__init__(settings)
        self.server = server
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.sent: List[Dict[str, Any]] = []
        self.closed_with: Optional[tuple[int, str]] = None
        self.session_id: Optional[str] = None

    async def connect(self) -> None:
        await self.server.on_connect(self)
        await super().connect()

    async def send(self, message: Dict[str, Any]) -> None:
        if self.closed_with is not None:
            raise TransportClosed(self.closed_with[0], self.closed_with[1])
        self.sent.append(message)
        self.server.on_send(self, message)

    async def receive(self) -> Dict[str, Any]:
        item = await self.inbound.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        if self.closed_with is None:
            self.closed_with = (code, reason)
        self.inbound.put_nowait(TransportClosed(code, reason))

    def push(self, frame: Any) -> None:
        self.inbound.put_nowait(frame)

    def drop(self, code: int = ABNORMAL_CLOSURE, reason: str = "server went away") -> None:
        self.closed_with = (code, reason)
        self.inbound.put_nowait(TransportClosed(code, reason))


class FakeServer:
    """Scripted agent backend: welcomes sockets and echoes chat messages."""

    def __init__(
        self,
        *,
        fail_connects: int = 0,
        connect_delay: float = 0.0,
        welcome: bool = True,
        auto_reply: bool = True,
        answer_pings: bool = True,
    ) -> None:
        self.fail_connects = fail_connects
        self.connect_delay = connect_delay
        self.welcome = welcome
        self.auto_reply = auto_reply
        self.answer_pings = answer_pings
        self.transports: List[FakeTransport] = []
        self.connect_times: List[float] = []
        self.received: List[Dict[str, Any]] = []
        self.sessions = 0

    def factory(self, settings=None) -> FakeTransport:
        transport = FakeTransport(self, settings)
        self.transports.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport:
        return self.transports[-1]

    def chat_requests(self) -> List[Dict[str, Any]]:
        return [frame for frame in self.received if frame["type"] == FrameType.CHAT_MESSAGE.value]

    async def on_connect(self, transport: FakeTransport) -> None:
        self.connect_times.append(asyncio.get_running_loop().time())
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.fail_connects > 0:
            self.fail_connects -= 1
            raise OSError("connection refused")
        if self.welcome:
            self.sessions += 1
            transport.session_id = f"session-{self.sessions}"
            transport.push(
                build_frame(FrameType.CONNECTION_ESTABLISHED, {"sessionId": transport.session_id})
            )

    def on_send(self, transport: FakeTransport, frame: Dict[str, Any]) -> None:
        self.received.append(frame)
        if frame["type"] == FrameType.PING.value and self.answer_pings:
            transport.push(build_frame(FrameType.PONG, frame_id=frame["id"]))
        elif frame["type"] == FrameType.CHAT_MESSAGE.value and self.auto_reply:
            message = frame["payload"]["message"]
            transport.push(reply_frame(frame["id"], f"echo: {message}", transport.session_id))


async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.002)


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def settings() -> AgentClientSettings:
    return AgentClientSettings(
        transport="dummy",
        connect_timeout_ms=200,
        reconnect_delay_ms=20,
        max_reconnect_delay_ms=200,
        max_reconnect_attempts=3,
        message_timeout_ms=500,
        ping_interval_ms=60000,
    )


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def make_client(settings):
    def _make(server: FakeServer, **overrides: Any) -> AgentServiceClient:
        resolved = settings.model_copy(update=overrides) if overrides else settings
        return AgentServiceClient(settings=resolved, transport_factory=server.factory)

    return _make


@pytest.fixture
def fake_server_cls():
    return FakeServer


@pytest.fixture
def reply():
    return reply_frame
