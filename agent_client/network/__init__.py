"""Network stack (transport/connection/client) for the agent backend socket."""

from agent_client.network.client import AgentServiceClient, parse_agent_response
from agent_client.network.connection import ConnectionManager, backoff_delay
from agent_client.network.events import EventChannel
from agent_client.network.pending import PendingExchangeTable
from agent_client.network.session import ContextRestoreNotice, ExchangeRecord, SessionContext
from agent_client.network.state import ConnectionState
from agent_client.network.transport.base import BaseTransport
from agent_client.network.transport.dummy import DummyTransport
from agent_client.network.transport.websocket import WebSocketTransport

__all__ = [
    "AgentServiceClient",
    "parse_agent_response",
    "ConnectionManager",
    "backoff_delay",
    "EventChannel",
    "PendingExchangeTable",
    "ContextRestoreNotice",
    "ExchangeRecord",
    "SessionContext",
    "ConnectionState",
    "BaseTransport",
    "DummyTransport",
    "WebSocketTransport",
]
