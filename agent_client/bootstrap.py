"""Composition point: builds agent services from settings."""

from __future__ import annotations

import logging
from typing import Optional, Type

from agent_client.config import AgentClientSettings, get_settings
from agent_client.network.client import AgentServiceClient
from agent_client.network.transport.base import BaseTransport
from agent_client.network.transport.dummy import DummyTransport
from agent_client.network.transport.websocket import WebSocketTransport
from agent_client.services import AgentService, FallbackAgentService, PatternAgentService

LOGGER = logging.getLogger(__name__)


def build_client(settings: Optional[AgentClientSettings] = None) -> AgentServiceClient:
    """Construct a client wired to the transport named in ``settings``."""

    settings = settings or get_settings()
    resolved_cls: Type[BaseTransport]
    resolved_cls = WebSocketTransport if settings.transport == "websocket" else DummyTransport
    LOGGER.debug("Initialising agent client via %s (%s)", resolved_cls.__name__, settings.server_url)
    return AgentServiceClient(settings=settings, transport_factory=lambda s: resolved_cls(s))


def build_offline_service(settings: AgentClientSettings) -> PatternAgentService:
    return PatternAgentService(
        min_delay=settings.offline_min_delay_ms / 1000.0,
        max_delay=settings.offline_max_delay_ms / 1000.0,
    )


def build_agent_service(
    settings: Optional[AgentClientSettings] = None,
    *,
    client: Optional[AgentServiceClient] = None,
) -> AgentService:
    """Return the service the UI layer talks to.

    With ``offline_fallback`` enabled the real client is wrapped so that
    connectivity failures are answered by the offline pattern agent.
    """

    settings = settings or get_settings()
    client = client or build_client(settings)
    if not settings.offline_fallback:
        return client
    LOGGER.info("Offline fallback enabled for agent service")
    return FallbackAgentService(client, build_offline_service(settings))
