"""Capability interface shared by every agent backend."""

from __future__ import annotations

from typing import Any, Iterable, Protocol, runtime_checkable

from shared.models.agent import AgentResponse


@runtime_checkable
class AgentService(Protocol):
    async def send_message(self, message: str, history: Iterable[Any] = ()) -> AgentResponse: ...
