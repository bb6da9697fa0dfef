"""Error taxonomy surfaced by the agent client."""

from __future__ import annotations

from typing import Any, Dict, Optional


class AgentClientError(RuntimeError):
    """Base class for every failure the agent client reports to callers."""


class ConnectError(AgentClientError):
    """Raised when opening the agent socket fails."""


class ConnectTimeout(ConnectError):
    """Raised when the socket does not open within the connect window."""


class MessageTimeout(AgentClientError):
    """Raised when an exchange receives no answer before its deadline."""

    def __init__(self, message: str, *, exchange_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.exchange_id = exchange_id


class ServerError(AgentClientError):
    """Raised when the server answers an exchange with an ERROR frame."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}


class ConnectionClosed(AgentClientError):
    """Raised for exchanges still pending when the connection went away."""

    def __init__(self, message: str = "Connection closed", *, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


class ReconnectExhausted(AgentClientError):
    """Raised when the reconnect budget is spent and the client gives up."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Reconnection failed after {attempts} attempt(s)")
        self.attempts = attempts


__all__ = [
    "AgentClientError",
    "ConnectError",
    "ConnectTimeout",
    "MessageTimeout",
    "ServerError",
    "ConnectionClosed",
    "ReconnectExhausted",
]
