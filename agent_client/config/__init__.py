"""Configuration primitives for the agent client."""

from .settings import AgentClientSettings, get_settings

__all__ = ["AgentClientSettings", "get_settings"]
