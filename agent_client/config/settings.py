"""Agent client configuration loading and validation."""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, Literal

import yaml
from pydantic import AnyUrl, Field, NonNegativeInt, PositiveInt
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_LOCATIONS: tuple[Path, ...] = (
    Path("/etc/defi-agent/client.yaml"),
    Path("/etc/defi-agent/client.yml"),
    Path("./config/agent_client.yaml"),
    Path("./config/agent_client.yml"),
)


class AgentClientSettings(BaseSettings):
    """Validated settings for the agent socket client."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="AGENT_CLIENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Connection
    server_url: AnyUrl = Field(
        default="ws://localhost:3001",
        description="Agent server WebSocket endpoint.",
    )
    transport: Literal["dummy", "websocket"] = Field(
        default="websocket",
        description="Transport implementation to use.",
    )
    connect_timeout_ms: PositiveInt = Field(
        default=10000,
        description="Bounded wait for a socket open before connect() fails.",
    )

    # Reconnection
    max_reconnect_attempts: NonNegativeInt = Field(
        default=5,
        description="Consecutive reconnect attempts before the client enters ERROR.",
    )
    reconnect_delay_ms: PositiveInt = Field(
        default=1000,
        description="Base delay for reconnect backoff.",
    )
    max_reconnect_delay_ms: PositiveInt = Field(
        default=30000,
        description="Upper bound for reconnect backoff.",
    )
    reconnect_jitter: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Multiplicative jitter applied on top of the backoff delay (0 disables).",
    )

    # Exchanges & keepalive
    message_timeout_ms: PositiveInt = Field(
        default=30000,
        description="Deadline for a request to receive its response.",
    )
    ping_interval_ms: PositiveInt = Field(
        default=30000,
        description="Heartbeat frequency while connected.",
    )
    max_missed_pongs: NonNegativeInt = Field(
        default=0,
        description="Unanswered heartbeats tolerated before forcing a reconnect (0 disables).",
    )

    # Offline agent
    offline_fallback: bool = Field(
        default=False,
        description="Answer from the pattern-based agent when the server is unreachable.",
    )
    offline_min_delay_ms: NonNegativeInt = Field(
        default=200,
        description="Lower bound of the simulated offline agent latency.",
    )
    offline_max_delay_ms: NonNegativeInt = Field(
        default=400,
        description="Upper bound of the simulated offline agent latency.",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level for the client process.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        if isinstance(value, str):
            return value.upper()
        return value

    @model_validator(mode="after")
    def _check_bounds(self) -> "AgentClientSettings":
        if self.max_reconnect_delay_ms < self.reconnect_delay_ms:
            raise ValueError("max_reconnect_delay_ms must be >= reconnect_delay_ms")
        if self.offline_max_delay_ms < self.offline_min_delay_ms:
            raise ValueError("offline_max_delay_ms must be >= offline_min_delay_ms")
        return self

    config_path: Path | None = Field(
        default=None,
        description="Resolved path to the on-disk config that seeded the settings.",
        exclude=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[AgentClientSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            cls._yaml_settings_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @staticmethod
    def _yaml_settings_source(settings_cls: type[AgentClientSettings] | None = None) -> Dict[str, Any]:
        candidates: Iterable[Path] = AgentClientSettings._resolve_candidate_paths()

        for path in candidates:
            data = AgentClientSettings._load_file(path)
            if data is not None:
                data.setdefault("config_path", path)
                return data
        return {}

    @staticmethod
    def _resolve_candidate_paths() -> Iterable[Path]:
        explicit = os.getenv("AGENT_CLIENT_CONFIG_FILE")
        if explicit:
            yield Path(explicit).expanduser()
        yield from DEFAULT_CONFIG_LOCATIONS

    @staticmethod
    def _load_file(path: Path) -> Dict[str, Any] | None:
        if not path.is_file():
            return None
        suffix = path.suffix.lower()
        try:
            with path.open("r", encoding="utf-8") as handle:
                if suffix in {".yaml", ".yml"}:
                    raw = yaml.safe_load(handle)
                elif suffix == ".json":
                    raw = json.load(handle)
                else:
                    return None
        except OSError as exc:
            raise RuntimeError(f"Failed to read agent client config file {path}") from exc
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ValueError(f"Invalid agent client config file {path}") from exc

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError(f"Agent client config file {path} must contain a mapping at top level.")
        return raw

    # Millisecond options are exposed in seconds for asyncio timers.

    @property
    def connect_timeout(self) -> float:
        return self.connect_timeout_ms / 1000.0

    @property
    def message_timeout(self) -> float:
        return self.message_timeout_ms / 1000.0

    @property
    def ping_interval(self) -> float:
        return self.ping_interval_ms / 1000.0

    @property
    def reconnect_delay(self) -> float:
        return self.reconnect_delay_ms / 1000.0

    @property
    def max_reconnect_delay(self) -> float:
        return self.max_reconnect_delay_ms / 1000.0


@lru_cache()
def get_settings() -> AgentClientSettings:
    """Return memoized agent client settings."""

    return AgentClientSettings()
