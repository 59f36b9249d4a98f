"""Storage-node agent simulator settings."""

from __future__ import annotations

from typing import Optional

from pydantic_settings import BaseSettings


class AgentSettings(BaseSettings):
    """Agent settings loaded from environment variables."""

    # Synthetic network identity: "<host>:<base_port + index>"
    host: str = "127.0.0.1"
    hostname: str = "localhost"
    base_port: int = 1

    # Fixed figures reported with every heartbeat
    df_capacity: int = 100 * 1024 * 1024
    df_used: int = 0

    # Chunk slots per node as a multiple of the chunks per report
    capacity_factor: float = 1.5

    software_version: str = "1.0.0"

    class Config:
        env_prefix = "NNBENCH_AGENT_"
        env_file = ".env"
        extra = "ignore"


# Global settings instance
_settings: Optional[AgentSettings] = None


def get_settings() -> AgentSettings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = AgentSettings()
    return _settings


def init_settings(**kwargs) -> AgentSettings:
    """Initialize settings with custom values."""
    global _settings
    _settings = AgentSettings(**kwargs)
    return _settings
