"""Run-wide state shared by every benchmark component."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from agent.config import AgentSettings
from agent.config import get_settings as get_agent_settings
from common.protocol import ControlPlane
from harness.config import Settings, get_settings

# Logger of the server under test; its level follows --log-level.
SERVER_LOGGER = "harness.storage"


@dataclass
class BenchmarkContext:
    """Server handle and settings for one benchmark run."""
    server: ControlPlane
    settings: Settings
    agent_settings: AgentSettings

    @classmethod
    def create(
        cls,
        server: Optional[ControlPlane] = None,
        settings: Optional[Settings] = None,
        agent_settings: Optional[AgentSettings] = None,
    ) -> "BenchmarkContext":
        if server is None:
            from harness.storage.control_plane import InMemoryControlPlane
            server = InMemoryControlPlane()
        return cls(
            server=server,
            settings=settings or get_settings(),
            agent_settings=agent_settings or get_agent_settings(),
        )


def set_server_log_level(level: Union[str, int]) -> None:
    """Change the log level of the server under test."""
    if isinstance(level, str):
        level = level.upper()
    logging.getLogger(SERVER_LOGGER).setLevel(level)
