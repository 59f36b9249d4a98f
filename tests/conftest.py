"""Pytest configuration and shared fixtures."""

import tempfile
import shutil
from pathlib import Path
from typing import Generator

import pytest

from agent.config import AgentSettings
from harness.config import Settings
from harness.core.context import BenchmarkContext
from harness.storage.control_plane import InMemoryControlPlane


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def settings(temp_dir: Path) -> Settings:
    """Harness settings writing result files into the temporary directory."""
    return Settings(
        stat_path=temp_dir / "stat.out",
        cdf_path=temp_dir / "create-lat.dat",
        create_pool_size=2,
        allocate_pool_size=3,
        drain_timeout=60,
    )


@pytest.fixture
def agent_settings() -> AgentSettings:
    """Default storage-node agent settings."""
    return AgentSettings()


@pytest.fixture
def control_plane() -> InMemoryControlPlane:
    """Fresh in-memory control plane (starts in safe mode)."""
    return InMemoryControlPlane(cluster_id="test-cluster")


@pytest.fixture
def context(control_plane, settings, agent_settings) -> BenchmarkContext:
    """Benchmark context around the in-memory control plane."""
    return BenchmarkContext(server=control_plane, settings=settings, agent_settings=agent_settings)


@pytest.fixture
def registered_agents(control_plane, agent_settings):
    """Three registered agents with room for five chunks each."""
    from agent.node import AgentArray, StorageNodeAgent

    control_plane.set_safe_mode(False)
    agents = AgentArray()
    for idx in range(3):
        agent = StorageNodeAgent(idx, control_plane, 5, agent_settings)
        agent.register()
        agent.send_heartbeat()
        agents.append(agent)
    agents.sort()
    return agents
