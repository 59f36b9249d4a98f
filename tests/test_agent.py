"""Unit tests for the storage-node agent simulator."""

import threading

import pytest

from agent.node import AgentArray, NodeState, StorageNodeAgent
from common.models.cluster import ChunkDescriptor


class TestStorageNodeAgent:
    """Tests for a single agent."""

    def test_register(self, control_plane, agent_settings):
        """Test registration and the synthetic identity."""
        agent = StorageNodeAgent(4, control_plane, 10, agent_settings)
        registration = agent.register()

        assert agent.state == NodeState.REGISTERED
        assert registration.address == f"{agent_settings.host}:{agent_settings.base_port + 4}"
        assert registration.cluster_id == "test-cluster"
        assert agent.pool_id == control_plane.namespace_info.pool_id
        assert agent.storage is not None

    def test_heartbeat(self, control_plane, agent_settings):
        """Test that a heartbeat moves the agent on."""
        agent = StorageNodeAgent(0, control_plane, 10, agent_settings)
        agent.register()

        assert agent.send_heartbeat() == []
        assert agent.state == NodeState.HEARTBEATING

    def test_capacity(self, control_plane, agent_settings):
        """Test that chunk C+1 is refused."""
        agent = StorageNodeAgent(0, control_plane, 3, agent_settings)

        results = [agent.add_chunk(ChunkDescriptor(chunk_id=i)) for i in range(4)]

        assert results == [True, True, True, False]
        assert agent.num_chunks == 3

    def test_concurrent_add_chunk(self, control_plane, agent_settings):
        """Test that concurrent appends never exceed capacity."""
        agent = StorageNodeAgent(0, control_plane, 50, agent_settings)

        def add(base):
            for i in range(20):
                agent.add_chunk(ChunkDescriptor(chunk_id=base + i))

        threads = [threading.Thread(target=add, args=(t * 100,)) for t in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert agent.num_chunks == 50

    def test_report_padding(self, control_plane, agent_settings):
        """Test that free slots are filled with chunks that do not exist."""
        agent = StorageNodeAgent(0, control_plane, 5, agent_settings)
        agent.register()
        agent.add_chunk(ChunkDescriptor(chunk_id=1 << 30))
        agent.add_chunk(ChunkDescriptor(chunk_id=(1 << 30) + 1))

        report = agent.build_report()

        assert len(report.chunks) == 5
        assert [c.chunk_id for c in report.chunks[:2]] == [1 << 30, (1 << 30) + 1]
        assert [c.chunk_id for c in report.chunks[2:]] == [3, 2, 1]
        assert agent.report is report
        assert agent.state == NodeState.REPORTING

    def test_report_accepted_by_server(self, control_plane, agent_settings):
        """Test that padding is counted as unknown chunks."""
        agent = StorageNodeAgent(0, control_plane, 4, agent_settings)
        agent.register()
        report = agent.build_report()

        control_plane.chunk_report(agent.registration, agent.pool_id, [report])

        assert control_plane.invalid_chunks_reported == 4

    def test_decommission(self, control_plane, agent_settings):
        """Test the terminal state."""
        agent = StorageNodeAgent(0, control_plane, 4, agent_settings)
        agent.register()
        agent.decommission()
        agent.build_report()

        assert agent.state == NodeState.DECOMMISSIONED


class TestAgentArray:
    """Tests for the address-sorted agent array."""

    def test_sorted_lookup(self, registered_agents):
        """Test binary search by address."""
        assert registered_agents.is_sorted()
        for agent in registered_agents:
            assert registered_agents.lookup(agent.address) is agent

    def test_lexicographic_order(self, control_plane, agent_settings):
        """Test that ports sort as strings."""
        agents = AgentArray(
            StorageNodeAgent(idx, control_plane, 1, agent_settings) for idx in range(12)
        )

        assert agents.is_sorted()
        assert agents.addresses == sorted(agents.addresses)
        assert agents[0].port == agent_settings.base_port

    def test_unknown_address(self, registered_agents):
        """Test that an unknown address raises KeyError."""
        with pytest.raises(KeyError):
            registered_agents.lookup("10.0.0.1:9")

    def test_replicate_chunks(self, control_plane, registered_agents):
        """Test that transfer commands are carried out and acknowledged."""
        control_plane.create("/f", "client", replication=2)
        located = control_plane.add_chunk("/f", "client", None)
        for address in located.locations:
            agent = registered_agents.lookup(address)
            agent.add_chunk(located.chunk)
            control_plane.chunk_received_and_deleted(
                agent.registration, agent.pool_id, agent.receipt_for(located.chunk),
            )
        source = registered_agents.lookup(located.locations[0])
        source.decommission()
        control_plane.refresh_nodes([source.address])

        assert control_plane.compute_pending_reconstruction_work() == 1
        transferred = sum(agent.replicate_chunks() for agent in registered_agents)

        assert transferred == 1
        assert control_plane.pending_reconstructions() == 0
        assert len(control_plane.get_chunk_locations("/f", 0, 16)[0].locations) == 3
