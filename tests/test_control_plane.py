"""Unit tests for the in-memory control plane."""

import pytest

from common.errors import LeaseError, PathNotEmptyError, SafeModeError, UnknownNodeError
from common.models.cluster import StorageNodeRegistration


class TestNamespace:
    """Tests for namespace calls."""

    def test_safe_mode_blocks_writes(self, control_plane):
        """Test that a fresh server refuses modifications."""
        with pytest.raises(SafeModeError):
            control_plane.create("/a/f", "client")

        control_plane.set_safe_mode(False)
        status = control_plane.create("/a/f", "client")
        assert status.path == "/a/f"
        assert not status.is_dir

    def test_create_records_server_stat(self, control_plane):
        """Test that every create is timed by the server."""
        control_plane.set_safe_mode(False)
        control_plane.create("/f1", "client")
        control_plane.create("/f2", "client")

        assert control_plane.get_server_stats()["create"].count == 2
        assert control_plane.get_server_stats()["write_lock"].count >= 2

    def test_mkdirs_and_file_info(self, control_plane):
        """Test directory creation and status lookups."""
        control_plane.set_safe_mode(False)
        assert control_plane.mkdirs("/a/b/c", True)

        assert control_plane.get_file_info("/a/b").is_dir
        assert control_plane.get_file_info("/a/b").children_num == 1
        assert control_plane.get_file_info("/missing") is None

    def test_create_without_parent(self, control_plane):
        """Test that missing parents are an error when not created."""
        control_plane.set_safe_mode(False)
        with pytest.raises(FileNotFoundError):
            control_plane.create("/x/y/f", "client", create_parent=False)

    def test_overwrite(self, control_plane):
        """Test create with and without overwrite."""
        control_plane.set_safe_mode(False)
        control_plane.create("/f", "client")
        control_plane.create("/f", "client", overwrite=True)

        with pytest.raises(FileExistsError):
            control_plane.create("/f", "client", overwrite=False)

    def test_delete(self, control_plane):
        """Test recursive and non-recursive deletes."""
        control_plane.set_safe_mode(False)
        control_plane.create("/d/f", "client")

        with pytest.raises(PathNotEmptyError):
            control_plane.delete("/d", False)
        assert control_plane.delete("/d/f", False)
        assert control_plane.delete("/d", True)
        assert not control_plane.delete("/d", True)

    def test_rename(self, control_plane):
        """Test renaming files and directories."""
        control_plane.set_safe_mode(False)
        control_plane.create("/a/f", "client")

        assert control_plane.rename("/a/f", "/a/f.r")
        assert control_plane.get_file_info("/a/f") is None
        assert control_plane.get_file_info("/a/f.r") is not None
        assert control_plane.rename("/a", "/b")
        assert control_plane.get_file_info("/b/f.r") is not None
        assert not control_plane.rename("/b", "/b/inner")
        assert not control_plane.rename("/missing", "/c")

    def test_refresh_groups(self, control_plane):
        """Test group cache refreshes are counted."""
        control_plane.refresh_user_to_groups_mappings()

        assert control_plane.group_cache_refreshes == 1


class TestChunks:
    """Tests for chunk allocation and reporting."""

    def test_add_chunk_placement(self, control_plane, registered_agents):
        """Test that chunks are placed on distinct live nodes."""
        control_plane.create("/f", "client", replication=2)
        located = control_plane.add_chunk("/f", "client", None)

        assert len(located.locations) == 2
        assert len(set(located.locations)) == 2
        assert set(located.locations) <= set(registered_agents.addresses)

    def test_add_chunk_requires_lease(self, control_plane, registered_agents):
        """Test that only the writer may add chunks."""
        control_plane.create("/f", "client")

        with pytest.raises(LeaseError):
            control_plane.add_chunk("/f", "other", None)

    def test_complete_waits_for_receipts(self, control_plane, registered_agents):
        """Test that a file closes only once its chunks have a replica."""
        control_plane.create("/f", "client", replication=1)
        located = control_plane.add_chunk("/f", "client", None)

        assert control_plane.complete("/f", "client", located.chunk) is False

        agent = registered_agents.lookup(located.locations[0])
        control_plane.chunk_received_and_deleted(
            agent.registration, agent.pool_id, agent.receipt_for(located.chunk),
        )
        assert control_plane.complete("/f", "client", located.chunk) is True
        assert control_plane.get_server_stats()["chunk_received"].count == 1

    def test_full_report_replaces(self, control_plane, registered_agents):
        """Test that a full report sets the node's replicas."""
        control_plane.create("/f", "client", replication=1)
        located = control_plane.add_chunk("/f", "client", None)
        agent = registered_agents.lookup(located.locations[0])
        agent.add_chunk(located.chunk)

        control_plane.chunk_report(agent.registration, agent.pool_id, [agent.build_report()])
        assert control_plane.get_chunk_locations("/f", 0, 16)[0].locations == (agent.address,)

        control_plane.chunk_report(agent.registration, agent.pool_id, [])
        assert control_plane.get_chunk_locations("/f", 0, 16)[0].locations == ()

    def test_unknown_node(self, control_plane):
        """Test calls from a node that never registered."""
        stranger = StorageNodeRegistration(
            address="10.0.0.1:1", hostname="h", node_uuid="u", cluster_id="c",
        )

        with pytest.raises(UnknownNodeError):
            control_plane.heartbeat(stranger, [])

    def test_reconstruction_limit(self, control_plane, registered_agents):
        """Test that a source node is limited in concurrent transfers."""
        control_plane.set_node_reconstruction_limit(1)
        located = []
        for i in range(3):
            control_plane.create(f"/f{i}", "client", replication=1)
            loc = control_plane.add_chunk(f"/f{i}", "client", None)
            located.append(loc)
        # Put every replica on the first node
        source = registered_agents[0]
        for loc in located:
            source.add_chunk(loc.chunk)
        control_plane.chunk_report(source.registration, source.pool_id, [source.build_report()])
        for agent in list(registered_agents)[1:]:
            control_plane.chunk_report(agent.registration, agent.pool_id, [])
        source.decommission()
        control_plane.refresh_nodes([source.address])

        assert control_plane.compute_pending_reconstruction_work() == 1
        assert control_plane.compute_pending_reconstruction_work() == 0
        assert control_plane.pending_reconstructions() == 1
