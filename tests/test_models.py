"""Unit tests for scenario and metrics models."""

import pytest
from pydantic import ValidationError

from common.models.metrics import ExperimentSummary, OperationReport, StatSummary, WorkerResult
from common.models.scenario import (
    BenchmarkScenario,
    ChunkReportScenario,
    CreateScenario,
    OperationType,
    ReplicationScenario,
)


class TestScenarios:
    """Tests for scenario models."""

    def test_defaults(self):
        """Test shared defaults."""
        scenario = BenchmarkScenario(op=OperationType.CREATE)

        assert scenario.num_threads == 3
        assert scenario.num_ops == 10
        assert scenario.keep_results is False
        assert scenario.log_level == "ERROR"
        assert scenario.refresh_count == 0

    def test_frozen(self):
        """Test that scenarios are read-only."""
        scenario = CreateScenario(op=OperationType.CREATE)

        with pytest.raises(ValidationError):
            scenario.num_threads = 5

    def test_negative_values_rejected(self):
        """Test field constraints."""
        with pytest.raises(ValidationError):
            BenchmarkScenario(op=OperationType.CREATE, num_ops=-1)
        with pytest.raises(ValidationError):
            CreateScenario(op=OperationType.CREATE, files_per_dir=0)

    def test_log_level_normalised(self):
        """Test that log levels are upper-cased and checked."""
        assert BenchmarkScenario(op="create", log_level="debug").log_level == "DEBUG"
        with pytest.raises(ValidationError):
            BenchmarkScenario(op="create", log_level="chatty")

    def test_chunk_report_replication_clamped(self):
        """Test that replication never exceeds the node count."""
        scenario = ChunkReportScenario(op=OperationType.CHUNK_REPORT, num_threads=2, replication=3)

        assert scenario.num_nodes == 2
        assert scenario.effective_replication == 2

    def test_replication_derived_values(self):
        """Test chunks per report and the number of scans."""
        scenario = ReplicationScenario(
            op=OperationType.REPLICATION,
            num_nodes=3, nodes_to_decommission=1, total_chunks=100, replication=3,
        )

        assert scenario.chunks_per_report == 100
        assert scenario.required_ops == 66

    def test_replication_single_thread(self):
        """Test that the scan runs on exactly one thread."""
        with pytest.raises(ValidationError):
            ReplicationScenario(op=OperationType.REPLICATION, num_threads=2)

    def test_cannot_decommission_more_than_exist(self):
        """Test the decommission bound."""
        with pytest.raises(ValidationError):
            ReplicationScenario(op=OperationType.REPLICATION, num_nodes=2, nodes_to_decommission=3)


class TestReports:
    """Tests for report models."""

    def test_operation_report_rates(self):
        """Test throughput and average time."""
        report = OperationReport(
            op_name="create",
            ops_executed=50,
            cumulative_time_us=1000,
            elapsed_ms=250,
            workers=[WorkerResult(worker_id=0, failed=True), WorkerResult(worker_id=1)],
        )

        assert report.ops_per_second == 200
        assert report.average_time_us == 20
        assert report.failed_workers == 1

    def test_operation_report_no_ops(self):
        """Test zero rates without executed ops."""
        report = OperationReport(op_name="create")

        assert report.ops_per_second == 0
        assert report.average_time_us == 0

    def test_to_jsonl(self):
        """Test compact export."""
        data = OperationReport(op_name="mkdirs", ops_executed=4, elapsed_ms=2).to_jsonl()

        assert data["op"] == "mkdirs"
        assert data["ops_per_sec"] == 2000
        assert "ts" in data

    def test_lifetime_share(self):
        """Test the share of server lifetime spent in a nanosecond stat."""
        summary = ExperimentSummary(
            num_files=1,
            num_chunks=1,
            writer_pool_size=1,
            lifetime_ms=10,
            create=StatSummary(name="create"),
            server_stats={"write_lock": StatSummary(name="write_lock", sum=5_000_000, count=1)},
        )

        assert summary.lifetime_share("write_lock") == pytest.approx(0.5)
        assert summary.lifetime_share("missing") is None
