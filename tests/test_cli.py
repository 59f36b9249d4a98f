"""Tests for option parsing and the command line entry point."""

import json

import pytest

from cli.main import load_defaults, main
from common.errors import InvalidArgumentError
from harness.config import init_settings
from harness.operations.chunk_report import ChunkReportOperation
from harness.operations.namespace import CleanOperation, CreateOperation
from harness.operations.replication import ReplicationOperation
from harness.runner import OPERATIONS, configure_operations, usage


class TestConfigure:
    """Tests for building scenarios from options."""

    def test_create_options(self, context):
        """Test that options land in the scenario."""
        op = CreateOperation.configure(context, [
            "--threads", "4", "--files", "40", "--files-per-dir", "8", "--close",
            "--keep-results", "--log-level", "info", "--refresh-count", "5",
        ])

        assert op.scenario.num_threads == 4
        assert op.scenario.num_ops == 40
        assert op.scenario.files_per_dir == 8
        assert op.scenario.close_on_create
        assert op.scenario.keep_results
        assert op.scenario.log_level == "INFO"
        assert op.scenario.refresh_count == 5

    def test_defaults_apply(self, context):
        """Test that omitted options keep the scenario defaults."""
        op = CreateOperation.configure(context, [])

        assert op.scenario.num_threads == 3
        assert op.scenario.num_ops == 10
        assert op.scenario.files_per_dir == 4
        assert not op.scenario.close_on_create

    def test_unrelated_option_rejected(self, context):
        """Test that another operation's option is an error."""
        with pytest.raises(InvalidArgumentError) as exc:
            CreateOperation.configure(context, ["--nodes", "2"])
        assert "--nodes" in str(exc.value)
        assert "--op create" in exc.value.usage

    def test_bad_value_rejected(self, context):
        """Test non-numeric and out-of-range values."""
        with pytest.raises(InvalidArgumentError):
            CreateOperation.configure(context, ["--threads", "many"])
        with pytest.raises(InvalidArgumentError):
            CreateOperation.configure(context, ["--files", "-1"])
        with pytest.raises(InvalidArgumentError):
            CreateOperation.configure(context, ["--files"])

    def test_replication_bounds(self, context):
        """Test that decommissioning more nodes than exist is rejected."""
        with pytest.raises(InvalidArgumentError):
            ReplicationOperation.configure(context, ["--nodes", "2", "--nodes-to-decommission", "3"])

    def test_chunk_report_options(self, context):
        """Test the node and report aliases."""
        op = ChunkReportOperation.configure(context, ["--nodes", "5", "--reports", "20", "--staged"])

        assert op.scenario.num_threads == 5
        assert op.scenario.num_ops == 20
        assert op.scenario.staged

    def test_clean_forces_single_op(self, context):
        """Test that clean always runs one op on one thread."""
        op = CleanOperation.configure(context, [])

        assert op.scenario.num_threads == 1
        assert op.scenario.num_ops == 1

    def test_all_tolerates_other_options(self, context):
        """Test that 'all' builds every operation despite foreign options."""
        ops = configure_operations(context, "all", ["--files", "3", "--nodes", "2", "--dirs", "5"])

        assert [type(op) for op in ops] == list(OPERATIONS.values())
        assert ops[0].scenario.num_ops == 3
        assert ops[1].scenario.num_ops == 5
        assert ops[6].scenario.num_threads == 2
        assert ops[7].scenario.num_nodes == 2

    def test_unknown_operation(self, context):
        """Test that an unknown name is rejected with the full usage."""
        with pytest.raises(InvalidArgumentError) as exc:
            configure_operations(context, "format", [])
        assert "chunk-report" in exc.value.usage

    def test_defaults_from_mapping(self, context):
        """Test that defaults by option name or field name apply, and options win."""
        op = CreateOperation.configure(
            context, ["--threads", "6"], defaults={"threads": 2, "files_per_dir": 8, "close": True},
        )

        assert op.scenario.num_threads == 6
        assert op.scenario.files_per_dir == 8
        assert op.scenario.close_on_create

    def test_usage_lists_operations(self):
        """Test the combined usage text."""
        text = usage()
        for op in OPERATIONS:
            assert f"--op {op.value}" in text
        assert "--op all" in text


class TestMain:
    """Tests for the CLI entry point."""

    @pytest.fixture(autouse=True)
    def isolated_settings(self, temp_dir):
        init_settings(stat_path=temp_dir / "stat.out", cdf_path=temp_dir / "create-lat.dat")

    def test_success(self, temp_dir):
        """Test a small create run with a JSON report."""
        report_file = temp_dir / "reports.jsonl"

        code = main([
            "--op", "create", "--threads", "1", "--files", "2",
            "--report-file", str(report_file),
        ])

        assert code == 0
        lines = report_file.read_text().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["op"] == "create"

    def test_unknown_option(self, capsys):
        """Test that a bad option prints usage and fails."""
        code = main(["--op", "create", "--bogus"])

        assert code == 1
        err = capsys.readouterr().err
        assert "--bogus" in err
        assert "usage" in err.lower()

    def test_unknown_operation(self, capsys):
        """Test that an unknown operation fails."""
        assert main(["--op", "nope"]) == 1
        assert "Unknown operation" in capsys.readouterr().err

    def test_missing_op(self):
        """Test that --op is required."""
        with pytest.raises(SystemExit):
            main([])

    def test_scenario_file(self, temp_dir):
        """Test loading defaults from YAML."""
        path = temp_dir / "scenario.yaml"
        path.write_text("threads: 1\nfiles: 3\nfiles-per-dir: 2\n")

        assert load_defaults(str(path)) == {"threads": 1, "files": 3, "files_per_dir": 2}
        assert main(["--op", "create", "--scenario-file", str(path)]) == 0

    def test_scenario_file_not_a_mapping(self, temp_dir):
        """Test that a YAML list is rejected."""
        path = temp_dir / "scenario.yaml"
        path.write_text("- 1\n- 2\n")

        assert main(["--op", "create", "--scenario-file", str(path)]) == 1
