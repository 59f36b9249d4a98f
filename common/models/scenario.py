"""Benchmark scenario configuration models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class OperationType(str, Enum):
    """Benchmarked control-plane operations."""
    CREATE = "create"
    MKDIRS = "mkdirs"
    OPEN = "open"
    DELETE = "delete"
    STAT = "stat"
    RENAME = "rename"
    CHUNK_REPORT = "chunk-report"
    REPLICATION = "replication"
    CLEAN = "clean"


OP_ALL = "all"


class BenchmarkScenario(BaseModel):
    """Options shared by every operation.

    Created once from the parsed command line and read-only thereafter.
    """
    model_config = ConfigDict(frozen=True)

    op: OperationType
    num_threads: int = Field(default=3, ge=0, description="Worker threads")
    num_ops: int = Field(default=10, ge=0, description="Total operations requested")
    keep_results: bool = Field(default=False, description="Do not clean the namespace on exit")
    log_level: str = Field(default="ERROR", description="Server log level during the run")
    refresh_count: int = Field(
        default=0, ge=0,
        description="Refresh the group cache after every N ops (0 disables)",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Accept any standard level name, case-insensitively."""
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level {v}; expected one of {', '.join(LOG_LEVELS)}")
        return level


class CreateScenario(BenchmarkScenario):
    """File creation."""
    files_per_dir: int = Field(default=4, ge=1)
    close_on_create: bool = False


class MkdirsScenario(BenchmarkScenario):
    """Directory creation."""
    dirs_per_dir: int = Field(default=2, ge=1)


class ExistingFileScenario(BenchmarkScenario):
    """Operations on files created beforehand (open, delete, stat, rename)."""
    files_per_dir: int = Field(default=4, ge=1)
    use_existing: bool = Field(default=False, description="Do not create the files first")


class ChunkReportScenario(BenchmarkScenario):
    """Chunk reports from simulated storage nodes.

    ``num_threads`` is the number of storage nodes, ``num_ops`` the number
    of reports.
    """
    chunks_per_report: int = Field(default=100, ge=1)
    chunks_per_file: int = Field(default=10, ge=1)
    writer_pool_size: int = Field(default=8, ge=1)
    replication: int = Field(default=3, ge=1)
    staged: bool = Field(default=False, description="Write files through the staged pipeline")

    @property
    def num_nodes(self) -> int:
        return self.num_threads

    @property
    def effective_replication(self) -> int:
        return min(self.replication, self.num_nodes) if self.num_nodes > 0 else self.replication


class ReplicationScenario(BenchmarkScenario):
    """Reconstruction work computed after decommissioning nodes."""
    num_threads: int = Field(default=1, ge=1, le=1)
    num_nodes: int = Field(default=3, ge=1)
    nodes_to_decommission: int = Field(default=1, ge=0)
    node_reconstruction_limit: int = Field(default=100, ge=1)
    total_chunks: int = Field(default=100, ge=1)
    replication: int = Field(default=3, ge=1)

    @model_validator(mode="after")
    def check_decommission(self) -> "ReplicationScenario":
        if self.nodes_to_decommission > self.num_nodes:
            raise ValueError("cannot decommission more nodes than exist")
        return self

    @property
    def chunks_per_report(self) -> int:
        return self.total_chunks * self.replication // self.num_nodes

    @property
    def required_ops(self) -> int:
        # Four times the decommissioned chunks divided by the number of
        # chunks the monitor scans per pass.
        return (self.total_chunks * self.replication * self.nodes_to_decommission * 2) // (
            self.num_nodes * self.num_nodes
        )
