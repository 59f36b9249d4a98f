"""Metrics and benchmark report models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class StatSummary(BaseModel):
    """Snapshot of a StatAccumulator."""
    model_config = ConfigDict(frozen=True)

    name: str
    min: int = Field(default=0, description="Smallest sample (0 if no data)")
    max: int = Field(default=0, description="Largest sample (0 if no data)")
    avg: float = Field(default=0, description="sum / count (0 if no data)")
    sum: int = Field(default=0)
    count: int = Field(default=0)

    @property
    def has_data(self) -> bool:
        return self.count > 0


class WorkerResult(BaseModel):
    """Counters reported by one benchmark worker."""
    worker_id: int
    ops_assigned: int = 0
    ops_executed: int = 0
    cumulative_time_us: int = 0
    failed: bool = False


class OperationReport(BaseModel):
    """Result of one operation benchmark run.

    Latencies are in microseconds, the elapsed wall-clock time in
    milliseconds.
    """
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    op_name: str = Field(..., description="Operation name")
    num_threads: int = 0
    ops_required: int = 0
    ops_executed: int = 0
    cumulative_time_us: int = 0
    elapsed_ms: float = 0

    workers: list[WorkerResult] = Field(default_factory=list)

    # Operation specific inputs and results (printed after the common block)
    inputs: dict[str, Any] = Field(default_factory=dict)
    extra: dict[str, Any] = Field(default_factory=dict)

    @property
    def ops_per_second(self) -> float:
        return 0 if self.elapsed_ms == 0 else 1000 * self.ops_executed / self.elapsed_ms

    @property
    def average_time_us(self) -> float:
        return 0 if self.ops_executed == 0 else self.cumulative_time_us / self.ops_executed

    @property
    def failed_workers(self) -> int:
        return sum(1 for w in self.workers if w.failed)

    def to_jsonl(self) -> dict:
        """Convert to JSON Lines format (compact)."""
        return {
            "ts": self.timestamp.isoformat(),
            "op": self.op_name,
            "ops": self.ops_executed,
            "elapsed_ms": round(self.elapsed_ms, 3),
            "ops_per_sec": round(self.ops_per_second, 2),
            "avg_us": round(self.average_time_us, 2),
            "failed_workers": self.failed_workers,
        }


class ExperimentSummary(BaseModel):
    """Write-phase summary of the chunk-report workload."""
    num_files: int
    num_chunks: int
    writer_pool_size: int
    staged: bool = False
    lifetime_ms: float = 0
    create: StatSummary
    server_stats: dict[str, StatSummary] = Field(default_factory=dict)
    longest_gate_wait: int = 0
    longest_queue_size: int = 0
    failed_files: int = 0

    def lifetime_share(self, stat_name: str) -> Optional[float]:
        """Share of the server lifetime spent in a nanosecond server stat."""
        stat = self.server_stats.get(stat_name)
        if stat is None or self.lifetime_ms == 0:
            return None
        return stat.sum / 1_000_000.0 / self.lifetime_ms
