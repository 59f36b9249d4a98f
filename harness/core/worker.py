"""Benchmark worker threads."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Optional

from common.models.metrics import WorkerResult

if TYPE_CHECKING:
    from harness.core.operation import OperationHarness

logger = logging.getLogger(__name__)


class BenchmarkWorker(threading.Thread):
    """Executes one worker's slice of an operation, sequentially.

    ``ops_executed`` and ``cumulative_time_us`` are plain attributes written
    only by this thread, so the harness can read them without locking.
    """

    def __init__(self, worker_id: int, ops_assigned: int, operation: "OperationHarness"):
        super().__init__(name=f"BenchmarkWorker-{worker_id}", daemon=True)
        self.worker_id = worker_id
        self.ops_requested = ops_assigned
        self.ops_assigned = ops_assigned
        self.operation = operation
        self.ops_executed = 0
        self.cumulative_time_us = 0
        self.refreshes = 0
        self.error: Optional[BaseException] = None

    def __str__(self) -> str:
        return self.name

    def run(self) -> None:
        self.ops_executed = 0
        self.cumulative_time_us = 0
        arg = self.operation.get_execution_argument(self.worker_id)
        try:
            self.benchmark_one(arg)
        except Exception as e:
            self.error = e
            logger.error(
                f"{self} failed during {self.operation.op_name} after "
                f"{self.ops_executed}/{self.ops_assigned} ops: {e}",
                exc_info=True,
            )

    def benchmark_one(self, arg: Optional[str]) -> None:
        refresh_count = self.operation.scenario.refresh_count
        idx = 0
        while idx < self.ops_assigned:
            elapsed = self.operation.execute_op(self.worker_id, idx, arg)
            self.ops_executed += 1
            self.cumulative_time_us += elapsed
            idx += 1
            if refresh_count > 0 and self.ops_executed % refresh_count == 0:
                self.operation.server.refresh_user_to_groups_mappings()
                self.refreshes += 1

    def is_in_progress(self) -> bool:
        return self.error is None and self.ops_executed < self.ops_assigned

    def terminate(self) -> None:
        """Stop after the op currently executing."""
        self.ops_assigned = self.ops_executed

    def result(self) -> WorkerResult:
        return WorkerResult(
            worker_id=self.worker_id,
            ops_assigned=self.ops_requested,
            ops_executed=self.ops_executed,
            cumulative_time_us=self.cumulative_time_us,
            failed=self.error is not None,
        )
