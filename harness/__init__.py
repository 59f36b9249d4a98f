"""Control-plane throughput benchmark harness."""

from harness.core.context import BenchmarkContext
from harness.runner import OPERATIONS, configure_operations, run_benchmark

__all__ = [
    "BenchmarkContext",
    "OPERATIONS",
    "configure_operations",
    "run_benchmark",
]
