"""Operation lifecycle, worker threads and the staged pipeline."""

from harness.core.context import BenchmarkContext
from harness.core.gate import ServerGate
from harness.core.names import NameInputGenerator
from harness.core.operation import OperationHarness
from harness.core.pipeline import StagedPipelineExecutor, StagedTask, StagePool
from harness.core.worker import BenchmarkWorker

__all__ = [
    "BenchmarkContext",
    "ServerGate",
    "NameInputGenerator",
    "OperationHarness",
    "StagedPipelineExecutor",
    "StagedTask",
    "StagePool",
    "BenchmarkWorker",
]
