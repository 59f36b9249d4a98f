"""Common data models for the throughput benchmark."""

from common.models.cluster import (
    ChunkDescriptor,
    LocatedChunk,
    NamespaceInfo,
    StorageNodeRegistration,
)
from common.models.metrics import StatSummary, OperationReport, WorkerResult, ExperimentSummary
from common.models.scenario import (
    BenchmarkScenario,
    OperationType,
    CreateScenario,
    MkdirsScenario,
    ExistingFileScenario,
    ChunkReportScenario,
    ReplicationScenario,
)

__all__ = [
    "ChunkDescriptor",
    "LocatedChunk",
    "NamespaceInfo",
    "StorageNodeRegistration",
    "StatSummary",
    "OperationReport",
    "WorkerResult",
    "ExperimentSummary",
    "BenchmarkScenario",
    "OperationType",
    "CreateScenario",
    "MkdirsScenario",
    "ExistingFileScenario",
    "ChunkReportScenario",
    "ReplicationScenario",
]
