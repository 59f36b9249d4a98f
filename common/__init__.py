"""Common models and utilities shared by the harness and the agent simulator."""

from common.models.scenario import BenchmarkScenario, OperationType
from common.models.metrics import StatSummary, OperationReport
from common.stats import StatAccumulator

__all__ = [
    "BenchmarkScenario",
    "OperationType",
    "StatSummary",
    "OperationReport",
    "StatAccumulator",
]
