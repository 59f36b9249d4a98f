"""Benchmark runner: builds the selected operations and runs them in order."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Type

from common.errors import InvalidArgumentError
from common.models.metrics import OperationReport
from common.models.scenario import OP_ALL, OperationType
from harness.core.context import BenchmarkContext
from harness.core.operation import GENERAL_OPTIONS_USAGE, OperationHarness
from harness.operations.chunk_report import ChunkReportOperation
from harness.operations.namespace import (
    CleanOperation,
    CreateOperation,
    DeleteOperation,
    MkdirsOperation,
    OpenOperation,
    RenameOperation,
    StatOperation,
)
from harness.operations.replication import ReplicationOperation

logger = logging.getLogger(__name__)

# Run order for the "all" selector
OPERATIONS: Dict[OperationType, Type[OperationHarness]] = {
    OperationType.CREATE: CreateOperation,
    OperationType.MKDIRS: MkdirsOperation,
    OperationType.OPEN: OpenOperation,
    OperationType.DELETE: DeleteOperation,
    OperationType.STAT: StatOperation,
    OperationType.RENAME: RenameOperation,
    OperationType.CHUNK_REPORT: ChunkReportOperation,
    OperationType.REPLICATION: ReplicationOperation,
    OperationType.CLEAN: CleanOperation,
}


def usage() -> str:
    """Usage of every operation."""
    lines = [f"--op {OP_ALL} <other ops options>"]
    lines += [f"--op {op.value} {cls.usage}".rstrip() for op, cls in OPERATIONS.items()]
    lines.append(GENERAL_OPTIONS_USAGE)
    return "Usage: nnbench\n\t" + " |\n\t".join(lines)


def configure_operations(
    context: BenchmarkContext,
    op_name: str,
    args: Sequence[str] = (),
    defaults: Optional[Dict[str, Any]] = None,
) -> List[OperationHarness]:
    """Build the harness of ``op_name``, or of every operation for ``all``."""
    if op_name == OP_ALL:
        return [cls.configure(context, args, ignore_unrelated=True, defaults=defaults)
                for cls in OPERATIONS.values()]
    try:
        op = OperationType(op_name)
    except ValueError:
        raise InvalidArgumentError(f"Unknown operation: {op_name}", usage=usage())
    return [OPERATIONS[op].configure(context, args, defaults=defaults)]


def run_benchmark(
    context: BenchmarkContext,
    op_name: str,
    args: Sequence[str] = (),
    defaults: Optional[Dict[str, Any]] = None,
) -> List[OperationReport]:
    """Run every selected operation, then print all results.

    Each operation is benchmarked and cleaned up before the next one
    starts. Errors are logged and re-raised.
    """
    operations = configure_operations(context, op_name, args, defaults)
    reports = []
    try:
        for op in operations:
            logger.info(f"Starting benchmark: {op.op_name}")
            reports.append(op.benchmark())
            op.clean_up()
        for op in operations:
            logger.info("")
            op.print_results()
    except Exception as e:
        logger.error(f"Benchmark failed: {e}", exc_info=True)
        raise
    return reports
