"""Benchmarked control-plane operations."""

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

__all__ = [
    "ChunkReportOperation",
    "CleanOperation",
    "CreateOperation",
    "DeleteOperation",
    "MkdirsOperation",
    "OpenOperation",
    "RenameOperation",
    "StatOperation",
    "ReplicationOperation",
]
