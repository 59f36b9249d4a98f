"""Capability surface the harness consumes from the control-plane server."""

from __future__ import annotations

from typing import Iterable, Mapping, Optional, Protocol, Sequence

from common.models.cluster import (
    ChunkDescriptor,
    FileStatus,
    LocatedChunk,
    NamespaceInfo,
    NodeCommand,
    StorageChunkReceipts,
    StorageChunkReport,
    StorageNodeRegistration,
    StorageReport,
)
from common.stats import StatAccumulator


class ControlPlane(Protocol):
    """Methods called directly (in-process) by the benchmark."""

    # Namespace
    def create(
        self,
        src: str,
        client_name: str,
        overwrite: bool = True,
        create_parent: bool = True,
        replication: int = 3,
        chunk_size: int = 16,
    ) -> FileStatus: ...

    def mkdirs(self, src: str, create_parent: bool = True) -> bool: ...

    def get_chunk_locations(self, src: str, offset: int, length: int) -> list[LocatedChunk]: ...

    def delete(self, src: str, recursive: bool) -> bool: ...

    def get_file_info(self, src: str) -> Optional[FileStatus]: ...

    def rename(self, src: str, dst: str) -> bool: ...

    def add_chunk(
        self,
        src: str,
        client_name: str,
        previous: Optional[ChunkDescriptor],
        excluded: Sequence[str] = (),
    ) -> LocatedChunk: ...

    def complete(self, src: str, client_name: str, last: Optional[ChunkDescriptor]) -> bool: ...

    # Storage nodes
    def version_request(self) -> NamespaceInfo: ...

    def register_storage_node(self, registration: StorageNodeRegistration) -> StorageNodeRegistration: ...

    def heartbeat(
        self,
        registration: StorageNodeRegistration,
        reports: Sequence[StorageReport],
    ) -> list[NodeCommand]: ...

    def chunk_report(
        self,
        registration: StorageNodeRegistration,
        pool_id: str,
        reports: Sequence[StorageChunkReport],
    ) -> None: ...

    def chunk_received_and_deleted(
        self,
        registration: StorageNodeRegistration,
        pool_id: str,
        receipts: Sequence[StorageChunkReceipts],
    ) -> None: ...

    # Administration
    def compute_pending_reconstruction_work(self) -> int: ...

    def stop_reconstruction_monitor(self) -> None: ...

    def set_node_reconstruction_limit(self, limit: int) -> None: ...

    def set_safe_mode(self, on: bool) -> bool: ...

    def refresh_nodes(self, excluded: Iterable[str]) -> None: ...

    def refresh_user_to_groups_mappings(self) -> None: ...

    def get_server_stats(self) -> Mapping[str, StatAccumulator]: ...
