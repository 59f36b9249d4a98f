"""Value types exchanged with the control-plane server."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ReceiptStatus(str, Enum):
    """Status carried by an incremental chunk receipt."""
    RECEIVING = "receiving"
    RECEIVED = "received"
    DELETED = "deleted"


class NodeCommandAction(str, Enum):
    """Commands the server can return from a heartbeat."""
    TRANSFER = "transfer"
    INVALIDATE = "invalidate"
    REGISTER = "register"


@dataclass(frozen=True)
class NamespaceInfo:
    """Cluster identity handed out by ``version_request``."""
    cluster_id: str
    pool_id: str
    namespace_id: int
    software_version: str = "1.0.0"


@dataclass(frozen=True)
class StorageNodeRegistration:
    """Identity of a storage node as known to the server."""
    address: str
    hostname: str
    node_uuid: str
    cluster_id: str = ""
    software_version: str = "1.0.0"


@dataclass(frozen=True)
class StorageUnit:
    """A single storage directory on a node."""
    storage_id: str


@dataclass(frozen=True)
class ChunkDescriptor:
    """Identity of one chunk replica."""
    chunk_id: int
    num_bytes: int = 0
    generation_stamp: int = 0


@dataclass(frozen=True)
class LocatedChunk:
    """A chunk plus the addresses of the nodes that should hold it."""
    pool_id: str
    chunk: ChunkDescriptor
    locations: tuple[str, ...] = ()
    offset: int = 0


@dataclass(frozen=True)
class StorageReport:
    """Capacity figures sent with every heartbeat."""
    storage: StorageUnit
    capacity: int
    used: int
    remaining: int
    pool_used: int = 0
    failed: bool = False


@dataclass(frozen=True)
class StorageChunkReport:
    """Full chunk report for one storage unit."""
    storage: StorageUnit
    chunks: tuple[ChunkDescriptor, ...] = ()


@dataclass(frozen=True)
class ChunkReceipt:
    """Incremental notification that a chunk was received or deleted."""
    chunk: ChunkDescriptor
    status: ReceiptStatus = ReceiptStatus.RECEIVED


@dataclass(frozen=True)
class StorageChunkReceipts:
    """Incremental receipts for one storage unit."""
    storage_id: str
    receipts: tuple[ChunkReceipt, ...] = ()


@dataclass(frozen=True)
class NodeCommand:
    """Command returned by a heartbeat.

    ``targets`` holds, for each chunk, the addresses it must be copied to
    (transfer commands only).
    """
    action: NodeCommandAction
    pool_id: str
    chunks: tuple[ChunkDescriptor, ...] = ()
    targets: tuple[tuple[str, ...], ...] = ()
    target_storage_ids: tuple[tuple[str, ...], ...] = ()


@dataclass(frozen=True)
class FileStatus:
    """Result of ``get_file_info``."""
    path: str
    is_dir: bool
    length: int = 0
    replication: int = 0
    chunk_size: int = 0
    inode_id: int = 0
    children_num: int = 0
    owner: Optional[str] = None
    groups: tuple[str, ...] = field(default_factory=tuple)
