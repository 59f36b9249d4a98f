"""Minimal storage-node simulator.

Each ``StorageNodeAgent`` stands in for one storage server: it registers
with the control plane, heartbeats with fixed capacity figures, keeps a
bounded list of chunk replicas and builds chunk reports from them. No data
is ever stored.
"""

from __future__ import annotations

import logging
import threading
from bisect import bisect_left
from enum import Enum
from typing import Iterable, Iterator, List, Optional

from agent.config import AgentSettings, get_settings
from common.models.cluster import (
    ChunkDescriptor,
    ChunkReceipt,
    NamespaceInfo,
    NodeCommand,
    NodeCommandAction,
    ReceiptStatus,
    StorageChunkReceipts,
    StorageChunkReport,
    StorageNodeRegistration,
    StorageReport,
    StorageUnit,
)
from common.protocol import ControlPlane
from common.utils import generate_id

logger = logging.getLogger(__name__)


class NodeState(str, Enum):
    """Lifecycle of a simulated storage node."""
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    HEARTBEATING = "heartbeating"
    REPORTING = "reporting"
    TRANSFERRING = "transferring"
    DECOMMISSIONED = "decommissioned"


class StorageNodeAgent:
    """One simulated storage node with a single storage unit."""

    def __init__(
        self,
        index: int,
        server: ControlPlane,
        capacity: int,
        settings: Optional[AgentSettings] = None,
    ):
        self.index = index
        self.server = server
        self.capacity = capacity
        self.settings = settings or get_settings()

        self.state = NodeState.UNREGISTERED
        self.namespace_info: Optional[NamespaceInfo] = None
        self.registration: Optional[StorageNodeRegistration] = None
        self.storage: Optional[StorageUnit] = None

        self._lock = threading.Lock()
        self._chunks: list[ChunkDescriptor] = []
        self._report: Optional[StorageChunkReport] = None

    def __repr__(self) -> str:
        return f"StorageNodeAgent({self.index}, {self.address}, {self.state.value})"

    @property
    def port(self) -> int:
        return self.settings.base_port + self.index

    @property
    def address(self) -> str:
        if self.registration is not None:
            return self.registration.address
        return f"{self.settings.host}:{self.port}"

    @property
    def pool_id(self) -> str:
        return self.namespace_info.pool_id if self.namespace_info else ""

    @property
    def num_chunks(self) -> int:
        return len(self._chunks)

    @property
    def chunks(self) -> List[ChunkDescriptor]:
        with self._lock:
            return list(self._chunks)

    @property
    def report(self) -> StorageChunkReport:
        """Last snapshot produced by ``build_report`` (empty before)."""
        if self._report is None:
            return StorageChunkReport(storage=self.storage)
        return self._report

    def register(self) -> StorageNodeRegistration:
        """Register with the server and send the first (empty) chunk report."""
        self.namespace_info = self.server.version_request()
        registration = StorageNodeRegistration(
            address=f"{self.settings.host}:{self.port}",
            hostname=self.settings.hostname,
            node_uuid=generate_id("node"),
            cluster_id=self.namespace_info.cluster_id,
            software_version=self.settings.software_version,
        )
        self.registration = self.server.register_storage_node(registration)
        self.storage = StorageUnit(storage_id=generate_id("storage"))
        self.server.chunk_report(
            self.registration,
            self.pool_id,
            [StorageChunkReport(storage=self.storage)],
        )
        self.state = NodeState.REGISTERED
        logger.debug(f"Registered storage node {self.address}")
        return self.registration

    def _storage_reports(self) -> list[StorageReport]:
        capacity = self.settings.df_capacity
        used = self.settings.df_used
        return [StorageReport(
            storage=self.storage,
            capacity=capacity,
            used=used,
            remaining=capacity - used,
            pool_used=used,
        )]

    def send_heartbeat(self) -> list[NodeCommand]:
        """Send a heartbeat; returned commands are only logged."""
        commands = self.server.heartbeat(self.registration, self._storage_reports())
        if self.state == NodeState.REGISTERED:
            self.state = NodeState.HEARTBEATING
        for cmd in commands:
            logger.debug(f"Heartbeat reply for {self.address}: {cmd.action.value}")
        return commands

    def replicate_chunks(self) -> int:
        """Heartbeat and carry out every transfer command returned."""
        commands = self.server.heartbeat(self.registration, self._storage_reports())
        return sum(
            self.transfer_chunks(cmd) for cmd in commands
            if cmd.action == NodeCommandAction.TRANSFER
        )

    def transfer_chunks(self, command: NodeCommand) -> int:
        """Pretend to copy chunks to their targets.

        Only reports, on behalf of every target, that the chunk has been
        received.
        """
        self.state = NodeState.TRANSFERRING
        for i, chunk in enumerate(command.chunks):
            targets = command.targets[i]
            storage_ids = command.target_storage_ids[i] if i < len(command.target_storage_ids) else ()
            for t, target in enumerate(targets):
                target_registration = StorageNodeRegistration(
                    address=target,
                    hostname=self.settings.hostname,
                    node_uuid="",
                    cluster_id=self.registration.cluster_id,
                    software_version=self.settings.software_version,
                )
                storage_id = storage_ids[t] if t < len(storage_ids) else ""
                self.server.chunk_received_and_deleted(
                    target_registration,
                    command.pool_id,
                    [StorageChunkReceipts(storage_id=storage_id, receipts=(ChunkReceipt(chunk),))],
                )
        return len(command.chunks)

    def add_chunk(self, chunk: ChunkDescriptor) -> bool:
        """Store a replica; returns False when every slot is taken."""
        with self._lock:
            if len(self._chunks) >= self.capacity:
                logger.debug(f"Cannot add chunk: {self.address} capacity = {self.capacity}")
                return False
            self._chunks.append(chunk)
            return True

    def build_report(self) -> StorageChunkReport:
        """Snapshot the chunk list, filling free slots with chunks that do not exist."""
        with self._lock:
            chunks = list(self._chunks)
        padding = [
            ChunkDescriptor(chunk_id=self.capacity - idx)
            for idx in range(len(chunks), self.capacity)
        ]
        self._report = StorageChunkReport(storage=self.storage, chunks=tuple(chunks + padding))
        if self.state != NodeState.DECOMMISSIONED:
            self.state = NodeState.REPORTING
        return self._report

    def receipt_for(self, chunk: ChunkDescriptor) -> list[StorageChunkReceipts]:
        """Incremental report announcing that ``chunk`` was received."""
        return [StorageChunkReceipts(
            storage_id=self.storage.storage_id,
            receipts=(ChunkReceipt(chunk, ReceiptStatus.RECEIVED),),
        )]

    def decommission(self) -> None:
        self.state = NodeState.DECOMMISSIONED


class AgentArray:
    """Agents sorted by address so a chunk location resolves by binary search.

    Callers must call ``sort`` again after changing the set of agents.
    """

    def __init__(self, agents: Iterable[StorageNodeAgent] = ()):
        self._agents: list[StorageNodeAgent] = list(agents)
        self._addresses: list[str] = []
        self.sort()

    def __len__(self) -> int:
        return len(self._agents)

    def __iter__(self) -> Iterator[StorageNodeAgent]:
        return iter(self._agents)

    def __getitem__(self, idx: int) -> StorageNodeAgent:
        return self._agents[idx]

    def append(self, agent: StorageNodeAgent) -> None:
        self._agents.append(agent)

    def sort(self) -> None:
        self._agents.sort(key=lambda a: a.address)
        self._addresses = [a.address for a in self._agents]

    def index_of(self, address: str) -> int:
        idx = bisect_left(self._addresses, address)
        if idx < len(self._addresses) and self._addresses[idx] == address:
            return idx
        raise KeyError(f"No storage node with address {address}")

    def lookup(self, address: str) -> StorageNodeAgent:
        return self._agents[self.index_of(address)]

    @property
    def addresses(self) -> List[str]:
        return list(self._addresses)

    def is_sorted(self) -> bool:
        return all(a < b for a, b in zip(self._addresses, self._addresses[1:]))
