"""In-memory control-plane server driven by the benchmark.

Keeps a path tree, chunk placement and per-node replica bookkeeping behind a
single namespace lock. It is intentionally simple: enough behaviour for
every benchmarked call to do real work, plus timing of the create path, the
lock hold time and incremental chunk receipts.
"""

from __future__ import annotations

import logging
import posixpath
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set

from common.errors import (
    LeaseError,
    NotEnoughNodesError,
    PathNotEmptyError,
    SafeModeError,
    UnknownNodeError,
)
from common.models.cluster import (
    ChunkDescriptor,
    FileStatus,
    LocatedChunk,
    NamespaceInfo,
    NodeCommand,
    NodeCommandAction,
    ReceiptStatus,
    StorageChunkReceipts,
    StorageChunkReport,
    StorageNodeRegistration,
    StorageReport,
)
from common.stats import StatAccumulator
from common.utils import generate_id, now_ns

logger = logging.getLogger(__name__)

# Chunk ids handed out by the server start here, so small synthetic ids in
# padded chunk reports never collide with real chunks.
FIRST_CHUNK_ID = 1 << 30
FIRST_GENERATION_STAMP = 1001

# Chunks scheduled per reconstruction pass, per live node.
RECONSTRUCTION_WORK_MULTIPLIER = 2


@dataclass
class _INode:
    inode_id: int
    name: str
    is_dir: bool
    children: Dict[str, "_INode"] = field(default_factory=dict)
    replication: int = 0
    chunk_size: int = 0
    chunks: List[int] = field(default_factory=list)
    client_name: Optional[str] = None
    owner: Optional[str] = None

    @property
    def under_construction(self) -> bool:
        return self.client_name is not None


@dataclass
class _ChunkInfo:
    descriptor: ChunkDescriptor
    inode: _INode
    replication: int
    locations: Set[str] = field(default_factory=set)


@dataclass
class _NodeInfo:
    registration: StorageNodeRegistration
    storage_ids: Set[str] = field(default_factory=set)
    chunks: Set[int] = field(default_factory=set)
    capacity: int = 0
    used: int = 0
    decommissioned: bool = False
    active_streams: int = 0
    pending_commands: List[NodeCommand] = field(default_factory=list)


@dataclass
class _PendingReconstruction:
    source: str
    targets: Set[str]


class InMemoryControlPlane:
    """Thread-safe in-process control plane."""

    def __init__(self, cluster_id: Optional[str] = None, node_reconstruction_limit: int = 2):
        self._lock = threading.RLock()
        self._next_inode_id = 1
        self._root = self._new_inode("", is_dir=True)
        self._chunks: Dict[int, _ChunkInfo] = {}
        self._nodes: Dict[str, _NodeInfo] = {}
        self._pending: Dict[int, _PendingReconstruction] = {}
        self._next_chunk_id = FIRST_CHUNK_ID
        self._placement_cursor = 0
        self._group_cache: Dict[str, tuple[str, ...]] = {}

        self.namespace_info = NamespaceInfo(
            cluster_id=cluster_id or generate_id("cluster"),
            pool_id=generate_id("pool"),
            namespace_id=1,
        )
        self.safe_mode = True
        self.reconstruction_monitor_running = True
        self.node_reconstruction_limit = node_reconstruction_limit
        self.invalid_chunks_reported = 0
        self.group_cache_refreshes = 0

        self.create_stat = StatAccumulator("server create")
        self.write_lock_stat = StatAccumulator("write lock")
        self.chunk_received_stat = StatAccumulator("chunk received")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _write_locked(self) -> Iterator[None]:
        with self._lock:
            start = now_ns()
            try:
                yield
            finally:
                self.write_lock_stat.add_value(now_ns() - start)

    def _new_inode(self, name: str, is_dir: bool) -> _INode:
        inode = _INode(inode_id=self._next_inode_id, name=name, is_dir=is_dir)
        self._next_inode_id += 1
        return inode

    @staticmethod
    def _components(path: str) -> list[str]:
        if not path.startswith("/"):
            raise ValueError(f"Path must be absolute: {path}")
        return [c for c in posixpath.normpath(path).split("/") if c]

    def _resolve(self, path: str) -> Optional[_INode]:
        node = self._root
        for name in self._components(path):
            if not node.is_dir:
                return None
            node = node.children.get(name)
            if node is None:
                return None
        return node

    def _parent_and_name(self, path: str) -> tuple[list[str], str]:
        components = self._components(path)
        if not components:
            raise ValueError("Cannot operate on the root directory")
        return components[:-1], components[-1]

    def _mkdirs_locked(self, components: Sequence[str], create_parent: bool) -> _INode:
        node = self._root
        for i, name in enumerate(components):
            child = node.children.get(name)
            if child is None:
                if not create_parent and i < len(components) - 1:
                    raise FileNotFoundError("/" + "/".join(components[: i + 1]))
                child = self._new_inode(name, is_dir=True)
                node.children[name] = child
            elif not child.is_dir:
                raise NotADirectoryError("/" + "/".join(components[: i + 1]))
            node = child
        return node

    def _check_safe_mode(self, op: str, src: str) -> None:
        if self.safe_mode:
            raise SafeModeError(f"Cannot {op} {src}. Name node is in safe mode.")

    def _remove_chunks(self, inode: _INode) -> None:
        if inode.is_dir:
            for child in inode.children.values():
                self._remove_chunks(child)
            return
        for chunk_id in inode.chunks:
            info = self._chunks.pop(chunk_id, None)
            self._pending.pop(chunk_id, None)
            if info is None:
                continue
            for address in info.locations:
                node = self._nodes.get(address)
                if node is not None:
                    node.chunks.discard(chunk_id)

    def _node(self, registration: StorageNodeRegistration) -> _NodeInfo:
        node = self._nodes.get(registration.address)
        if node is None:
            raise UnknownNodeError(f"Storage node {registration.address} is not registered")
        return node

    def _live_nodes(self) -> list[_NodeInfo]:
        return [n for n in self._nodes.values() if not n.decommissioned]

    def _live_replicas(self, info: _ChunkInfo) -> int:
        return sum(
            1 for address in info.locations
            if address in self._nodes and not self._nodes[address].decommissioned
        )

    def _groups_for(self, client_name: str) -> tuple[str, ...]:
        groups = self._group_cache.get(client_name)
        if groups is None:
            groups = (client_name.split("-", 1)[0],)
            self._group_cache[client_name] = groups
        return groups

    def _status(self, path: str, inode: _INode) -> FileStatus:
        return FileStatus(
            path=path,
            is_dir=inode.is_dir,
            length=len(inode.chunks) * inode.chunk_size,
            replication=inode.replication,
            chunk_size=inode.chunk_size,
            inode_id=inode.inode_id,
            children_num=len(inode.children),
            owner=inode.owner,
            groups=self._groups_for(inode.owner) if inode.owner else (),
        )

    # ------------------------------------------------------------------
    # Namespace
    # ------------------------------------------------------------------

    def create(
        self,
        src: str,
        client_name: str,
        overwrite: bool = True,
        create_parent: bool = True,
        replication: int = 3,
        chunk_size: int = 16,
    ) -> FileStatus:
        start = now_ns()
        with self._write_locked():
            self._check_safe_mode("create", src)
            parents, name = self._parent_and_name(src)
            parent = self._mkdirs_locked(parents, create_parent)
            existing = parent.children.get(name)
            if existing is not None:
                if existing.is_dir:
                    raise IsADirectoryError(src)
                if not overwrite:
                    raise FileExistsError(src)
                self._remove_chunks(existing)
            inode = self._new_inode(name, is_dir=False)
            inode.replication = replication
            inode.chunk_size = chunk_size
            inode.client_name = client_name
            inode.owner = client_name
            parent.children[name] = inode
            status = self._status(src, inode)
        self.create_stat.add_value(now_ns() - start)
        logger.debug(f"create {src} by {client_name}")
        return status

    def mkdirs(self, src: str, create_parent: bool = True) -> bool:
        with self._write_locked():
            self._check_safe_mode("mkdirs", src)
            self._mkdirs_locked(self._components(src), create_parent)
        return True

    def get_chunk_locations(self, src: str, offset: int, length: int) -> list[LocatedChunk]:
        with self._lock:
            inode = self._resolve(src)
            if inode is None:
                raise FileNotFoundError(src)
            if inode.is_dir:
                raise IsADirectoryError(src)
            located = []
            for idx, chunk_id in enumerate(inode.chunks):
                chunk_offset = idx * inode.chunk_size
                if chunk_offset + inode.chunk_size <= offset or chunk_offset >= offset + length:
                    continue
                info = self._chunks[chunk_id]
                located.append(LocatedChunk(
                    pool_id=self.namespace_info.pool_id,
                    chunk=info.descriptor,
                    locations=tuple(sorted(info.locations)),
                    offset=chunk_offset,
                ))
            return located

    def delete(self, src: str, recursive: bool) -> bool:
        with self._write_locked():
            self._check_safe_mode("delete", src)
            parents, name = self._parent_and_name(src)
            parent = self._resolve("/" + "/".join(parents))
            if parent is None or not parent.is_dir or name not in parent.children:
                return False
            inode = parent.children[name]
            if inode.is_dir and inode.children and not recursive:
                raise PathNotEmptyError(f"{src} is non empty")
            self._remove_chunks(inode)
            del parent.children[name]
        return True

    def get_file_info(self, src: str) -> Optional[FileStatus]:
        with self._lock:
            inode = self._resolve(src)
            if inode is None:
                return None
            return self._status(src, inode)

    def rename(self, src: str, dst: str) -> bool:
        with self._write_locked():
            self._check_safe_mode("rename", src)
            src_parents, src_name = self._parent_and_name(src)
            dst_parents, dst_name = self._parent_and_name(dst)
            src_parent = self._resolve("/" + "/".join(src_parents))
            dst_parent = self._resolve("/" + "/".join(dst_parents))
            if src_parent is None or src_name not in src_parent.children:
                return False
            if dst_parent is None or not dst_parent.is_dir or dst_name in dst_parent.children:
                return False
            inode = src_parent.children[src_name]
            # Refuse to move a directory underneath itself
            if inode.is_dir and (dst + "/").startswith(src.rstrip("/") + "/"):
                return False
            del src_parent.children[src_name]
            inode.name = dst_name
            dst_parent.children[dst_name] = inode
        return True

    def add_chunk(
        self,
        src: str,
        client_name: str,
        previous: Optional[ChunkDescriptor],
        excluded: Sequence[str] = (),
    ) -> LocatedChunk:
        with self._write_locked():
            self._check_safe_mode("add chunk to", src)
            inode = self._resolve(src)
            if inode is None or inode.is_dir:
                raise FileNotFoundError(src)
            if inode.client_name != client_name:
                raise LeaseError(f"{src} is not open for writing by {client_name}")
            candidates = sorted(
                (n.registration.address for n in self._live_nodes()
                 if n.registration.address not in excluded),
            )
            if not candidates:
                raise NotEnoughNodesError(
                    f"{src} could only be replicated to 0 nodes instead of {inode.replication}"
                )
            num_targets = min(inode.replication, len(candidates))
            start = self._placement_cursor % len(candidates)
            targets = tuple(sorted(
                candidates[(start + i) % len(candidates)] for i in range(num_targets)
            ))
            self._placement_cursor += num_targets

            descriptor = ChunkDescriptor(
                chunk_id=self._next_chunk_id,
                num_bytes=inode.chunk_size,
                generation_stamp=FIRST_GENERATION_STAMP,
            )
            self._next_chunk_id += 1
            self._chunks[descriptor.chunk_id] = _ChunkInfo(
                descriptor=descriptor,
                inode=inode,
                replication=inode.replication,
            )
            offset = len(inode.chunks) * inode.chunk_size
            inode.chunks.append(descriptor.chunk_id)
        return LocatedChunk(
            pool_id=self.namespace_info.pool_id,
            chunk=descriptor,
            locations=targets,
            offset=offset,
        )

    def complete(self, src: str, client_name: str, last: Optional[ChunkDescriptor]) -> bool:
        """Close a file; False while its chunks are not yet minimally replicated."""
        with self._write_locked():
            inode = self._resolve(src)
            if inode is None or inode.is_dir:
                raise FileNotFoundError(src)
            if not inode.under_construction:
                return True
            if inode.client_name != client_name:
                raise LeaseError(f"{src} is not open for writing by {client_name}")
            if last is not None and (not inode.chunks or inode.chunks[-1] != last.chunk_id):
                raise LeaseError(f"{src}: last chunk {last.chunk_id} does not match")
            for chunk_id in inode.chunks:
                if not self._chunks[chunk_id].locations:
                    return False
            inode.client_name = None
        return True

    # ------------------------------------------------------------------
    # Storage nodes
    # ------------------------------------------------------------------

    def version_request(self) -> NamespaceInfo:
        return self.namespace_info

    def register_storage_node(self, registration: StorageNodeRegistration) -> StorageNodeRegistration:
        with self._write_locked():
            previous = self._nodes.get(registration.address)
            if previous is not None:
                for chunk_id in previous.chunks:
                    info = self._chunks.get(chunk_id)
                    if info is not None:
                        info.locations.discard(registration.address)
            self._nodes[registration.address] = _NodeInfo(registration=registration)
        logger.info(f"Registered storage node {registration.address}")
        return registration

    def heartbeat(
        self,
        registration: StorageNodeRegistration,
        reports: Sequence[StorageReport],
    ) -> list[NodeCommand]:
        with self._lock:
            node = self._node(registration)
            node.capacity = sum(r.capacity for r in reports)
            node.used = sum(r.used for r in reports)
            for r in reports:
                node.storage_ids.add(r.storage.storage_id)
            commands, node.pending_commands = node.pending_commands, []
        return commands

    def chunk_report(
        self,
        registration: StorageNodeRegistration,
        pool_id: str,
        reports: Sequence[StorageChunkReport],
    ) -> None:
        """Full report: the node holds exactly the reported chunks that exist."""
        with self._write_locked():
            node = self._node(registration)
            reported: Set[int] = set()
            invalid = 0
            for report in reports:
                if report.storage is not None:
                    node.storage_ids.add(report.storage.storage_id)
                for chunk in report.chunks:
                    if chunk.chunk_id in self._chunks:
                        reported.add(chunk.chunk_id)
                    else:
                        invalid += 1
            for chunk_id in node.chunks - reported:
                info = self._chunks.get(chunk_id)
                if info is not None:
                    info.locations.discard(registration.address)
            for chunk_id in reported - node.chunks:
                self._chunks[chunk_id].locations.add(registration.address)
            node.chunks = reported
            self.invalid_chunks_reported += invalid
        if invalid:
            logger.debug(f"Chunk report from {registration.address}: {invalid} unknown chunks")

    def chunk_received_and_deleted(
        self,
        registration: StorageNodeRegistration,
        pool_id: str,
        receipts: Sequence[StorageChunkReceipts],
    ) -> None:
        start = now_ns()
        with self._write_locked():
            node = self._node(registration)
            for storage_receipts in receipts:
                if storage_receipts.storage_id:
                    node.storage_ids.add(storage_receipts.storage_id)
                for receipt in storage_receipts.receipts:
                    chunk_id = receipt.chunk.chunk_id
                    info = self._chunks.get(chunk_id)
                    if info is None:
                        continue
                    if receipt.status == ReceiptStatus.DELETED:
                        info.locations.discard(registration.address)
                        node.chunks.discard(chunk_id)
                    elif receipt.status == ReceiptStatus.RECEIVED:
                        info.locations.add(registration.address)
                        node.chunks.add(chunk_id)
                        self._reconstruction_received(chunk_id, registration.address)
        self.chunk_received_stat.add_value(now_ns() - start)

    def _reconstruction_received(self, chunk_id: int, address: str) -> None:
        pending = self._pending.get(chunk_id)
        if pending is None:
            return
        pending.targets.discard(address)
        if not pending.targets:
            del self._pending[chunk_id]
            source = self._nodes.get(pending.source)
            if source is not None and source.active_streams > 0:
                source.active_streams -= 1

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def compute_pending_reconstruction_work(self) -> int:
        """One pass of the reconstruction monitor.

        Schedules transfers for under-replicated chunks that are not already
        pending, at most ``RECONSTRUCTION_WORK_MULTIPLIER`` per live node,
        and returns the number of chunks scheduled.
        """
        with self._write_locked():
            live = sorted(n.registration.address for n in self._live_nodes())
            if not live:
                return 0
            limit = RECONSTRUCTION_WORK_MULTIPLIER * len(live)
            scheduled = 0
            for chunk_id in sorted(self._chunks):
                if scheduled >= limit:
                    break
                if chunk_id in self._pending:
                    continue
                info = self._chunks[chunk_id]
                needed = min(info.replication, len(live)) - self._live_replicas(info)
                if needed <= 0:
                    continue
                sources = [
                    self._nodes[a] for a in sorted(info.locations)
                    if a in self._nodes
                    and self._nodes[a].active_streams < self.node_reconstruction_limit
                ]
                if not sources:
                    continue
                candidates = [a for a in live if a not in info.locations]
                if not candidates:
                    continue
                start = self._placement_cursor % len(candidates)
                targets = [candidates[(start + i) % len(candidates)]
                           for i in range(min(needed, len(candidates)))]
                self._placement_cursor += len(targets)
                # Prefer decommissioned replicas as sources, then the least busy
                source = min(sources, key=lambda n: (not n.decommissioned, n.active_streams))
                source.active_streams += 1
                source.pending_commands.append(NodeCommand(
                    action=NodeCommandAction.TRANSFER,
                    pool_id=self.namespace_info.pool_id,
                    chunks=(info.descriptor,),
                    targets=(tuple(targets),),
                    target_storage_ids=(tuple(
                        next(iter(sorted(self._nodes[t].storage_ids)), "") for t in targets
                    ),),
                ))
                self._pending[chunk_id] = _PendingReconstruction(
                    source=source.registration.address,
                    targets=set(targets),
                )
                scheduled += 1
        return scheduled

    def pending_reconstructions(self) -> int:
        with self._lock:
            return len(self._pending)

    def stop_reconstruction_monitor(self) -> None:
        self.reconstruction_monitor_running = False
        logger.info("Reconstruction monitor stopped")

    def set_node_reconstruction_limit(self, limit: int) -> None:
        self.node_reconstruction_limit = limit

    def set_safe_mode(self, on: bool) -> bool:
        self.safe_mode = on
        return self.safe_mode

    def refresh_nodes(self, excluded: Iterable[str]) -> None:
        excluded = set(excluded)
        with self._write_locked():
            for address, node in self._nodes.items():
                node.decommissioned = address in excluded
        logger.info(f"Refreshed nodes: {len(excluded)} excluded")

    def refresh_user_to_groups_mappings(self) -> None:
        with self._lock:
            self._group_cache.clear()
            self.group_cache_refreshes += 1

    def get_server_stats(self) -> Mapping[str, StatAccumulator]:
        return {
            "create": self.create_stat,
            "write_lock": self.write_lock_stat,
            "chunk_received": self.chunk_received_stat,
        }

    def num_chunks(self) -> int:
        with self._lock:
            return len(self._chunks)
