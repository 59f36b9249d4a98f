"""Chunk report benchmark.

Every worker pretends to be one storage node and sends full chunk reports.
Before the run, files are written so that each node holds about
``chunks_per_report`` chunks. Files are written either by a fixed-size
writer pool whose server calls all go through one gate, or by the staged
pipeline where each step of a file write is a separate stage.
"""

from __future__ import annotations

import argparse
import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional

from agent.node import AgentArray, StorageNodeAgent
from common.models.cluster import ChunkDescriptor, LocatedChunk
from common.models.metrics import ExperimentSummary
from common.models.scenario import ChunkReportScenario, OperationType
from common.stats import StatAccumulator
from common.utils import Timer, now_us
from harness.core.context import BenchmarkContext
from harness.core.gate import ServerGate
from harness.core.names import NameInputGenerator
from harness.core.operation import OperationHarness
from harness.core.pipeline import StagedPipelineExecutor, StagedTask

logger = logging.getLogger(__name__)

CREATE_POOL = "create"
ALLOCATE_POOL = "allocate"

# Index of the client name used for every file write
WRITER_CLIENT_IDX = 7
WRITER_FILES_PER_DIR = 100


class ChunkWriter:
    """File-write steps shared by the blocking and staged modes."""

    def __init__(
        self,
        operation: "ChunkReportOperation",
        gate: Optional[ServerGate] = None,
    ):
        self.server = operation.server
        self.agents = operation.agents
        self.replication = operation.replication
        self.chunk_size = operation.settings.chunk_size
        self.chunks_per_file = operation.scenario.chunks_per_file
        self.create_stat = operation.create_stat
        self.gate = gate

    def _call(self, fn, *args, **kwargs):
        if self.gate is None:
            return fn(*args, **kwargs)
        return self.gate.call(fn, *args, **kwargs)

    def create(self, name: str, client_name: str) -> None:
        self._call(
            self.server.create,
            name,
            client_name,
            overwrite=True,
            create_parent=True,
            replication=self.replication,
            chunk_size=self.chunk_size,
        )

    def allocate(self, name: str, client_name: str, previous: Optional[ChunkDescriptor]) -> LocatedChunk:
        return self._call(self.server.add_chunk, name, client_name, previous)

    def store(self, located: LocatedChunk) -> List[StorageNodeAgent]:
        """Append the chunk to every agent it was placed on.

        Returns the agents that stored it; full agents are skipped.
        """
        agents = []
        for address in located.locations:
            agent = self.agents.lookup(address)
            if not agent.add_chunk(located.chunk):
                logger.warning(f"{agent.address} is full, chunk {located.chunk.chunk_id} not stored")
                continue
            agents.append(agent)
        return agents

    def acknowledge(self, agent: StorageNodeAgent, located: LocatedChunk) -> None:
        self._call(
            self.server.chunk_received_and_deleted,
            agent.registration,
            located.pool_id,
            agent.receipt_for(located.chunk),
        )

    def complete(self, name: str, client_name: str, last: Optional[ChunkDescriptor]) -> bool:
        done = self._call(self.server.complete, name, client_name, last)
        if not done:
            logger.warning(f"{name} is not minimally replicated yet")
        return done

    def write_file(self, name: str, client_name: str) -> None:
        """Create, fill and close one file, blocking on every call."""
        start = now_us()
        self.create(name, client_name)
        self.create_stat.add_value(now_us() - start)

        previous = None
        for _ in range(self.chunks_per_file):
            located = self.allocate(name, client_name, previous)
            previous = located.chunk
            for agent in self.store(located):
                self.acknowledge(agent, located)
        self.complete(name, client_name, previous)


class ChunkWriteTask(StagedTask):
    """One file write split into stages.

    0 records the create start time; 1 creates the file; 2 allocates a
    chunk; 3 stores it on its agents; 4 acknowledges one location per
    execution; 5 completes the file. Stage 4 loops back to 2 until the file
    has all its chunks.
    """

    def __init__(self, writer: ChunkWriter, name: str, client_name: str):
        super().__init__(name)
        self.writer = writer
        self.name = name
        self.client_name = client_name
        self.start_create_us = 0
        self.chunks_written = 0
        self.previous: Optional[ChunkDescriptor] = None
        self.located: Optional[LocatedChunk] = None
        self.pending_acks: List[StorageNodeAgent] = []
        self.acks_sent = 0

    def run_stage(self) -> Optional[str]:
        if self.stage == 0:
            self.start_create_us = now_us()
            self.stage = 1
            return CREATE_POOL
        if self.stage == 1:
            self.writer.create(self.name, self.client_name)
            self.writer.create_stat.add_value(now_us() - self.start_create_us)
            self.stage = 2
            return ALLOCATE_POOL
        if self.stage == 2:
            self.located = self.writer.allocate(self.name, self.client_name, self.previous)
            self.stage = 3
            return ALLOCATE_POOL
        if self.stage == 3:
            self.previous = self.located.chunk
            self.pending_acks = self.writer.store(self.located)
            self.stage = 4
            if not self.pending_acks:
                return self._next_chunk()
            return CREATE_POOL
        if self.stage == 4:
            agent = self.pending_acks.pop(0)
            self.writer.acknowledge(agent, self.located)
            self.acks_sent += 1
            if self.pending_acks:
                return CREATE_POOL
            return self._next_chunk()
        if self.stage == 5:
            self.writer.complete(self.name, self.client_name, self.previous)
            return None
        raise ValueError(f"{self.task_id}: unknown stage {self.stage}")

    def _next_chunk(self) -> str:
        self.chunks_written += 1
        if self.chunks_written < self.writer.chunks_per_file:
            self.stage = 2
            return ALLOCATE_POOL
        self.stage = 5
        return CREATE_POOL


class ChunkReportOperation(OperationHarness):
    """Full chunk reports, one storage node per worker."""

    name = OperationType.CHUNK_REPORT
    usage = (
        "[--nodes T] [--reports N] [--chunks-per-report B] [--chunks-per-file F] "
        "[--writer-pool-size P] [--replication R] [--staged]"
    )
    scenario_class = ChunkReportScenario

    def __init__(self, context: BenchmarkContext, scenario: ChunkReportScenario):
        super().__init__(context, scenario)
        self.replication = scenario.effective_replication
        self.agents = AgentArray()
        self.create_stat = StatAccumulator("create")
        self.gate = ServerGate()
        self.num_chunks = 0
        self.num_files = 0
        self.failed_files = 0
        self.longest_queue_size = 0
        self.experiment: Optional[ExperimentSummary] = None

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--nodes", dest="num_threads", type=int, default=None)
        parser.add_argument("--reports", dest="num_ops", type=int, default=None)
        parser.add_argument("--chunks-per-report", dest="chunks_per_report", type=int, default=None)
        parser.add_argument("--chunks-per-file", dest="chunks_per_file", type=int, default=None)
        parser.add_argument("--writer-pool-size", dest="writer_pool_size", type=int, default=None)
        parser.add_argument("--replication", dest="replication", type=int, default=None)
        parser.add_argument("--staged", dest="staged", action="store_true", default=None)

    @property
    def num_nodes(self) -> int:
        return self.scenario.num_nodes

    def start_agents(self) -> None:
        capacity = int(self.scenario.chunks_per_report * self.context.agent_settings.capacity_factor)
        self.agents = AgentArray()
        for idx in range(self.num_nodes):
            agent = StorageNodeAgent(idx, self.server, capacity, self.context.agent_settings)
            agent.register()
            agent.send_heartbeat()
            self.agents.append(agent)
        self.agents.sort()

    def generate_inputs(self, ops_per_worker: List[int]) -> None:
        self.num_chunks = math.ceil(self.scenario.chunks_per_report * self.num_nodes / self.replication)
        self.num_files = math.ceil(self.num_chunks / self.scenario.chunks_per_file)
        self.start_agents()

        logger.info(f"Creating {self.num_files} files with {self.scenario.chunks_per_file} chunks each.")
        names = NameInputGenerator(self.base_dir, WRITER_FILES_PER_DIR)
        file_names = [names.next_name("ThroughputBench") for _ in range(self.num_files)]
        client_name = self.client_name(WRITER_CLIENT_IDX)
        self.server.set_safe_mode(False)

        timer = Timer()
        try:
            with timer:
                if self.scenario.staged:
                    self._write_staged(file_names, client_name)
                else:
                    self._write_blocking(file_names, client_name)
        finally:
            self.report_experiment(timer.elapsed_ms)

        for agent in self.agents:
            agent.build_report()

    def _write_blocking(self, file_names: List[str], client_name: str) -> None:
        writer = ChunkWriter(self, gate=self.gate)
        with ThreadPoolExecutor(
            max_workers=self.scenario.writer_pool_size,
            thread_name_prefix="chunk-writer",
        ) as executor:
            futures = {executor.submit(writer.write_file, name, client_name): name for name in file_names}
            for future in as_completed(futures, timeout=self.settings.drain_timeout):
                try:
                    future.result()
                except Exception as e:
                    self.failed_files += 1
                    logger.error(f"Failed to write {futures[future]}: {e}", exc_info=True)

    def _write_staged(self, file_names: List[str], client_name: str) -> None:
        writer = ChunkWriter(self)
        executor = StagedPipelineExecutor({
            CREATE_POOL: self.settings.create_pool_size,
            ALLOCATE_POOL: self.settings.allocate_pool_size,
        })
        tasks = [ChunkWriteTask(writer, name, client_name) for name in file_names]
        executor.run(tasks, ALLOCATE_POOL, timeout=self.settings.drain_timeout)
        # Tasks left in the pools after a timeout count as failed
        unfinished = len(tasks) - len(executor.completed) - len(executor.failed)
        self.failed_files += len(executor.failed) + unfinished
        self.longest_queue_size = executor.longest_queue_size

    def report_experiment(self, lifetime_ms: float) -> ExperimentSummary:
        """Log the write-phase statistics and write the stat and CDF files."""
        server_stats = {name: stat.summary() for name, stat in self.server.get_server_stats().items()}
        self.experiment = ExperimentSummary(
            num_files=self.num_files,
            num_chunks=self.num_chunks,
            writer_pool_size=self.scenario.writer_pool_size,
            staged=self.scenario.staged,
            lifetime_ms=lifetime_ms,
            create=self.create_stat.summary(),
            server_stats=server_stats,
            longest_gate_wait=self.gate.longest_wait,
            longest_queue_size=self.longest_queue_size,
            failed_files=self.failed_files,
        )
        exp = self.experiment

        logger.info("--- experiment stats ---")
        logger.info(f"num_files  = {exp.num_files}")
        logger.info(f"num_chunks = {exp.num_chunks}")
        logger.info(f"pool_size  = {exp.writer_pool_size}")
        logger.info(f"staged     = {exp.staged}")
        logger.info("--- create stats (us) ---")
        self._log_summary("create", exp.create)
        for name, summary in exp.server_stats.items():
            logger.info(f"--- server {name} stats (ns) ---")
            self._log_summary(name, summary)
        logger.info("--- server lifetime ---")
        logger.info(f"lifetime (ms) = {exp.lifetime_ms:.3f}")
        for name, summary in exp.server_stats.items():
            share = exp.lifetime_share(name)
            if share is not None:
                logger.info(f"%life in {name} = {share:.6f}")
        if "chunk_received" in exp.server_stats and exp.lifetime_ms > 0:
            logger.info(f"receipts/ms = {exp.server_stats['chunk_received'].count / exp.lifetime_ms:.3f}")
        logger.info(f"longest gate wait = {exp.longest_gate_wait}")
        logger.info(f"longest queue size = {exp.longest_queue_size}")
        if exp.failed_files:
            logger.warning(f"failed files = {exp.failed_files}")

        self.create_stat.write_summary(self.settings.stat_path, append=True)
        self.create_stat.write_cdf(self.settings.cdf_path)
        return self.experiment

    @staticmethod
    def _log_summary(name: str, summary) -> None:
        logger.info(f"{name} min = {summary.min}")
        logger.info(f"{name} max = {summary.max}")
        logger.info(f"{name} avg = {summary.avg}")
        logger.info(f"{name} ct  = {summary.count}")
        logger.info(f"{name} sum = {summary.sum}")

    def execute_op(self, worker_id: int, input_idx: int, arg: Optional[str]) -> int:
        agent = self.agents[worker_id]
        return self.timed_call(
            self.server.chunk_report,
            agent.registration,
            agent.pool_id,
            [agent.report],
        )

    def chunk_distribution(self) -> List[int]:
        return [agent.num_chunks for agent in self.agents]

    def inputs(self) -> Dict[str, Any]:
        return {
            "reports": self.num_ops_required,
            "nodes": f"{self.num_nodes} {tuple(self.chunk_distribution())}",
            "chunks_per_report": self.scenario.chunks_per_report,
            "chunks_per_file": self.scenario.chunks_per_file,
        }

    def extra_results(self) -> Dict[str, Any]:
        if self.experiment is None:
            return {}
        return {"experiment": self.experiment.model_dump()}
