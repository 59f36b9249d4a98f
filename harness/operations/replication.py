"""Reconstruction work benchmark.

Measures how fast the server computes reconstruction work for the chunks of
decommissioned storage nodes. A single worker calls the work computation
until it schedules nothing more.
"""

from __future__ import annotations

import argparse
import logging
from typing import Any, Dict, List, Optional

from common.models.scenario import ChunkReportScenario, OperationType, ReplicationScenario
from common.utils import now_us
from harness.core.context import BenchmarkContext
from harness.core.operation import OperationHarness
from harness.operations.chunk_report import ChunkReportOperation

logger = logging.getLogger(__name__)


class ReplicationOperation(OperationHarness):
    """Runs the reconstruction scan after decommissioning the last nodes."""

    name = OperationType.REPLICATION
    usage = (
        "[--nodes T] [--nodes-to-decommission D] [--node-reconstruction-limit C] "
        "[--total-chunks B] [--replication R]"
    )
    scenario_class = ReplicationScenario

    def __init__(self, context: BenchmarkContext, scenario: ReplicationScenario):
        super().__init__(context, scenario)
        chunk_scenario = ChunkReportScenario(
            op=OperationType.CHUNK_REPORT,
            num_threads=scenario.num_nodes,
            chunks_per_report=max(1, scenario.chunks_per_report),
            chunks_per_file=scenario.num_nodes,
            replication=scenario.replication,
            log_level=scenario.log_level,
        )
        self.chunk_report = ChunkReportOperation(context, chunk_scenario)
        self.num_decommissioned_chunks = 0
        self.num_pending_chunks = 0
        self.num_transferred_chunks = 0

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--nodes", dest="num_nodes", type=int, default=None)
        parser.add_argument("--nodes-to-decommission", dest="nodes_to_decommission", type=int, default=None)
        parser.add_argument(
            "--node-reconstruction-limit", dest="node_reconstruction_limit", type=int, default=None,
        )
        parser.add_argument("--total-chunks", dest="total_chunks", type=int, default=None)
        parser.add_argument("--replication", dest="replication", type=int, default=None)

    @property
    def num_ops_required(self) -> int:
        return self.scenario.required_ops

    @property
    def agents(self):
        return self.chunk_report.agents

    def generate_inputs(self, ops_per_worker: List[int]) -> None:
        # Start storage nodes, write the files and build the reports
        self.chunk_report.generate_inputs(ops_per_worker)
        self.server.stop_reconstruction_monitor()

        # Report every node once
        for idx in range(len(self.agents)):
            self.chunk_report.execute_op(idx, 0, None)

        self.decommission_nodes()
        self.server.set_node_reconstruction_limit(self.scenario.node_reconstruction_limit)

    def decommission_nodes(self) -> List[str]:
        excluded = []
        num_agents = len(self.agents)
        self.num_decommissioned_chunks = 0
        for i in range(self.scenario.nodes_to_decommission):
            agent = self.agents[num_agents - 1 - i]
            self.num_decommissioned_chunks += agent.num_chunks
            agent.decommission()
            excluded.append(agent.address)
            logger.info(f"Storage node {agent.address} is decommissioned.")
        self.server.refresh_nodes(excluded)
        return excluded

    def execute_op(self, worker_id: int, input_idx: int, arg: Optional[str]) -> int:
        start = now_us()
        work = self.server.compute_pending_reconstruction_work()
        elapsed = now_us() - start
        self.num_pending_chunks += work
        if work == 0:
            self.workers[worker_id].terminate()
        return elapsed

    def benchmark(self):
        self.num_pending_chunks = 0
        self.num_transferred_chunks = 0
        report = super().benchmark()
        # Carry out the scheduled transfers so the reconstruction finishes
        for agent in self.agents:
            self.num_transferred_chunks += agent.replicate_chunks()
        logger.info(f"Transferred {self.num_transferred_chunks} chunks.")
        return report

    def clean_up(self) -> None:
        super().clean_up()
        self.chunk_report.clean_up()

    @property
    def reconstructions_per_second(self) -> float:
        return 0 if self.elapsed_ms == 0 else 1000 * self.num_pending_chunks / self.elapsed_ms

    def inputs(self) -> Dict[str, Any]:
        distribution = tuple(agent.num_chunks for agent in self.agents)
        return {
            "ops_required": self.num_ops_required,
            "nodes": f"{self.scenario.num_nodes} {distribution}",
            "decommissioned_nodes": self.scenario.nodes_to_decommission,
            "node_reconstruction_limit": self.scenario.node_reconstruction_limit,
            "total_chunks": self.scenario.total_chunks,
        }

    def extra_results(self) -> Dict[str, Any]:
        return {
            "decommissioned_chunks": self.num_decommissioned_chunks,
            "pending_reconstructions": self.num_pending_chunks,
            "reconstructions_per_sec": round(self.reconstructions_per_second, 2),
            "transferred_chunks": self.num_transferred_chunks,
        }
