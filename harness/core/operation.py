"""Base class for operation benchmarks.

Each benchmark measures throughput and average execution time of one
control-plane operation, e.g. file creation or chunk reports. Inputs are
generated for every worker before the clock starts so generation does not
affect the statistics, then the requested number of operations is executed
by the requested number of worker threads. The number of operations per
worker differs by at most one.
"""

from __future__ import annotations

import argparse
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Type

from pydantic import ValidationError

from common.errors import InvalidArgumentError
from common.models.metrics import OperationReport
from common.models.scenario import BenchmarkScenario, OperationType
from common.protocol import ControlPlane
from common.utils import Timer, format_duration_ms, now_us, split_work
from harness.config import Settings
from harness.core.context import BenchmarkContext, set_server_log_level
from harness.core.worker import BenchmarkWorker

logger = logging.getLogger(__name__)

GENERAL_OPTIONS_USAGE = "[--keep-results] [--log-level L] [--refresh-count G]"


class OptionParser(argparse.ArgumentParser):
    """Argument parser that raises instead of exiting."""

    def error(self, message: str):
        raise InvalidArgumentError(message, usage=self.format_usage())


class OperationHarness(ABC):
    """Owns one operation's configuration, inputs, workers and results."""

    name: ClassVar[OperationType]
    usage: ClassVar[str] = ""
    scenario_class: ClassVar[Type[BenchmarkScenario]] = BenchmarkScenario

    def __init__(self, context: BenchmarkContext, scenario: BenchmarkScenario):
        self.context = context
        self.scenario = scenario
        self.workers: List[BenchmarkWorker] = []
        self.ops_executed = 0
        self.cumulative_time_us = 0
        self.elapsed_ms = 0.0
        self.report: Optional[OperationReport] = None

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        """Register operation specific options."""

    @classmethod
    def build_parser(cls) -> OptionParser:
        parser = OptionParser(
            prog=f"--op {cls.name.value}",
            usage=f"--op {cls.name.value} {cls.usage} {GENERAL_OPTIONS_USAGE}".replace("  ", " "),
            add_help=False,
            allow_abbrev=False,
        )
        parser.add_argument("--keep-results", dest="keep_results", action="store_true", default=None)
        parser.add_argument("--log-level", dest="log_level", default=None)
        parser.add_argument("--refresh-count", dest="refresh_count", type=int, default=None)
        cls.add_arguments(parser)
        return parser

    @classmethod
    def build_scenario(cls, options: Dict[str, Any]) -> BenchmarkScenario:
        values = {k: v for k, v in options.items() if v is not None}
        return cls.scenario_class(op=cls.name, **values)

    @staticmethod
    def _option_defaults(parser: argparse.ArgumentParser, defaults: Dict[str, Any]) -> Dict[str, Any]:
        """Map defaults keyed by option name (``files_per_dir``) or dest to dests."""
        names = {}
        for action in parser._actions:
            names[action.dest] = action.dest
            for option in action.option_strings:
                names[option.lstrip("-").replace("-", "_")] = action.dest
        return {names[k]: v for k, v in defaults.items() if k in names}

    @classmethod
    def configure(
        cls,
        context: BenchmarkContext,
        args: Sequence[str] = (),
        ignore_unrelated: bool = False,
        defaults: Optional[Dict[str, Any]] = None,
    ) -> "OperationHarness":
        """Parse ``args`` into a scenario and build the harness.

        Options that do not belong to this operation are an error unless
        ``ignore_unrelated`` is set (the ``all`` selector).
        """
        parser = cls.build_parser()
        if defaults:
            parser.set_defaults(**cls._option_defaults(parser, defaults))
        options, unknown = parser.parse_known_args(list(args))
        if unknown and not ignore_unrelated:
            raise InvalidArgumentError(
                f"unrecognized arguments for {cls.name.value}: {' '.join(unknown)}",
                usage=parser.format_usage(),
            )
        try:
            scenario = cls.build_scenario(vars(options))
        except ValidationError as e:
            raise InvalidArgumentError(str(e), usage=parser.format_usage()) from e
        return cls(context, scenario)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def server(self) -> ControlPlane:
        return self.context.server

    @property
    def settings(self) -> Settings:
        return self.context.settings

    @property
    def op_name(self) -> str:
        return self.name.value

    @property
    def base_dir(self) -> str:
        return f"{self.settings.base_dir}/{self.op_name}"

    @property
    def num_threads(self) -> int:
        return self.scenario.num_threads

    @property
    def num_ops_required(self) -> int:
        return self.scenario.num_ops

    def client_name(self, idx: int) -> str:
        return f"{self.op_name}-client-{idx}"

    @staticmethod
    def timed_call(fn: Callable[..., Any], *args, **kwargs) -> int:
        """Run one server call and return its duration in microseconds."""
        start = now_us()
        fn(*args, **kwargs)
        return now_us() - start

    # ------------------------------------------------------------------
    # Per-operation hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def generate_inputs(self, ops_per_worker: List[int]) -> None:
        """Generate the inputs of every worker."""

    def get_execution_argument(self, worker_id: int) -> Optional[str]:
        """Argument passed to every ``execute_op`` call of a worker."""
        return None

    @abstractmethod
    def execute_op(self, worker_id: int, input_idx: int, arg: Optional[str]) -> int:
        """Execute one operation and return the server call time in microseconds."""

    def inputs(self) -> Dict[str, Any]:
        """Operation inputs printed with the results."""
        return {}

    def extra_results(self) -> Dict[str, Any]:
        """Operation specific results printed after the common block."""
        return {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def benchmark(self) -> OperationReport:
        """Generate inputs, run every worker and aggregate their counters."""
        self.workers = []
        self.ops_executed = 0
        self.cumulative_time_us = 0
        self.elapsed_ms = 0.0
        if self.num_threads < 1:
            return self._build_report()

        ops_per_worker = split_work(self.num_ops_required, self.num_threads)
        set_server_log_level("ERROR")
        try:
            self.generate_inputs(ops_per_worker)
        finally:
            set_server_log_level(self.scenario.log_level)

        self.workers = [
            BenchmarkWorker(worker_id, ops, self)
            for worker_id, ops in enumerate(ops_per_worker)
            if ops > 0
        ]
        logger.info(f"Starting {self.num_ops_required} {self.op_name}(s).")
        timer = Timer()
        with timer:
            try:
                for worker in self.workers:
                    worker.start()
            finally:
                self._wait_for_workers()
        self.elapsed_ms = timer.elapsed_ms

        for worker in self.workers:
            self.ops_executed += worker.ops_executed
            self.cumulative_time_us += worker.cumulative_time_us
        return self._build_report()

    def _wait_for_workers(self) -> None:
        for worker in self.workers:
            if worker.is_alive():
                worker.join()

    def clean_up(self) -> None:
        """Leave maintenance mode and remove the results unless kept."""
        self.server.set_safe_mode(False)
        if not self.scenario.keep_results:
            self.server.delete(self.base_dir, True)

    def _build_report(self) -> OperationReport:
        self.report = OperationReport(
            op_name=self.op_name,
            num_threads=self.num_threads,
            ops_required=self.num_ops_required,
            ops_executed=self.ops_executed,
            cumulative_time_us=self.cumulative_time_us,
            elapsed_ms=self.elapsed_ms,
            workers=[w.result() for w in self.workers],
            inputs=self.inputs(),
        )
        return self.report

    @property
    def ops_per_second(self) -> float:
        return 0 if self.elapsed_ms == 0 else 1000 * self.ops_executed / self.elapsed_ms

    @property
    def average_time_us(self) -> float:
        return 0 if self.ops_executed == 0 else self.cumulative_time_us / self.ops_executed

    def print_stats(self) -> None:
        logger.info(f"--- {self.op_name} stats  ---")
        logger.info(f"# operations: {self.ops_executed}")
        logger.info(f"Elapsed Time: {format_duration_ms(self.elapsed_ms)}")
        logger.info(f" Ops per sec: {self.ops_per_second:.2f}")
        logger.info(f"Average Time: {self.average_time_us:.1f} us")

    def print_results(self) -> None:
        logger.info(f"--- {self.op_name} inputs ---")
        for key, value in self.inputs().items():
            logger.info(f"{key} = {value}")
        self.print_stats()
        extra = self.extra_results()
        if self.report is not None:
            self.report.extra.update(extra)
        for key, value in extra.items():
            logger.info(f"{key} = {value}")
