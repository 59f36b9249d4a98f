"""Namespace operation benchmarks: create, mkdirs, open, delete, stat, rename, clean."""

from __future__ import annotations

import argparse
import logging
from abc import abstractmethod
from typing import Any, Dict, List, Optional

from common.models.scenario import (
    BenchmarkScenario,
    CreateScenario,
    ExistingFileScenario,
    MkdirsScenario,
    OperationType,
)
from harness.core.context import BenchmarkContext
from harness.core.names import NameInputGenerator
from harness.core.operation import OperationHarness

logger = logging.getLogger(__name__)

NAME_PREFIX = "ThroughputBench"


def _add_thread_and_count(parser: argparse.ArgumentParser, count_flag: str) -> None:
    parser.add_argument("--threads", dest="num_threads", type=int, default=None)
    parser.add_argument(count_flag, dest="num_ops", type=int, default=None)


class CreateOperation(OperationHarness):
    """File creation.

    Every worker creates the same (+ or -1) number of files. File names are
    generated before the run and the created files have no chunks.
    """

    name = OperationType.CREATE
    usage = "[--threads T] [--files N] [--files-per-dir P] [--close]"
    scenario_class = CreateScenario

    def __init__(self, context: BenchmarkContext, scenario: CreateScenario):
        super().__init__(context, scenario)
        self.names = NameInputGenerator(self.base_dir, scenario.files_per_dir)
        self.file_names: List[List[str]] = []

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        _add_thread_and_count(parser, "--files")
        parser.add_argument("--files-per-dir", dest="files_per_dir", type=int, default=None)
        parser.add_argument("--close", dest="close_on_create", action="store_true", default=None)

    def generate_inputs(self, ops_per_worker: List[int]) -> None:
        self.server.set_safe_mode(False)
        logger.info(f"Generate {self.num_ops_required} inputs for {self.op_name}")
        self.names.reset()
        self.file_names = self.names.generate(ops_per_worker, NAME_PREFIX)

    def get_execution_argument(self, worker_id: int) -> str:
        return self.client_name(worker_id)

    def execute_op(self, worker_id: int, input_idx: int, client_name: Optional[str]) -> int:
        name = self.file_names[worker_id][input_idx]
        elapsed = self.timed_call(
            self.server.create,
            name,
            client_name,
            overwrite=True,
            create_parent=True,
            replication=self.settings.default_replication,
            chunk_size=self.settings.chunk_size,
        )
        if self.scenario.close_on_create:
            while not self.server.complete(name, client_name, None):
                pass
        return elapsed

    def inputs(self) -> Dict[str, Any]:
        return {
            "files": self.num_ops_required,
            "threads": self.num_threads,
            "files_per_dir": self.names.files_per_dir,
        }


class MkdirsOperation(OperationHarness):
    """Directory creation."""

    name = OperationType.MKDIRS
    usage = "[--threads T] [--dirs N] [--dirs-per-dir P]"
    scenario_class = MkdirsScenario

    def __init__(self, context: BenchmarkContext, scenario: MkdirsScenario):
        super().__init__(context, scenario)
        self.names = NameInputGenerator(self.base_dir, scenario.dirs_per_dir)
        self.dir_paths: List[List[str]] = []

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        _add_thread_and_count(parser, "--dirs")
        parser.add_argument("--dirs-per-dir", dest="dirs_per_dir", type=int, default=None)

    def generate_inputs(self, ops_per_worker: List[int]) -> None:
        self.server.set_safe_mode(False)
        logger.info(f"Generate {self.num_ops_required} inputs for {self.op_name}")
        self.names.reset()
        self.dir_paths = self.names.generate(ops_per_worker, NAME_PREFIX)

    def get_execution_argument(self, worker_id: int) -> str:
        return self.client_name(worker_id)

    def execute_op(self, worker_id: int, input_idx: int, client_name: Optional[str]) -> int:
        return self.timed_call(self.server.mkdirs, self.dir_paths[worker_id][input_idx], True)

    def inputs(self) -> Dict[str, Any]:
        return {
            "dirs": self.num_ops_required,
            "threads": self.num_threads,
            "dirs_per_dir": self.names.files_per_dir,
        }


class ExistingFileOperation(OperationHarness):
    """Base for operations on files that exist before the run.

    The files are made by a create benchmark with the same thread count,
    file count and directory fan-out, then its base directory is renamed to
    this operation's. With ``use_existing`` the files are assumed to be
    there already. Subclasses only supply the server call.
    """

    usage = "[--threads T] [--files N] [--files-per-dir P] [--use-existing]"
    scenario_class = ExistingFileScenario

    def __init__(self, context: BenchmarkContext, scenario: ExistingFileScenario):
        super().__init__(context, scenario)
        self.names = NameInputGenerator(self.base_dir, scenario.files_per_dir)
        self.file_names: List[List[str]] = []

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        _add_thread_and_count(parser, "--files")
        parser.add_argument("--files-per-dir", dest="files_per_dir", type=int, default=None)
        parser.add_argument("--use-existing", dest="use_existing", action="store_true", default=None)

    def _create_operation(self) -> CreateOperation:
        scenario = CreateScenario(
            op=OperationType.CREATE,
            num_threads=self.num_threads,
            num_ops=self.num_ops_required,
            files_per_dir=self.scenario.files_per_dir,
            close_on_create=True,
            log_level=self.scenario.log_level,
        )
        return CreateOperation(self.context, scenario)

    def generate_inputs(self, ops_per_worker: List[int]) -> None:
        create = self._create_operation()
        if not self.scenario.use_existing:
            create.benchmark()
            logger.info(f"Created {self.num_ops_required} files.")
        else:
            logger.info(
                f"use_existing = true. Assuming {self.num_ops_required} files have been created before."
            )

        self.server.set_safe_mode(False)
        logger.info(f"Generate {self.num_ops_required} inputs for {self.op_name}")
        self.names.reset()
        self.file_names = self.names.generate(ops_per_worker, NAME_PREFIX)

        if (self.server.get_file_info(create.base_dir) is not None
                and self.server.get_file_info(self.base_dir) is None):
            self.server.rename(create.base_dir, self.base_dir)
        if self.server.get_file_info(self.base_dir) is None:
            raise FileNotFoundError(f"{self.base_dir} does not exist.")

    def execute_op(self, worker_id: int, input_idx: int, arg: Optional[str]) -> int:
        return self.call_server(worker_id, input_idx)

    @abstractmethod
    def call_server(self, worker_id: int, input_idx: int) -> int:
        """Issue the measured call for one input and return its duration."""

    def inputs(self) -> Dict[str, Any]:
        return {
            "files": self.num_ops_required,
            "threads": self.num_threads,
            "files_per_dir": self.names.files_per_dir,
        }


class OpenOperation(ExistingFileOperation):
    """How many chunk-location lookups the server handles per second."""

    name = OperationType.OPEN

    def call_server(self, worker_id: int, input_idx: int) -> int:
        return self.timed_call(
            self.server.get_chunk_locations,
            self.file_names[worker_id][input_idx],
            0,
            self.settings.chunk_size,
        )


class DeleteOperation(ExistingFileOperation):
    """Non-recursive file deletion."""

    name = OperationType.DELETE

    def call_server(self, worker_id: int, input_idx: int) -> int:
        return self.timed_call(self.server.delete, self.file_names[worker_id][input_idx], False)


class StatOperation(ExistingFileOperation):
    """File status lookups."""

    name = OperationType.STAT

    def call_server(self, worker_id: int, input_idx: int) -> int:
        return self.timed_call(self.server.get_file_info, self.file_names[worker_id][input_idx])


class RenameOperation(ExistingFileOperation):
    """Renames every file to ``<name>.r`` in the same directory."""

    name = OperationType.RENAME

    def __init__(self, context: BenchmarkContext, scenario: ExistingFileScenario):
        super().__init__(context, scenario)
        self.dest_names: List[List[str]] = []

    def generate_inputs(self, ops_per_worker: List[int]) -> None:
        super().generate_inputs(ops_per_worker)
        self.dest_names = [[name + ".r" for name in names] for names in self.file_names]

    def call_server(self, worker_id: int, input_idx: int) -> int:
        return self.timed_call(
            self.server.rename,
            self.file_names[worker_id][input_idx],
            self.dest_names[worker_id][input_idx],
        )


class CleanOperation(OperationHarness):
    """Removes the whole benchmark root with a single call."""

    name = OperationType.CLEAN

    @classmethod
    def build_scenario(cls, options: Dict[str, Any]) -> BenchmarkScenario:
        values = {k: v for k, v in options.items() if v is not None}
        values.update(num_threads=1, num_ops=1)
        return cls.scenario_class(op=cls.name, **values)

    def generate_inputs(self, ops_per_worker: List[int]) -> None:
        pass

    def execute_op(self, worker_id: int, input_idx: int, arg: Optional[str]) -> int:
        self.server.set_safe_mode(False)
        return self.timed_call(self.server.delete, self.settings.base_dir, True)

    def inputs(self) -> Dict[str, Any]:
        return {"remove_directory": self.settings.base_dir}
