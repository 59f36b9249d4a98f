"""Staged pipeline execution.

A workflow is split into stages; each stage is a short unit of work that
runs on a named, bounded thread pool and then names the pool its next stage
runs on. A task is re-submitted only after its current stage has returned,
so at most one stage of a task is ever outstanding.
"""

from __future__ import annotations

import logging
import queue
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Mapping, Optional

from common.errors import ConcurrentStageError

logger = logging.getLogger(__name__)


class StagedTask(ABC):
    """One unit of work moving through the pipeline stage by stage."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        self.stage = 0
        self._in_progress = False
        self._flag_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.task_id}, stage={self.stage})"

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def begin_stage(self) -> None:
        with self._flag_lock:
            if self._in_progress:
                raise ConcurrentStageError(f"{self.task_id}: stage {self.stage} is already running")
            self._in_progress = True

    def end_stage(self) -> None:
        with self._flag_lock:
            if not self._in_progress:
                raise ConcurrentStageError(f"{self.task_id}: stage {self.stage} was not running")
            self._in_progress = False

    @abstractmethod
    def run_stage(self) -> Optional[str]:
        """Run the current stage; return the next pool name, or None when done."""


class StagePool:
    """Fixed number of threads consuming one FIFO queue of tasks."""

    def __init__(self, name: str, size: int, handler: Callable[[StagedTask], None]):
        if size < 1:
            raise ValueError(f"Pool {name} needs at least one thread")
        self.name = name
        self.size = size
        self._handler = handler
        self._queue: "queue.Queue[Optional[StagedTask]]" = queue.Queue()
        self._depth_lock = threading.Lock()
        self.longest_queue_size = 0
        self._threads = [
            threading.Thread(target=self._consume, name=f"{name}-stage-{i}", daemon=True)
            for i in range(size)
        ]
        for thread in self._threads:
            thread.start()

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    def submit(self, task: StagedTask) -> int:
        """Queue a task; returns the queue depth seen right after the put."""
        self._queue.put(task)
        depth = self._queue.qsize()
        with self._depth_lock:
            if depth > self.longest_queue_size:
                self.longest_queue_size = depth
        return depth

    def _consume(self) -> None:
        while True:
            task = self._queue.get()
            try:
                if task is None:
                    return
                self._handler(task)
            finally:
                self._queue.task_done()

    def shutdown(self, timeout: Optional[float] = None) -> None:
        # One stop signal per thread
        for _ in self._threads:
            self._queue.put(None)
        for thread in self._threads:
            thread.join(timeout)


class StagedPipelineExecutor:
    """Routes staged tasks between named pools until each one finishes."""

    def __init__(self, pool_sizes: Mapping[str, int]):
        self.pools: Dict[str, StagePool] = {
            name: StagePool(name, size, self._run) for name, size in pool_sizes.items()
        }
        self._done = threading.Condition()
        self._outstanding = 0
        self.completed: List[StagedTask] = []
        self.failed: List[StagedTask] = []
        self.stages_run = 0

    @property
    def longest_queue_size(self) -> int:
        return max((p.longest_queue_size for p in self.pools.values()), default=0)

    @property
    def outstanding(self) -> int:
        with self._done:
            return self._outstanding

    def seed(self, task: StagedTask, pool_name: str) -> None:
        """Start a new task on ``pool_name``."""
        with self._done:
            self._outstanding += 1
        try:
            self._submit(task, pool_name)
        except KeyError:
            self._retire(task, failed=True)
            raise

    def _submit(self, task: StagedTask, pool_name: str) -> None:
        pool = self.pools[pool_name]
        depth = pool.submit(task)
        logger.debug(f"Queued {task} on {pool_name} (depth {depth})")

    def _run(self, task: StagedTask) -> None:
        try:
            task.begin_stage()
        except ConcurrentStageError as e:
            # The stage already running owns the task; do not retire it twice
            logger.error(f"{e}")
            return

        next_pool: Optional[str] = None
        failed = False
        try:
            next_pool = task.run_stage()
        except Exception as e:
            failed = True
            logger.error(f"{task.task_id} failed in stage {task.stage}: {e}", exc_info=True)
        finally:
            task.end_stage()
            with self._done:
                self.stages_run += 1

        if failed or next_pool is None:
            self._retire(task, failed)
            return
        try:
            self._submit(task, next_pool)
        except KeyError:
            logger.error(f"{task.task_id}: unknown pool {next_pool}")
            self._retire(task, failed=True)

    def _retire(self, task: StagedTask, failed: bool) -> None:
        with self._done:
            (self.failed if failed else self.completed).append(task)
            self._outstanding -= 1
            if self._outstanding == 0:
                self._done.notify_all()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until every seeded task finished; False on timeout."""
        with self._done:
            return self._done.wait_for(lambda: self._outstanding == 0, timeout)

    def shutdown(self, timeout: Optional[float] = None) -> None:
        for pool in self.pools.values():
            pool.shutdown(timeout)

    def run(self, tasks: List[StagedTask], seed_pool: str, timeout: Optional[float] = None) -> bool:
        """Seed every task, wait for them to drain and stop the pools."""
        try:
            for task in tasks:
                self.seed(task, seed_pool)
            drained = self.wait(timeout)
            if not drained:
                logger.warning(f"Pipeline did not drain within {timeout}s: {self.outstanding} tasks left")
            return drained
        except KeyboardInterrupt:
            logger.warning(f"Interrupted while draining the pipeline: {self.outstanding} tasks left")
            return False
        finally:
            self.shutdown()
