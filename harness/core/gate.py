"""Single mutual-exclusion gate in front of server calls."""

from __future__ import annotations

import threading
from typing import Callable, TypeVar

T = TypeVar("T")


class ServerGate:
    """Funnel calls through one lock, emulating a fixed-size dispatch pool.

    Tracks how many callers are waiting at the gate and the largest number
    ever seen waiting at once.
    """

    def __init__(self):
        self._mutex = threading.Lock()
        self._counter_lock = threading.Lock()
        self._waiting = 0
        self._longest_wait = 0

    @property
    def waiting(self) -> int:
        return self._waiting

    @property
    def longest_wait(self) -> int:
        return self._longest_wait

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        with self._counter_lock:
            self._waiting += 1
            if self._longest_wait < self._waiting:
                self._longest_wait = self._waiting
        with self._mutex:
            with self._counter_lock:
                self._waiting -= 1
            return fn(*args, **kwargs)
