"""Common utility functions."""

from __future__ import annotations

import time
import uuid
from pathlib import Path
from typing import Optional

import yaml


def generate_id(prefix: str = "") -> str:
    """Generate a unique identifier."""
    short_uuid = uuid.uuid4().hex
    if prefix:
        return f"{prefix}-{short_uuid}"
    return short_uuid


def now_us() -> int:
    """Monotonic clock in microseconds."""
    return time.perf_counter_ns() // 1000


def now_ns() -> int:
    """Monotonic clock in nanoseconds."""
    return time.perf_counter_ns()


def split_work(num_ops: int, num_workers: int) -> list[int]:
    """Split ``num_ops`` across ``num_workers`` as evenly as possible.

    Sizes differ by at most one and sum to ``num_ops``. When there are more
    workers than operations the trailing workers get nothing.
    """
    if num_workers < 1:
        return []
    ops_per_worker = [0] * num_workers
    scheduled = 0
    idx = 0
    while scheduled < num_ops:
        ops_per_worker[idx] = max(1, (num_ops - scheduled) // (num_workers - idx))
        scheduled += ops_per_worker[idx]
        idx += 1
    return ops_per_worker


def ensure_dir(path: str | Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def load_yaml(path: str | Path) -> dict:
    """Load a YAML file."""
    with open(path, 'r') as f:
        return yaml.safe_load(f) or {}


def format_duration_ms(elapsed_ms: float) -> str:
    """Format milliseconds to a human-readable duration."""
    if elapsed_ms < 1000:
        return f"{elapsed_ms:.1f}ms"
    seconds = elapsed_ms / 1000
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {seconds - minutes * 60:.1f}s"


class Timer:
    """Simple context manager for timing code blocks on the monotonic clock."""

    def __init__(self):
        self.start_us: Optional[int] = None
        self.end_us: Optional[int] = None

    def __enter__(self):
        self.start_us = now_us()
        return self

    def __exit__(self, *args):
        self.end_us = now_us()

    @property
    def elapsed_us(self) -> int:
        if self.start_us is None:
            return 0
        end = self.end_us if self.end_us is not None else now_us()
        return end - self.start_us

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed_us / 1000
