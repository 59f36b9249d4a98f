"""Thread-safe latency statistic with histogram and CDF rendering."""

from __future__ import annotations

import logging
import sys
import threading
from collections import Counter
from pathlib import Path
from typing import List, Tuple

from common.models.metrics import StatSummary

logger = logging.getLogger(__name__)

# Sentinels until the first sample arrives; count == 0 means "no data".
MIN_SENTINEL = sys.maxsize
MAX_SENTINEL = -sys.maxsize - 1


class StatAccumulator:
    """Online min/max/sum/count over every recorded sample.

    All samples are kept so that an exact frequency table and CDF can be
    produced at the end of a run. ``add_value`` may be called concurrently
    from any number of producer threads.
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._data: list[int] = []
        self._min = MIN_SENTINEL
        self._max = MAX_SENTINEL
        self._sum = 0
        self._count = 0

    def add_value(self, value: int) -> None:
        """Record one sample."""
        with self._lock:
            self._data.append(value)
            if value < self._min:
                self._min = value
            if value > self._max:
                self._max = value
            self._sum += value
            self._count += 1

    @property
    def min(self) -> int:
        return self._min

    @property
    def max(self) -> int:
        return self._max

    @property
    def sum(self) -> int:
        return self._sum

    @property
    def count(self) -> int:
        return self._count

    @property
    def avg(self) -> float:
        return self._sum / self._count if self._count > 0 else 0.0

    def summary(self) -> StatSummary:
        """Snapshot of the running statistic."""
        with self._lock:
            if self._count == 0:
                return StatSummary(name=self.name)
            return StatSummary(
                name=self.name,
                min=self._min,
                max=self._max,
                avg=self._sum / self._count,
                sum=self._sum,
                count=self._count,
            )

    def samples(self) -> List[int]:
        with self._lock:
            return list(self._data)

    def frequency_table(self) -> List[Tuple[int, int]]:
        """Exact count per distinct value, ascending by value."""
        return sorted(Counter(self.samples()).items())

    def cdf(self) -> List[Tuple[int, float]]:
        """Cumulative fractions, one point per sample, starting at (0, 0.0)."""
        freq = self.frequency_table()
        total = sum(ct for _, ct in freq)
        points = [(0, 0.0)]
        if total == 0:
            return points
        increment = 1.0 / total
        rolling = 0.0
        for value, ct in freq:
            for _ in range(ct):
                rolling += increment
                points.append((value, rolling))
        return points

    def cdf_data_string(self) -> str:
        return "".join(f"{value} {fraction}\n" for value, fraction in self.cdf())

    def __str__(self) -> str:
        return (
            f"min = {self._min}\n"
            f"max = {self._max}\n"
            f"avg = {self.avg}\n"
            f"sum = {self._sum}\n"
            f"count = {self._count}\n"
        )

    def write_summary(self, path: str | Path, append: bool = True) -> bool:
        """Write the ``--- <name> stats ---`` section."""
        return self._write(path, append, f"--- {self.name} stats ---\n{self}")

    def write_cdf(self, path: str | Path) -> bool:
        """Overwrite ``path`` with the CDF data lines."""
        return self._write(path, False, self.cdf_data_string())

    def write_out(self, path: str | Path, append: bool = True) -> bool:
        """Write both the stats and the cdf sections."""
        body = (
            f"--- {self.name} stats ---\n{self}"
            f"--- {self.name} cdf ---\n{self.cdf_data_string()}"
        )
        return self._write(path, append, body)

    def _write(self, path: str | Path, append: bool, body: str) -> bool:
        try:
            path = Path(path)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a" if append else "w") as f:
                f.write(body)
            return True
        except OSError as e:
            logger.error(f"Failed to write {self.name} stats to {path}: {e}")
            return False
