"""Generation of hierarchical file and directory names."""

from __future__ import annotations

import threading
from typing import List


class NameInputGenerator:
    """Produces unique paths under ``base_dir``.

    At most ``files_per_dir`` entries are placed in a directory. Directory
    ``n`` is nested by writing ``n`` in base ``files_per_dir``, so the tree
    stays shallow and every generator with the same parameters yields the
    same sequence of relative names.
    """

    def __init__(self, base_dir: str, files_per_dir: int):
        if files_per_dir < 1:
            raise ValueError("files_per_dir must be positive")
        self.base_dir = base_dir.rstrip("/")
        self.files_per_dir = files_per_dir
        self._lock = threading.Lock()
        self._file_count = 0

    def reset(self) -> None:
        with self._lock:
            self._file_count = 0

    def _dir_path(self, dir_idx: int) -> str:
        parts = []
        while True:
            parts.append(f"dir{dir_idx % self.files_per_dir}")
            dir_idx //= self.files_per_dir
            if dir_idx == 0:
                break
        return "/".join(reversed(parts))

    def next_name(self, prefix: str) -> str:
        with self._lock:
            idx = self._file_count
            self._file_count += 1
        dir_idx = idx // self.files_per_dir
        return f"{self.base_dir}/{self._dir_path(dir_idx)}/{prefix}{idx}"

    def generate(self, ops_per_worker: List[int], prefix: str = "ThroughputBench") -> List[List[str]]:
        """Pre-generate one ordered list of names per worker."""
        return [[self.next_name(prefix) for _ in range(ops)] for ops in ops_per_worker]
