from __future__ import annotations

import math
from typing import Iterable

import numpy as np


class RollingWindow:
    """
    Fixed-capacity circular buffer of float samples, per symbol.

    - push() is O(1): overwrite at head, advance head, grow size until full.
    - Once full, every push evicts the oldest sample (FIFO).
    - values() returns a copy in time order (oldest -> newest), so callers
      can hand it to metric functions without aliasing the live storage.

    Single writer: only the owning symbol stream pushes into a window.
    """
    __slots__ = ("capacity", "size", "head", "_buf")

    def __init__(self, capacity: int):
        if int(capacity) <= 0:
            raise ValueError("capacity must be >= 1")
        self.capacity = int(capacity)
        self.size = 0
        self.head = 0  # next write index
        self._buf = np.empty(self.capacity, dtype=np.float64)

    def __len__(self) -> int:
        return self.size

    @property
    def is_full(self) -> bool:
        return self.size == self.capacity

    def push(self, value: float) -> None:
        v = float(value)
        if not math.isfinite(v):
            raise ValueError(f"non-finite sample: {value!r}")
        i = self.head
        self._buf[i] = v
        self.head = (i + 1) % self.capacity
        if self.size < self.capacity:
            self.size += 1

    def extend(self, values: Iterable[float]) -> None:
        for v in values:
            self.push(v)

    def last(self) -> float | None:
        if self.size == 0:
            return None
        return float(self._buf[(self.head - 1) % self.capacity])

    def values(self) -> np.ndarray:
        """
        Snapshot of the window in time order.
        Not wrapped yet: a single slice [0..size). Wrapped: [head..cap) + [0..head).
        """
        if self.size < self.capacity:
            return self._buf[: self.size].copy()
        if self.head == 0:
            return self._buf.copy()
        return np.concatenate((self._buf[self.head :], self._buf[: self.head]))

    def clear(self) -> None:
        self.size = 0
        self.head = 0
