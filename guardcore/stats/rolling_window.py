# guardcore/stats/rolling_window.py
from __future__ import annotations
from collections import deque
from typing import Deque, Iterable, List, Optional
import numpy as np

class RollingWindow:
    """
    Fixed-capacity FIFO of numeric samples.
    - push is O(1); the oldest sample is evicted once full
    - mean/stddev over an empty window are 0.0
    - stddev is the population deviation (divide by N) and 0.0 below 2 samples
    """
    def __init__(self, capacity: int = 200):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._buf: Deque[float] = deque(maxlen=capacity)

    def push(self, value: float) -> None:
        self._buf.append(float(value))

    def extend(self, values: Iterable[float]) -> None:
        # chronological input; only the newest `capacity` survive
        for v in values:
            self.push(v)

    def clear(self) -> None:
        self._buf.clear()

    def values(self) -> List[float]:
        return list(self._buf)

    def is_full(self, capacity: Optional[int] = None) -> bool:
        return len(self._buf) >= (self.capacity if capacity is None else capacity)

    def oldest(self) -> Optional[float]:
        return self._buf[0] if self._buf else None

    def mean(self) -> float:
        if not self._buf:
            return 0.0
        return float(np.fromiter(self._buf, dtype=float, count=len(self._buf)).mean())

    def stddev(self, mean: Optional[float] = None) -> float:
        n = len(self._buf)
        if n < 2:
            return 0.0
        arr = np.fromiter(self._buf, dtype=float, count=n)
        m = float(arr.mean()) if mean is None else mean
        return float(np.sqrt(((arr - m) ** 2).sum() / n))

    def __len__(self) -> int:
        return len(self._buf)

    def __iter__(self):
        return iter(list(self._buf))
