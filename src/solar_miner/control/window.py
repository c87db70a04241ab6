"""Sliding window of recent battery current samples."""

from __future__ import annotations

from collections import deque


class ChargeWindow:
    """Fixed-capacity FIFO of battery current samples (amps).

    Damps instantaneous current noise so the fleet is only started on a
    demonstrated sustained surplus, not a transient spike.
    """

    def __init__(self, size: int = 6) -> None:
        if size < 1:
            raise ValueError("window size must be at least 1")
        self._samples: deque[float] = deque(maxlen=size)

    @property
    def capacity(self) -> int:
        return self._samples.maxlen or 0

    def __len__(self) -> int:
        return len(self._samples)

    def record(self, sample: float) -> None:
        """Append a sample, evicting the oldest once at capacity."""
        self._samples.append(float(sample))

    def is_full(self) -> bool:
        return len(self._samples) == self.capacity

    def average(self) -> float:
        """Arithmetic mean of the current contents.

        Raises:
            ValueError: if no samples have been recorded.
        """
        if not self._samples:
            raise ValueError("average of an empty charge window")
        return sum(self._samples) / len(self._samples)

    def samples(self) -> list[float]:
        return list(self._samples)
