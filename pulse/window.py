import math
from collections import deque
from typing import List


class RollingWindow:
    """
    Fixed size FIFO of latency samples.

    Once `capacity` samples are stored, every new sample evicts the oldest
    one. Statistics are computed over the retained samples only and are `0.0`
    while the window is empty.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be a positive integer")
        self.capacity = capacity
        self._samples = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._samples)

    def put(self, sample: float):
        self._samples.append(sample)

    def samples(self) -> List[float]:
        return list(self._samples)

    def mean(self) -> float:
        if not self._samples:
            return 0.0
        mean = math.fsum(self._samples) / len(self._samples)
        # Rounding may push the mean of equal samples just outside [min, max]
        return min(max(mean, self.min()), self.max())

    def min(self) -> float:
        if not self._samples:
            return 0.0
        return min(self._samples)

    def max(self) -> float:
        if not self._samples:
            return 0.0
        return max(self._samples)
