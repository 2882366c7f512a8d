"""
Fixed-capacity sliding-window histogram.

The histogram keeps only the most recent ``capacity`` samples. Older
samples are evicted first, so the distribution always describes the last
window of measurements rather than unbounded history. All operations are
guarded by an RLock so several worker threads may update and read the
same instrument.
"""

from collections import deque
from dataclasses import dataclass, field
from threading import RLock


@dataclass(frozen=True, slots=True)
class HistogramSnapshot:
    """Immutable point-in-time view of a histogram window."""

    size: int
    count: int
    min: float
    max: float
    mean: float
    median: float
    p75: float
    p95: float
    p99: float

    @classmethod
    def empty(cls, count: int = 0) -> "HistogramSnapshot":
        return cls(
            size=0,
            count=count,
            min=0.0,
            max=0.0,
            mean=0.0,
            median=0.0,
            p75=0.0,
            p95=0.0,
            p99=0.0,
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "size": self.size,
            "count": self.count,
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
            "median": self.median,
            "p75": self.p75,
            "p95": self.p95,
            "p99": self.p99,
        }


def _percentile(ordered: list[float], p: float) -> float:
    """Linear interpolation percentile over an already sorted list."""
    n = len(ordered)
    if p <= 0:
        return ordered[0]
    if p >= 100:
        return ordered[-1]
    index = (p / 100.0) * (n - 1)
    lower = int(index)
    upper = min(lower + 1, n - 1)
    weight = index - lower
    return (1 - weight) * ordered[lower] + weight * ordered[upper]


@dataclass(slots=True)
class SlidingWindowHistogram:
    """
    Histogram backed by a sliding-window reservoir of fixed capacity.

    ``update`` is O(1); ``snapshot`` sorts the window and is O(n log n)
    in the window size, which is bounded by ``capacity``.
    """

    capacity: int
    _values: deque[float] = field(default_factory=deque, init=False)
    _count: int = field(default=0, init=False)
    _lock: RLock = field(default_factory=RLock, init=False)

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError("Window capacity must be at least 1")

    def update(self, value: float) -> None:
        """Record a sample, evicting the oldest one when the window is full."""
        if not isinstance(value, int | float):
            raise TypeError("Value must be numeric")

        with self._lock:
            if len(self._values) >= self.capacity:
                self._values.popleft()
            self._values.append(value)
            self._count += 1

    def resize(self, capacity: int) -> None:
        """Change the window capacity, keeping the newest samples."""
        if capacity < 1:
            raise ValueError("Window capacity must be at least 1")

        with self._lock:
            self.capacity = capacity
            while len(self._values) > capacity:
                self._values.popleft()

    def values(self) -> list[float]:
        """Samples currently in the window, oldest first."""
        with self._lock:
            return list(self._values)

    @property
    def count(self) -> int:
        """Total number of samples ever recorded (not just the window)."""
        with self._lock:
            return self._count

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def snapshot(self) -> HistogramSnapshot:
        with self._lock:
            if not self._values:
                return HistogramSnapshot.empty(self._count)
            ordered = sorted(float(v) for v in self._values)
            count = self._count

        return HistogramSnapshot(
            size=len(ordered),
            count=count,
            min=ordered[0],
            max=ordered[-1],
            mean=sum(ordered) / len(ordered),
            median=_percentile(ordered, 50.0),
            p75=_percentile(ordered, 75.0),
            p95=_percentile(ordered, 95.0),
            p99=_percentile(ordered, 99.0),
        )
