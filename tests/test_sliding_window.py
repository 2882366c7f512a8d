import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from hypothesis import given
from hypothesis import strategies as st

from brokerprobe.datastructures.sliding_window import (
    HistogramSnapshot,
    SlidingWindowHistogram,
)


class TestSlidingWindowHistogram:
    def test_oldest_value_evicted_first(self):
        histogram = SlidingWindowHistogram(3)
        for value in [10, 20, 30, 40]:
            histogram.update(value)

        assert histogram.values() == [20, 30, 40]
        assert len(histogram) == 3
        assert histogram.count == 4

    def test_window_of_one_keeps_latest_only(self):
        histogram = SlidingWindowHistogram(1)
        histogram.update(5)
        histogram.update(60007)

        assert histogram.values() == [60007]

    def test_invalid_capacity_rejected(self):
        with pytest.raises(ValueError, match="at least 1"):
            SlidingWindowHistogram(0)

        histogram = SlidingWindowHistogram(2)
        with pytest.raises(ValueError, match="at least 1"):
            histogram.resize(0)

    def test_non_numeric_value_rejected(self):
        with pytest.raises(TypeError):
            SlidingWindowHistogram(2).update("fast")  # type: ignore[arg-type]

    def test_resize_keeps_newest_values(self):
        histogram = SlidingWindowHistogram(5)
        for value in range(5):
            histogram.update(value)

        histogram.resize(2)
        assert histogram.values() == [3, 4]

        histogram.resize(4)
        histogram.update(5)
        histogram.update(6)
        assert histogram.values() == [3, 4, 5, 6]

    def test_empty_snapshot(self):
        snapshot = SlidingWindowHistogram(3).snapshot()
        assert snapshot == HistogramSnapshot.empty()
        assert snapshot.size == 0

    def test_snapshot_statistics(self):
        histogram = SlidingWindowHistogram(5)
        for value in [50, 10, 40, 20, 30]:
            histogram.update(value)

        snapshot = histogram.snapshot()
        assert snapshot.size == 5
        assert snapshot.min == 10.0
        assert snapshot.max == 50.0
        assert snapshot.mean == 30.0
        assert snapshot.median == 30.0
        assert snapshot.p75 == 40.0
        assert snapshot.p99 == pytest.approx(49.6)
        assert snapshot.to_dict()["count"] == 5

    def test_concurrent_updates_respect_capacity(self):
        histogram = SlidingWindowHistogram(50)
        start = threading.Event()

        def writer(offset: int) -> None:
            start.wait()
            for i in range(200):
                histogram.update(offset + i)

        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = [pool.submit(writer, n * 1000) for n in range(4)]
            start.set()
            for future in futures:
                future.result(timeout=10)

        assert len(histogram) == 50
        assert histogram.count == 800


@given(
    capacity=st.integers(min_value=1, max_value=50),
    values=st.lists(st.integers(min_value=0, max_value=120000), max_size=200),
)
def test_window_retains_last_capacity_values(capacity: int, values: list[int]):
    histogram = SlidingWindowHistogram(capacity)
    for value in values:
        histogram.update(value)

    assert histogram.values() == values[-capacity:]
    assert histogram.count == len(values)
