"""
Multi-level latency aggregation.

A ``LatencyAggregator`` lives for one metrics session and owns sliding
window histograms at three granularities:

- global: one window sized to every partition assigned to this instance
- topic: one window per topic, sized to that topic's partition count
- partition: one window of size 1 per partition (latest probe only)

Windows are resized at the start of every round, so the global histogram
always describes roughly one full sweep of the local shard.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from threading import RLock

from brokerprobe.core.model import (
    ProbeFailure,
    ProbeResult,
    TopicMetadata,
    TopicPartition,
    availability_ratio,
)
from brokerprobe.datastructures.sliding_window import (
    HistogramSnapshot,
    SlidingWindowHistogram,
)
from brokerprobe.datastructures.type_aliases import (
    ElapsedMilliseconds,
    PartitionId,
    TopicName,
)

PARTITION_WINDOW_SIZE = 1


@dataclass(slots=True)
class LatencyAggregator:
    prefix: str
    _global: SlidingWindowHistogram = field(
        default_factory=lambda: SlidingWindowHistogram(1), init=False
    )
    _topics: dict[TopicName, SlidingWindowHistogram] = field(
        default_factory=dict, init=False
    )
    _partitions: dict[TopicPartition, SlidingWindowHistogram] = field(
        default_factory=dict, init=False
    )
    _try_count: int = field(default=0, init=False)
    _fail_count: int = field(default=0, init=False)
    _lock: RLock = field(default_factory=RLock, init=False)

    def size_windows(self, assignment: Sequence[TopicMetadata]) -> None:
        """Fit window capacities to the partitions assigned for this round."""
        with self._lock:
            total = sum(topic.partition_count for topic in assignment)
            self._global.resize(max(1, total))
            for topic in assignment:
                self.topic_histogram(topic.topic).resize(
                    max(1, topic.partition_count)
                )

    def global_histogram(self) -> SlidingWindowHistogram:
        return self._global

    def topic_histogram(self, topic: TopicName) -> SlidingWindowHistogram:
        with self._lock:
            histogram = self._topics.get(topic)
            if histogram is None:
                histogram = SlidingWindowHistogram(1)
                self._topics[topic] = histogram
            return histogram

    def partition_histogram(
        self, topic: TopicName, partition_id: PartitionId
    ) -> SlidingWindowHistogram:
        key = TopicPartition(topic, partition_id)
        with self._lock:
            histogram = self._partitions.get(key)
            if histogram is None:
                histogram = SlidingWindowHistogram(PARTITION_WINDOW_SIZE)
                self._partitions[key] = histogram
            return histogram

    def record_global(self, elapsed_ms: ElapsedMilliseconds) -> None:
        self._global.update(elapsed_ms)

    def record_topic(self, topic: TopicName, elapsed_ms: ElapsedMilliseconds) -> None:
        self.topic_histogram(topic).update(elapsed_ms)

    def record_partition(
        self,
        topic: TopicName,
        partition_id: PartitionId,
        elapsed_ms: ElapsedMilliseconds,
    ) -> None:
        self.partition_histogram(topic, partition_id).update(elapsed_ms)

    def record(self, result: ProbeResult) -> None:
        """Feed one probe result into all three levels and the counters."""
        tp = result.partition
        with self._lock:
            self._try_count += 1
            if isinstance(result, ProbeFailure):
                self._fail_count += 1
            self.record_global(result.elapsed_ms)
            self.record_topic(tp.topic, result.elapsed_ms)
            self.record_partition(tp.topic, tp.partition_id, result.elapsed_ms)

    @property
    def try_count(self) -> int:
        with self._lock:
            return self._try_count

    @property
    def fail_count(self) -> int:
        with self._lock:
            return self._fail_count

    @property
    def availability(self) -> float | None:
        """Availability over every probe recorded during this session."""
        with self._lock:
            return availability_ratio(self._try_count, self._fail_count)

    def topic_snapshots(
        self, topics: Sequence[TopicName]
    ) -> dict[TopicName, HistogramSnapshot]:
        return {topic: self.topic_histogram(topic).snapshot() for topic in topics}

    def partition_snapshots(
        self, partitions: Sequence[TopicPartition]
    ) -> dict[TopicPartition, HistogramSnapshot]:
        return {
            tp: self.partition_histogram(tp.topic, tp.partition_id).snapshot()
            for tp in partitions
        }
