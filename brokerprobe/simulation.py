"""
In-memory collaborators for demos and tests.

``StaticTopologySource`` serves a fixed topology and
``SimulatedBrokerClient`` answers partition operations with configurable
latency and failures, so the whole prober can run without a broker.
"""

from __future__ import annotations

import json
import random
import threading
import time
from collections.abc import Iterable, Mapping
from pathlib import Path

from brokerprobe.core.model import TopicPartition, TopologySnapshot
from brokerprobe.datastructures.type_aliases import PartitionId, TopicName


class StaticTopologySource:
    """Topology collaborator backed by a fixed ``{topic: partitions}`` mapping."""

    def __init__(
        self, topics: Mapping[TopicName, int | Iterable[PartitionId]]
    ) -> None:
        self.snapshot = TopologySnapshot.from_mapping(topics)
        self.fetches = 0
        self.closed = 0

    @classmethod
    def from_file(cls, path: Path | str) -> StaticTopologySource:
        data = json.loads(Path(path).read_text())
        if not isinstance(data, dict):
            raise ValueError(f"Topology file {path} must contain a JSON object")
        return cls(data)

    def list_all_topic_partitions(self) -> TopologySnapshot:
        self.fetches += 1
        return self.snapshot

    def close(self) -> None:
        self.closed += 1

    def factory(self) -> StaticTopologySource:
        """Use as a topology factory: every round gets this same source."""
        return self


class SimulatedPartitionError(Exception):
    pass


class SimulatedBrokerClient:
    """Broker client whose partitions fail deterministically or at random."""

    def __init__(
        self,
        *,
        failure_rate: float = 0.0,
        latency_ms: float = 0.0,
        failing: Iterable[TopicPartition] = (),
        seed: int | None = None,
    ) -> None:
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be between 0.0 and 1.0")
        self.failure_rate = failure_rate
        self.latency_ms = latency_ms
        self.failing = set(failing)
        self._random = random.Random(seed)
        self._lock = threading.Lock()
        self.calls: list[tuple[str, TopicPartition]] = []

    def _operate(self, op: str, topic: TopicName, partition_id: PartitionId) -> None:
        tp = TopicPartition(topic, partition_id)
        with self._lock:
            self.calls.append((op, tp))
            roll = self._random.random()
        if self.latency_ms > 0:
            time.sleep(self.latency_ms / 1000.0)
        if tp in self.failing or roll < self.failure_rate:
            raise SimulatedPartitionError(f"{op} failed on {tp}")

    def read_one(self, topic: TopicName, partition_id: PartitionId) -> None:
        self._operate("read", topic, partition_id)

    def write_one(self, topic: TopicName, partition_id: PartitionId) -> None:
        self._operate("write", topic, partition_id)

    def describe_partition(self, topic: TopicName, partition_id: PartitionId) -> None:
        self._operate("describe", topic, partition_id)


def parse_partition(spec: str) -> TopicPartition:
    """Parse ``topic:partition`` (the last colon separates the partition)."""
    topic, sep, partition = spec.rpartition(":")
    if not sep or not topic:
        raise ValueError(f"Expected topic:partition, got {spec!r}")
    return TopicPartition(topic, int(partition))
