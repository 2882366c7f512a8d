"""
Core data model for the availability prober.

Topology values (``TopicPartition``, ``TopicMetadata``, ``TopologySnapshot``)
are immutable and compared by value. Probe results are an explicit
success/failure union so that failures flow through the aggregation path
as data instead of exceptions.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from brokerprobe.core.errors import ProbeError
from brokerprobe.datastructures.sliding_window import HistogramSnapshot
from brokerprobe.datastructures.type_aliases import (
    ElapsedMilliseconds,
    EncodedMetricKey,
    MetricName,
    MetricScope,
    PartitionId,
    PhaseNumber,
    TopicName,
)

ALL_SCOPE: MetricScope = "all"


class WorkerRole(Enum):
    """Worker roles that exercise the cluster in parallel."""

    CONSUMER = "consumer"
    PRODUCER = "producer"
    METADATA = "metadata"

    @property
    def metric_prefix(self) -> str:
        return _ROLE_PREFIXES[self]

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


_ROLE_PREFIXES = {
    WorkerRole.CONSUMER: "Consumer",
    WorkerRole.PRODUCER: "Producer",
    WorkerRole.METADATA: "MetaData",
}


@dataclass(frozen=True, slots=True)
class TopicPartition:
    topic: TopicName
    partition_id: PartitionId

    def __str__(self) -> str:
        return f"{self.topic}-{self.partition_id}"


@dataclass(frozen=True, slots=True)
class TopicMetadata:
    """One topic and its ordered partition ids."""

    topic: TopicName
    partitions: tuple[PartitionId, ...] = ()

    def __post_init__(self) -> None:
        if not self.topic:
            raise ValueError("Topic name cannot be empty")

    @property
    def partition_count(self) -> int:
        return len(self.partitions)

    def topic_partitions(self) -> list[TopicPartition]:
        return [TopicPartition(self.topic, pid) for pid in self.partitions]


@dataclass(frozen=True, slots=True)
class TopologySnapshot:
    """Ordered topics of the cluster as observed at one instant."""

    topics: tuple[TopicMetadata, ...] = ()

    @classmethod
    def from_mapping(
        cls, topics: Mapping[TopicName, int | Iterable[PartitionId]]
    ) -> TopologySnapshot:
        """Build a snapshot from ``{topic: partition_count | partition_ids}``.

        Mapping order is preserved and defines the topic index.
        """
        entries = []
        for name, partitions in topics.items():
            if isinstance(partitions, int):
                ids: tuple[PartitionId, ...] = tuple(range(partitions))
            else:
                ids = tuple(int(p) for p in partitions)
            entries.append(TopicMetadata(name, ids))
        return cls(tuple(entries))

    @property
    def topic_names(self) -> list[TopicName]:
        return [t.topic for t in self.topics]

    @property
    def partition_count(self) -> int:
        return sum(t.partition_count for t in self.topics)

    def __iter__(self) -> Iterator[TopicMetadata]:
        return iter(self.topics)

    def __len__(self) -> int:
        return len(self.topics)


class MetricKind(Enum):
    LATENCY = "Latency"
    TOPIC_LATENCY = "Topic.Latency"
    PARTITION_LATENCY = "Partition.Latency"
    AVAILABILITY = "Availability"


@dataclass(frozen=True, slots=True)
class MetricKey:
    """Registry key of one metric instrument.

    The encoded form is compact JSON ``{"name": ..., "tag": ...}`` so that
    the registry and any downstream reporter agree on a stable string.
    """

    kind: MetricKind
    scope: MetricScope = ALL_SCOPE
    prefix: str = WorkerRole.CONSUMER.metric_prefix

    @classmethod
    def latency(cls, prefix: str) -> MetricKey:
        return cls(MetricKind.LATENCY, ALL_SCOPE, prefix)

    @classmethod
    def topic_latency(cls, prefix: str, topic: TopicName) -> MetricKey:
        return cls(MetricKind.TOPIC_LATENCY, topic, prefix)

    @classmethod
    def partition_latency(
        cls, prefix: str, topic: TopicName, partition_id: PartitionId
    ) -> MetricKey:
        return cls(MetricKind.PARTITION_LATENCY, f"{topic}-{partition_id}", prefix)

    @classmethod
    def availability(cls, prefix: str) -> MetricKey:
        return cls(MetricKind.AVAILABILITY, ALL_SCOPE, prefix)

    @property
    def name(self) -> MetricName:
        return f"{self.prefix}.{self.kind.value}"

    def encode(self) -> EncodedMetricKey:
        return json.dumps({"name": self.name, "tag": self.scope}, separators=(",", ":"))

    def __str__(self) -> str:
        return self.encode()


@dataclass(frozen=True, slots=True)
class ProbeSuccess:
    partition: TopicPartition
    elapsed_ms: ElapsedMilliseconds

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class ProbeFailure:
    """Failed probe; ``elapsed_ms`` already includes the failure penalty."""

    partition: TopicPartition
    elapsed_ms: ElapsedMilliseconds
    error: ProbeError

    @property
    def ok(self) -> bool:
        return False


type ProbeResult = ProbeSuccess | ProbeFailure


class RoundState(Enum):
    IDLE = "idle"
    PLANNING = "planning"
    PROBING = "probing"
    REPORTING = "reporting"
    DONE = "done"


@dataclass(slots=True)
class RoundOutcome:
    """Result of one measurement round for one role."""

    role: WorkerRole
    phase: PhaseNumber | None = None
    total_topics: int = 0
    assigned_topics: list[TopicName] = field(default_factory=list)
    try_count: int = 0
    fail_count: int = 0
    failures: list[ProbeFailure] = field(default_factory=list)
    global_latency: HistogramSnapshot = field(default_factory=HistogramSnapshot.empty)
    topic_latency: dict[TopicName, HistogramSnapshot] = field(default_factory=dict)
    partition_latency: dict[TopicPartition, HistogramSnapshot] = field(
        default_factory=dict
    )
    registered_metrics: list[EncodedMetricKey] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return self.try_count - self.fail_count

    @property
    def availability(self) -> float | None:
        return availability_ratio(self.try_count, self.fail_count)

    def record(self, result: ProbeResult) -> None:
        self.try_count += 1
        if isinstance(result, ProbeFailure):
            self.fail_count += 1
            self.failures.append(result)


def partitions_of(topics: Sequence[TopicMetadata]) -> list[TopicPartition]:
    return [tp for topic in topics for tp in topic.topic_partitions()]


def availability_ratio(try_count: int, fail_count: int) -> float | None:
    """``(tries - fails) / tries``, or ``None`` when nothing was tried."""
    if try_count <= 0:
        return None
    return (try_count - fail_count) / try_count


@dataclass(frozen=True, slots=True)
class MetricFlags:
    """Per-category switches deciding which instruments get registered."""

    latency: bool = True
    topic_latency: bool = True
    partition_latency: bool = True
    availability: bool = True
