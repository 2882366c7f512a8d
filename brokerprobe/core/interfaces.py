"""
Collaborator interfaces consumed by the prober core.

The broker client library, topology discovery and the metrics transport
live outside this package. The core only talks to them through these
narrow protocols.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol

from brokerprobe.core.model import TopologySnapshot
from brokerprobe.datastructures.type_aliases import (
    ClusterName,
    EncodedMetricKey,
    PartitionId,
    TopicName,
)


class TopologySource(Protocol):
    """Live view of cluster topology, scoped to one round."""

    def list_all_topic_partitions(self) -> TopologySnapshot: ...

    def close(self) -> None: ...


type TopologyFactory = Callable[[], TopologySource]


class PartitionOperation(Protocol):
    """One bounded operation against a single partition.

    Returning normally means success; raising means the partition is
    unavailable. The return value is ignored.
    """

    def __call__(self, topic: TopicName, partition_id: PartitionId) -> Any: ...


class BrokerClient(Protocol):
    """Message-broker client exposing one liveness operation per role."""

    def read_one(self, topic: TopicName, partition_id: PartitionId) -> Any: ...

    def write_one(self, topic: TopicName, partition_id: PartitionId) -> Any: ...

    def describe_partition(
        self, topic: TopicName, partition_id: PartitionId
    ) -> Any: ...


class MetricsReporter(Protocol):
    """Transport that ships a registry snapshot somewhere."""

    def report(
        self, cluster_name: ClusterName, snapshot: Mapping[EncodedMetricKey, Any]
    ) -> None: ...
