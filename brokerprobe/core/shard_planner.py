"""
Deterministic topic sharding across prober service instances.

Every instance sees the same ordered peer list and the same ordered topic
list, and keeps the topics whose index in the *full* topic list satisfies
``index % len(peers) == peers.index(self)``. Sharding is per topic: all
partitions of a topic go to the same instance.
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from brokerprobe.core.errors import ShardConfigurationError
from brokerprobe.core.model import TopicMetadata, TopologySnapshot
from brokerprobe.datastructures.type_aliases import ServiceAddress

shard_log = logger


class ShardPlanner:
    """Pure function object computing this instance's shard of the topology."""

    def local_index(
        self, peers: Sequence[ServiceAddress], self_address: ServiceAddress
    ) -> int:
        if not peers:
            return 0
        if len(set(peers)) != len(peers):
            raise ShardConfigurationError(f"Peer list contains duplicates: {peers}")
        try:
            return list(peers).index(self_address)
        except ValueError:
            raise ShardConfigurationError(
                f"Service address {self_address!r} is not in the peer list {list(peers)}"
            ) from None

    def plan(
        self,
        topology: TopologySnapshot,
        peers: Sequence[ServiceAddress],
        self_address: ServiceAddress,
    ) -> list[TopicMetadata]:
        """Topics of ``topology`` assigned to ``self_address``.

        An empty peer list degenerates to a single shard holding every topic.
        """
        local_index = self.local_index(peers, self_address)
        shard_count = max(1, len(peers))
        assigned = [
            topic
            for index, topic in enumerate(topology.topics)
            if index % shard_count == local_index
        ]
        shard_log.debug(
            "Shard {}/{} for {}: {} of {} topics",
            local_index,
            shard_count,
            self_address,
            len(assigned),
            len(topology),
        )
        return assigned

    def plan_all(
        self, topology: TopologySnapshot, peers: Sequence[ServiceAddress]
    ) -> dict[ServiceAddress, list[TopicMetadata]]:
        """Assignment of every peer, keyed by peer address in peer order."""
        if not peers:
            raise ShardConfigurationError("Cannot plan a cluster without peers")
        return {peer: self.plan(topology, peers, peer) for peer in peers}
