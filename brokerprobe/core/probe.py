"""Single-partition probe execution."""

from __future__ import annotations

import time
from collections.abc import Callable

from loguru import logger

from brokerprobe.core.errors import ProbeError
from brokerprobe.core.interfaces import PartitionOperation
from brokerprobe.core.model import (
    ProbeFailure,
    ProbeResult,
    ProbeSuccess,
    TopicPartition,
)
from brokerprobe.datastructures.type_aliases import PartitionId, TopicName

probe_log = logger

FAILURE_PENALTY_MS = 60000


def monotonic_ms() -> int:
    return time.monotonic_ns() // 1_000_000


class ProbeExecutor:
    """Runs one collaborator operation against one partition and times it.

    Any exception from the operation becomes a ``ProbeFailure`` whose elapsed
    time is the measured delta plus ``failure_penalty_ms``, so failures skew
    latency upward instead of disappearing from the histograms.
    """

    def __init__(
        self,
        operation: PartitionOperation,
        *,
        failure_penalty_ms: int = FAILURE_PENALTY_MS,
        clock: Callable[[], int] = monotonic_ms,
    ) -> None:
        self.operation = operation
        self.failure_penalty_ms = failure_penalty_ms
        self.clock = clock

    def probe(self, topic: TopicName, partition_id: PartitionId) -> ProbeResult:
        partition = TopicPartition(topic, partition_id)
        start = self.clock()
        try:
            self.operation(topic, partition_id)
        except Exception as e:
            elapsed = self.clock() - start + self.failure_penalty_ms
            probe_log.error(
                "Error probing Topic: {}; Partition: {}; Exception: {!r}",
                topic,
                partition_id,
                e,
            )
            return ProbeFailure(partition, elapsed, ProbeError(topic, partition_id, e))
        return ProbeSuccess(partition, self.clock() - start)
