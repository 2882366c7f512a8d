"""
One measurement round: plan shards, probe, aggregate, register, report.

The round is a linear state machine ``IDLE -> PLANNING -> PROBING ->
REPORTING -> DONE``. Partition failures are absorbed while probing and
never change the terminal state. Only setup failures (no topology, bad
peer list) escape ``run_round``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from loguru import logger

from brokerprobe.core.errors import RoundSetupError, TopologyUnavailableError
from brokerprobe.core.interfaces import TopologyFactory, TopologySource
from brokerprobe.core.latency import LatencyAggregator
from brokerprobe.core.model import (
    MetricFlags,
    MetricKey,
    RoundOutcome,
    RoundState,
    TopicMetadata,
    TopologySnapshot,
    WorkerRole,
    availability_ratio,
    partitions_of,
)
from brokerprobe.core.probe import ProbeExecutor
from brokerprobe.core.registry import (
    AvailabilityGauge,
    MetricRegistrar,
    MetricsSession,
)
from brokerprobe.core.shard_planner import ShardPlanner
from brokerprobe.datastructures.type_aliases import PhaseNumber, ServiceAddress

round_log = logger

__all__ = ["RoundCoordinator", "availability_ratio"]

type PeerProvider = Callable[[], Sequence[ServiceAddress]]


class RoundCoordinator:
    """Drives one role's measurement rounds against the local shard."""

    def __init__(
        self,
        role: WorkerRole,
        topology_factory: TopologyFactory,
        executor: ProbeExecutor,
        *,
        self_address: ServiceAddress,
        peers: Sequence[ServiceAddress] | PeerProvider = (),
        flags: MetricFlags = MetricFlags(),
        planner: ShardPlanner | None = None,
    ) -> None:
        self.role = role
        self.topology_factory = topology_factory
        self.executor = executor
        self.self_address = self_address
        self.flags = flags
        self.planner = planner if planner is not None else ShardPlanner()
        if callable(peers):
            self._peer_provider: PeerProvider = peers
        else:
            static_peers = tuple(peers)
            self._peer_provider = lambda: static_peers
        self._state = RoundState.IDLE
        self.history: list[RoundState] = []

    @property
    def state(self) -> RoundState:
        return self._state

    @property
    def prefix(self) -> str:
        return self.role.metric_prefix

    def _transition(self, state: RoundState) -> None:
        self._state = state
        self.history.append(state)

    def run_round(
        self, session: MetricsSession, phase: PhaseNumber | None = None
    ) -> RoundOutcome:
        self._state = RoundState.IDLE
        self.history = [RoundState.IDLE]
        outcome = RoundOutcome(role=self.role, phase=phase)
        round_log.info("Starting {} latency round", self.role.display_name)

        source = self._open_topology()
        try:
            self._transition(RoundState.PLANNING)
            topology = self._fetch_topology(source)
            assigned = self.planner.plan(
                topology, self._peer_provider(), self.self_address
            )
            outcome.total_topics = len(topology)
            outcome.assigned_topics = [topic.topic for topic in assigned]
            round_log.info("Total topic metadata size: {}", len(topology))
            round_log.info(
                "Assigned topic metadata size in {}: {}",
                self.role.display_name,
                len(assigned),
            )

            self._transition(RoundState.PROBING)
            aggregator = session.aggregator(self.prefix)
            aggregator.size_windows(assigned)
            self._probe_all(assigned, aggregator, outcome)

            self._transition(RoundState.REPORTING)
            registrar = session.registrar()
            self._register_latency(assigned, aggregator, registrar)
            self._register_availability(outcome, registrar)
            outcome.registered_metrics = session.registry.names()
            self._capture_snapshots(assigned, aggregator, outcome)

            self._transition(RoundState.DONE)
        finally:
            self._close_topology(source)

        round_log.info(
            "Finished {} latency round: {}/{} probes failed",
            self.role.display_name,
            outcome.fail_count,
            outcome.try_count,
        )
        return outcome

    def _open_topology(self) -> TopologySource:
        try:
            return self.topology_factory()
        except RoundSetupError:
            raise
        except Exception as e:
            raise TopologyUnavailableError(
                f"Cannot connect to topology source: {e}"
            ) from e

    def _fetch_topology(self, source: TopologySource) -> TopologySnapshot:
        try:
            return source.list_all_topic_partitions()
        except RoundSetupError:
            raise
        except Exception as e:
            raise TopologyUnavailableError(f"Cannot list topic partitions: {e}") from e

    def _close_topology(self, source: TopologySource) -> None:
        try:
            source.close()
        except Exception as e:
            round_log.warning("Error closing topology source: {}", e)

    def _probe_all(
        self,
        assigned: Sequence[TopicMetadata],
        aggregator: LatencyAggregator,
        outcome: RoundOutcome,
    ) -> None:
        for topic in assigned:
            round_log.info("Reading from Topic: {};", topic.topic)
            for partition_id in topic.partitions:
                round_log.debug(
                    "Reading from Topic: {}; Partition: {};", topic.topic, partition_id
                )
                result = self.executor.probe(topic.topic, partition_id)
                outcome.record(result)
                aggregator.record(result)

    def _register_latency(
        self,
        assigned: Sequence[TopicMetadata],
        aggregator: LatencyAggregator,
        registrar: MetricRegistrar,
    ) -> None:
        registrar.ensure(
            MetricKey.latency(self.prefix),
            aggregator.global_histogram(),
            enabled=self.flags.latency,
        )
        for topic in assigned:
            registrar.ensure(
                MetricKey.topic_latency(self.prefix, topic.topic),
                aggregator.topic_histogram(topic.topic),
                enabled=self.flags.topic_latency,
            )
            for partition_id in topic.partitions:
                registrar.ensure(
                    MetricKey.partition_latency(self.prefix, topic.topic, partition_id),
                    aggregator.partition_histogram(topic.topic, partition_id),
                    enabled=self.flags.partition_latency,
                )

    def _register_availability(
        self, outcome: RoundOutcome, registrar: MetricRegistrar
    ) -> None:
        if not self.flags.availability:
            return
        if outcome.try_count == 0:
            round_log.debug("No partitions probed; skipping availability gauge")
            return
        gauge = registrar.ensure(
            MetricKey.availability(self.prefix), AvailabilityGauge()
        )
        if isinstance(gauge, AvailabilityGauge):
            gauge.update(outcome.try_count, outcome.success_count)

    def _capture_snapshots(
        self,
        assigned: Sequence[TopicMetadata],
        aggregator: LatencyAggregator,
        outcome: RoundOutcome,
    ) -> None:
        outcome.global_latency = aggregator.global_histogram().snapshot()
        outcome.topic_latency = aggregator.topic_snapshots(
            [topic.topic for topic in assigned]
        )
        outcome.partition_latency = aggregator.partition_snapshots(
            partitions_of(assigned)
        )
