import pytest

from brokerprobe.core.errors import ShardConfigurationError, TopologyUnavailableError
from brokerprobe.core.model import (
    MetricFlags,
    MetricKey,
    RoundState,
    TopicPartition,
    WorkerRole,
)
from brokerprobe.core.probe import ProbeExecutor
from brokerprobe.core.registry import AvailabilityGauge
from brokerprobe.core.round import RoundCoordinator, availability_ratio
from brokerprobe.simulation import SimulatedBrokerClient, StaticTopologySource


def _coordinator(
    source,
    client,
    clock,
    *,
    peers=("p0", "p1"),
    self_address="p0",
    flags=MetricFlags(),
    role=WorkerRole.CONSUMER,
):
    return RoundCoordinator(
        role,
        source.factory,
        ProbeExecutor(client.read_one, clock=clock),
        self_address=self_address,
        peers=peers,
        flags=flags,
    )


class TestAvailabilityRatio:
    def test_ratio(self):
        assert availability_ratio(10, 2) == 0.8

    def test_zero_tries_guarded(self):
        assert availability_ratio(0, 0) is None


class TestRoundCoordinator:
    def test_two_peers_one_failure_gives_three_quarters(
        self, four_topics, session, clock
    ):
        client = SimulatedBrokerClient(failing=[TopicPartition("t2", 1)])
        coordinator = _coordinator(four_topics, client, clock)

        with session.holding():
            outcome = coordinator.run_round(session, phase=0)
            gauge = session.registry.get(MetricKey.availability("Consumer"))

            assert outcome.assigned_topics == ["t0", "t2"]
            assert outcome.total_topics == 4
            assert outcome.try_count == 4
            assert outcome.fail_count == 1
            assert outcome.availability == 0.75
            assert isinstance(gauge, AvailabilityGauge)
            assert gauge.value == 0.75

        assert [op for op, _ in client.calls] == ["read"] * 4
        assert {tp.topic for _, tp in client.calls} == {"t0", "t2"}

    def test_failure_does_not_stop_iteration(self, session, clock):
        source = StaticTopologySource({"only": 3})
        client = SimulatedBrokerClient(failing=[TopicPartition("only", 0)])
        coordinator = _coordinator(source, client, clock, peers=(), self_address="x")

        with session.holding():
            outcome = coordinator.run_round(session)

        assert outcome.try_count == 3
        assert outcome.fail_count == 1
        assert outcome.failures[0].partition == TopicPartition("only", 0)
        assert coordinator.state is RoundState.DONE

    def test_failed_probe_skews_latency(self, session, clock):
        source = StaticTopologySource({"only": 2})
        client = SimulatedBrokerClient(failing=[TopicPartition("only", 1)])
        coordinator = _coordinator(source, client, clock, peers=(), self_address="x")

        with session.holding():
            outcome = coordinator.run_round(session)

        assert outcome.global_latency.size == 2
        assert outcome.global_latency.max >= 60000
        assert outcome.partition_latency[TopicPartition("only", 0)].max == clock.step
        assert outcome.partition_latency[TopicPartition("only", 1)].min >= 60000
        assert outcome.topic_latency["only"].size == 2

    def test_state_machine_is_linear(self, four_topics, healthy_client, session, clock):
        coordinator = _coordinator(four_topics, healthy_client, clock)

        with session.holding():
            coordinator.run_round(session)

        assert coordinator.history == [
            RoundState.IDLE,
            RoundState.PLANNING,
            RoundState.PROBING,
            RoundState.REPORTING,
            RoundState.DONE,
        ]

    def test_registers_all_metric_levels(
        self, four_topics, healthy_client, session, clock
    ):
        coordinator = _coordinator(four_topics, healthy_client, clock)

        with session.holding():
            outcome = coordinator.run_round(session)

            names = set(session.registry.names())
            assert MetricKey.latency("Consumer").encode() in names
            assert MetricKey.topic_latency("Consumer", "t0").encode() in names
            assert MetricKey.topic_latency("Consumer", "t2").encode() in names
            assert MetricKey.topic_latency("Consumer", "t1").encode() not in names
            assert MetricKey.partition_latency("Consumer", "t2", 1).encode() in names
            assert MetricKey.availability("Consumer").encode() in names
            # 1 global + 2 topics + 4 partitions + 1 availability
            assert len(names) == 8
            assert sorted(outcome.registered_metrics) == sorted(names)

    def test_flags_suppress_categories(
        self, four_topics, healthy_client, session, clock
    ):
        flags = MetricFlags(
            latency=True, topic_latency=False, partition_latency=False, availability=False
        )
        coordinator = _coordinator(four_topics, healthy_client, clock, flags=flags)

        with session.holding():
            outcome = coordinator.run_round(session)
            assert session.registry.names() == [MetricKey.latency("Consumer").encode()]

        assert outcome.availability == 1.0

    def test_second_round_reuses_registered_instruments(
        self, four_topics, session, clock
    ):
        client = SimulatedBrokerClient(failing=[TopicPartition("t0", 0)])
        coordinator = _coordinator(four_topics, client, clock)

        with session.holding():
            coordinator.run_round(session)
            first = session.registry.get(MetricKey.latency("Consumer"))
            client.failing.clear()
            outcome = coordinator.run_round(session)

            assert session.registry.get(MetricKey.latency("Consumer")) is first
            assert len(session.registry) == 8
            gauge = session.registry.get(MetricKey.availability("Consumer"))
            assert gauge.value == 1.0
            assert outcome.availability == 1.0
            # global window spans one sweep: the penalized sample was evicted
            assert outcome.global_latency.max < 60000

    def test_role_prefix_used_for_metrics(
        self, four_topics, healthy_client, session, clock
    ):
        coordinator = RoundCoordinator(
            WorkerRole.PRODUCER,
            four_topics.factory,
            ProbeExecutor(healthy_client.write_one, clock=clock),
            self_address="p1",
            peers=["p0", "p1"],
        )

        with session.holding():
            outcome = coordinator.run_round(session)
            assert MetricKey.latency("Producer").encode() in session.registry.names()

        assert outcome.assigned_topics == ["t1", "t3"]
        assert {op for op, _ in healthy_client.calls} == {"write"}

    def test_no_assigned_partitions_skips_availability(self, session, clock):
        source = StaticTopologySource({"t0": 2})
        coordinator = _coordinator(
            source, SimulatedBrokerClient(), clock, peers=["p0", "p1"], self_address="p1"
        )

        with session.holding():
            outcome = coordinator.run_round(session)
            assert outcome.try_count == 0
            assert outcome.availability is None
            assert not session.registry.contains(MetricKey.availability("Consumer"))

    def test_topology_failure_propagates_and_closes(
        self, broken_topology, healthy_client, session, clock
    ):
        coordinator = RoundCoordinator(
            WorkerRole.CONSUMER,
            lambda: broken_topology,
            ProbeExecutor(healthy_client.read_one, clock=clock),
            self_address="p0",
        )

        with session.holding():
            with pytest.raises(TopologyUnavailableError, match="zookeeper unreachable"):
                coordinator.run_round(session)

        assert broken_topology.closed == 1
        assert coordinator.state is RoundState.PLANNING
        assert healthy_client.calls == []

    def test_topology_factory_failure_propagates(self, healthy_client, session, clock):
        def unreachable():
            raise ConnectionRefusedError("no route to zookeeper")

        coordinator = RoundCoordinator(
            WorkerRole.CONSUMER,
            unreachable,
            ProbeExecutor(healthy_client.read_one, clock=clock),
            self_address="p0",
        )

        with pytest.raises(TopologyUnavailableError):
            coordinator.run_round(session)

    def test_missing_self_fails_round(self, four_topics, healthy_client, session, clock):
        coordinator = _coordinator(
            four_topics, healthy_client, clock, peers=["p0", "p1"], self_address="p7"
        )

        with session.holding():
            with pytest.raises(ShardConfigurationError):
                coordinator.run_round(session)

        assert four_topics.closed == 1

    def test_topology_fetched_fresh_each_round(
        self, four_topics, healthy_client, session, clock
    ):
        coordinator = _coordinator(four_topics, healthy_client, clock)

        with session.holding():
            coordinator.run_round(session)
            coordinator.run_round(session)

        assert four_topics.fetches == 2
        assert four_topics.closed == 2

    def test_peer_provider_refreshed_each_round(
        self, four_topics, healthy_client, session, clock
    ):
        peer_lists = iter([["p0", "p1"], ["p0"]])
        coordinator = _coordinator(
            four_topics, healthy_client, clock, peers=lambda: next(peer_lists)
        )

        with session.holding():
            first = coordinator.run_round(session)
            second = coordinator.run_round(session)

        assert first.assigned_topics == ["t0", "t2"]
        assert second.assigned_topics == ["t0", "t1", "t2", "t3"]
