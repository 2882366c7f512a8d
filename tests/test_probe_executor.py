import pytest

from brokerprobe.core.model import ProbeFailure, ProbeSuccess, TopicPartition
from brokerprobe.core.probe import FAILURE_PENALTY_MS, ProbeExecutor


class TestProbeExecutor:
    def test_success_reports_elapsed_ms(self, clock):
        calls = []
        executor = ProbeExecutor(lambda t, p: calls.append((t, p)), clock=clock)

        result = executor.probe("orders", 3)

        assert isinstance(result, ProbeSuccess)
        assert result.ok
        assert result.partition == TopicPartition("orders", 3)
        assert result.elapsed_ms == clock.step
        assert calls == [("orders", 3)]

    def test_failure_is_returned_not_raised(self, clock):
        def broken(topic, partition_id):
            raise ConnectionResetError("broker went away")

        result = ProbeExecutor(broken, clock=clock).probe("orders", 1)

        assert isinstance(result, ProbeFailure)
        assert not result.ok
        assert result.error.topic == "orders"
        assert result.error.partition_id == 1
        assert isinstance(result.error.cause, ConnectionResetError)

    def test_failure_latency_includes_penalty(self, clock):
        def broken(topic, partition_id):
            raise TimeoutError("no fetch response")

        result = ProbeExecutor(broken, clock=clock).probe("orders", 0)

        assert result.elapsed_ms == clock.step + FAILURE_PENALTY_MS
        assert result.elapsed_ms >= 60000

    def test_failure_with_real_clock_still_penalized(self):
        def broken(topic, partition_id):
            raise OSError("refused")

        result = ProbeExecutor(broken).probe("orders", 0)

        assert result.elapsed_ms >= 60000

    def test_custom_penalty(self, clock):
        def broken(topic, partition_id):
            raise OSError("refused")

        result = ProbeExecutor(broken, failure_penalty_ms=1000, clock=clock).probe(
            "t", 0
        )
        assert result.elapsed_ms == clock.step + 1000

    def test_base_exceptions_are_not_absorbed(self, clock):
        def interrupted(topic, partition_id):
            raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            ProbeExecutor(interrupted, clock=clock).probe("t", 0)
