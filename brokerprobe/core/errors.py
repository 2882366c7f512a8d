"""Exception taxonomy for the availability prober."""

from __future__ import annotations

from brokerprobe.datastructures.type_aliases import PartitionId, TopicName


class BrokerProbeError(Exception):
    """Base exception for all prober errors."""

    pass


class ProbeError(BrokerProbeError):
    """A single partition operation failed.

    Carried inside a ``ProbeFailure`` result; the probe path never raises it.
    """

    def __init__(
        self, topic: TopicName, partition_id: PartitionId, cause: BaseException
    ) -> None:
        super().__init__(
            f"Probe of {topic}-{partition_id} failed: {type(cause).__name__}: {cause}"
        )
        self.topic = topic
        self.partition_id = partition_id
        self.cause = cause


class RoundSetupError(BrokerProbeError):
    """A measurement round could not start."""

    pass


class TopologyUnavailableError(RoundSetupError):
    """The topology collaborator could not provide a snapshot."""

    pass


class ShardConfigurationError(RoundSetupError):
    """The peer list does not allow this instance to compute its shard."""

    pass


class BarrierProtocolError(BrokerProbeError):
    """A participant violated the phase barrier contract."""

    pass


class BarrierTerminatedError(BarrierProtocolError):
    """Registration was attempted on a barrier that has already terminated."""

    pass


class MetricRegistrationError(BrokerProbeError):
    """A metric key was registered twice through the strict path."""

    pass
