"""
Core of the availability prober.

Shard planning, probe execution, latency aggregation, metric
registration, the per-round coordinator, the phase barrier and the
per-role worker loop.
"""

from .errors import (
    BarrierProtocolError,
    BarrierTerminatedError,
    BrokerProbeError,
    MetricRegistrationError,
    ProbeError,
    RoundSetupError,
    ShardConfigurationError,
    TopologyUnavailableError,
)
from .latency import LatencyAggregator
from .model import (
    MetricFlags,
    MetricKey,
    MetricKind,
    ProbeFailure,
    ProbeResult,
    ProbeSuccess,
    RoundOutcome,
    RoundState,
    TopicMetadata,
    TopicPartition,
    TopologySnapshot,
    WorkerRole,
    availability_ratio,
)
from .phase_barrier import ParticipantHandle, PhaseBarrier, PhaseState
from .probe import FAILURE_PENALTY_MS, ProbeExecutor
from .registry import (
    AvailabilityGauge,
    LoggingReporter,
    MetricRegistrar,
    MetricRegistry,
    MetricsSession,
)
from .round import RoundCoordinator
from .shard_planner import ShardPlanner
from .worker import WorkerLoop

__all__ = [
    # Errors
    "BrokerProbeError",
    "ProbeError",
    "RoundSetupError",
    "TopologyUnavailableError",
    "ShardConfigurationError",
    "BarrierProtocolError",
    "BarrierTerminatedError",
    "MetricRegistrationError",
    # Model
    "TopicPartition",
    "TopicMetadata",
    "TopologySnapshot",
    "MetricKind",
    "MetricKey",
    "MetricFlags",
    "ProbeSuccess",
    "ProbeFailure",
    "ProbeResult",
    "RoundOutcome",
    "RoundState",
    "WorkerRole",
    "availability_ratio",
    # Components
    "ShardPlanner",
    "LatencyAggregator",
    "MetricRegistry",
    "MetricRegistrar",
    "AvailabilityGauge",
    "MetricsSession",
    "LoggingReporter",
    "ProbeExecutor",
    "FAILURE_PENALTY_MS",
    "RoundCoordinator",
    "PhaseBarrier",
    "ParticipantHandle",
    "PhaseState",
    "WorkerLoop",
]
