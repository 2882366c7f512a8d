"""
brokerprobe - round-based availability prober for message-broker clusters

A fleet of worker threads (consumer, producer, metadata roles) repeatedly
probes every partition assigned to this prober instance and publishes
latency histograms and an availability ratio per role.

## Architecture

- **core**: shard planning, probing, aggregation, metric registration,
  the phase barrier and the per-role worker loop
- **datastructures**: sliding-window histograms and type aliases
- **service**: thread bootstrap wiring settings and collaborators together
- **cli**: command line tools (plan, simulate, show-config)

## Quick Start

```python
from brokerprobe import ProbeService, ProberSettings
from brokerprobe.simulation import SimulatedBrokerClient, StaticTopologySource

settings = ProberSettings(service_address="p1", service_peers=["p1", "p2"], max_rounds=3)
source = StaticTopologySource({"orders": 4, "payments": 2})
service = ProbeService(settings, source.factory, SimulatedBrokerClient())
service.run()
print(service.outcomes)
```
"""

from .config import ProberSettings, load_settings
from .core import (
    MetricKey,
    MetricsSession,
    PhaseBarrier,
    ProbeExecutor,
    RoundCoordinator,
    RoundOutcome,
    ShardPlanner,
    TopologySnapshot,
    WorkerLoop,
    WorkerRole,
)
from .service import ProbeService

__version__ = "1.0.0"
__license__ = "MIT"

__all__ = [
    "ProberSettings",
    "load_settings",
    "ProbeService",
    "MetricKey",
    "MetricsSession",
    "PhaseBarrier",
    "ProbeExecutor",
    "RoundCoordinator",
    "RoundOutcome",
    "ShardPlanner",
    "TopologySnapshot",
    "WorkerLoop",
    "WorkerRole",
]
