import json
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from brokerprobe.core.model import MetricFlags, WorkerRole


class ProberSettings(BaseSettings):
    """Availability prober configuration settings.

    Every field can be overridden through environment variables with the
    ``BROKERPROBE_`` prefix, e.g. ``BROKERPROBE_SERVICE_ADDRESS=prober-2``
    or ``BROKERPROBE_SERVICE_PEERS='["prober-1", "prober-2"]'``.
    """

    model_config = SettingsConfigDict(
        env_prefix="BROKERPROBE_", env_file=".env", extra="ignore"
    )

    cluster_name: str = Field(
        "default-cluster",
        description="Name of the broker cluster, attached to every metrics report.",
    )
    service_address: str = Field(
        "localhost",
        description="Identifier of this prober instance; must appear in service_peers.",
    )
    service_peers: list[str] = Field(
        default_factory=list,
        description="Ordered list of every prober instance sharing the cluster. Empty means a single shard.",
    )
    roles: list[WorkerRole] = Field(
        default_factory=lambda: [WorkerRole.CONSUMER],
        description="Worker roles to run, one thread each.",
    )
    round_interval_seconds: float = Field(
        0.0, ge=0.0, description="Pause between synchronized rounds."
    )
    max_rounds: int | None = Field(
        None, ge=1, description="Stop every worker after this many rounds (None = forever)."
    )
    failure_penalty_ms: int = Field(
        60000,
        ge=0,
        description="Milliseconds added to the measured time of a failed probe.",
    )

    send_consumer_latency: bool = Field(True, description="Register Consumer.Latency.")
    send_consumer_topic_latency: bool = Field(
        True, description="Register Consumer.Topic.Latency per topic."
    )
    send_consumer_partition_latency: bool = Field(
        True, description="Register Consumer.Partition.Latency per partition."
    )
    send_consumer_availability: bool = Field(
        True, description="Register Consumer.Availability."
    )
    send_producer_latency: bool = Field(True, description="Register Producer.Latency.")
    send_producer_topic_latency: bool = Field(
        True, description="Register Producer.Topic.Latency per topic."
    )
    send_producer_partition_latency: bool = Field(
        True, description="Register Producer.Partition.Latency per partition."
    )
    send_producer_availability: bool = Field(
        True, description="Register Producer.Availability."
    )
    send_metadata_latency: bool = Field(True, description="Register MetaData.Latency.")
    send_metadata_topic_latency: bool = Field(
        True, description="Register MetaData.Topic.Latency per topic."
    )
    send_metadata_partition_latency: bool = Field(
        True, description="Register MetaData.Partition.Latency per partition."
    )
    send_metadata_availability: bool = Field(
        True, description="Register MetaData.Availability."
    )

    log_level: str = Field("INFO", description="Minimum log level.")
    debug_scopes: list[str] = Field(
        default_factory=list,
        description="Module prefixes that log at DEBUG regardless of log_level.",
    )

    @field_validator("roles")
    @classmethod
    def _unique_roles(cls, roles: list[WorkerRole]) -> list[WorkerRole]:
        if len(set(roles)) != len(roles):
            raise ValueError("Each worker role may only be configured once")
        return roles

    def metric_flags(self, role: WorkerRole) -> MetricFlags:
        prefix = f"send_{role.value}"
        return MetricFlags(
            latency=getattr(self, f"{prefix}_latency"),
            topic_latency=getattr(self, f"{prefix}_topic_latency"),
            partition_latency=getattr(self, f"{prefix}_partition_latency"),
            availability=getattr(self, f"{prefix}_availability"),
        )


def load_settings(path: Path | str | None = None, **overrides: Any) -> ProberSettings:
    """Build settings from environment, an optional JSON file, then overrides."""
    data: dict[str, Any] = {}
    if path is not None:
        loaded = json.loads(Path(path).read_text())
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {path} must contain a JSON object")
        data.update(loaded)
    data.update({k: v for k, v in overrides.items() if v is not None})
    return ProberSettings(**data)
