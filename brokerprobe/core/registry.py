"""
Metric registry, idempotent registration and metrics sessions.

The registry is shared by every worker role of the process, so all
check-then-register sequences run under a single lock. ``MetricRegistrar``
layers the skip-if-present rule and per-category enable flags on top.

A ``MetricsSession`` scopes one registry lifetime: each worker joins with
``start()`` when it begins running, ships a snapshot with ``report()`` after
every round and leaves with ``stop()`` when it finishes. Instruments and
the per-prefix latency aggregators therefore persist across rounds, and
are discarded only when the last worker leaves.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import RLock
from typing import Any

from loguru import logger

from brokerprobe.core.errors import MetricRegistrationError
from brokerprobe.core.interfaces import MetricsReporter
from brokerprobe.core.latency import LatencyAggregator
from brokerprobe.core.model import MetricKey, availability_ratio
from brokerprobe.datastructures.sliding_window import SlidingWindowHistogram
from brokerprobe.datastructures.type_aliases import ClusterName, EncodedMetricKey

metrics_log = logger


@dataclass(slots=True)
class AvailabilityGauge:
    """Gauge reporting ``successes / tries`` of the latest round."""

    _tries: int = 0
    _successes: int = 0
    _lock: RLock = field(default_factory=RLock)

    def update(self, tries: int, successes: int) -> None:
        if tries < 0 or successes < 0 or successes > tries:
            raise ValueError(f"Invalid availability sample {successes}/{tries}")
        with self._lock:
            self._tries = tries
            self._successes = successes

    @property
    def value(self) -> float | None:
        with self._lock:
            return availability_ratio(self._tries, self._tries - self._successes)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "tries": self._tries,
                "successes": self._successes,
                "value": availability_ratio(
                    self._tries, self._tries - self._successes
                ),
            }


type Instrument = SlidingWindowHistogram | AvailabilityGauge


def _encode(key: MetricKey | EncodedMetricKey) -> EncodedMetricKey:
    return key.encode() if isinstance(key, MetricKey) else key


def instrument_snapshot(instrument: Instrument) -> dict[str, Any]:
    if isinstance(instrument, SlidingWindowHistogram):
        return instrument.snapshot().to_dict()
    return instrument.snapshot()


class MetricRegistry:
    """Thread-safe mapping of encoded metric keys to instruments."""

    def __init__(self) -> None:
        self._instruments: dict[EncodedMetricKey, Instrument] = {}
        self._lock = RLock()

    def contains(self, key: MetricKey | EncodedMetricKey) -> bool:
        with self._lock:
            return _encode(key) in self._instruments

    def register(
        self, key: MetricKey | EncodedMetricKey, instrument: Instrument
    ) -> Instrument:
        """Register ``instrument``; a duplicate key is an error."""
        name = _encode(key)
        with self._lock:
            if name in self._instruments:
                raise MetricRegistrationError(f"Metric {name} already registered.")
            self._instruments[name] = instrument
            return instrument

    def register_if_absent(
        self, key: MetricKey | EncodedMetricKey, instrument: Instrument
    ) -> tuple[Instrument, bool]:
        """Atomically register unless present.

        Returns the instrument stored under the key and whether it was added.
        The contains check and the strict ``register`` share one lock hold.
        """
        with self._lock:
            if self.contains(key):
                return self._instruments[_encode(key)], False
            return self.register(key, instrument), True

    def get(self, key: MetricKey | EncodedMetricKey) -> Instrument | None:
        with self._lock:
            return self._instruments.get(_encode(key))

    def names(self) -> list[EncodedMetricKey]:
        with self._lock:
            return sorted(self._instruments)

    def snapshot(self) -> dict[EncodedMetricKey, dict[str, Any]]:
        with self._lock:
            items = list(self._instruments.items())
        return {name: instrument_snapshot(inst) for name, inst in sorted(items)}

    def clear(self) -> None:
        with self._lock:
            self._instruments.clear()

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, MetricKey | str):
            return False
        return self.contains(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._instruments)


@dataclass(slots=True)
class MetricRegistrar:
    """Registers instruments at most once per key, honoring enable flags."""

    registry: MetricRegistry
    registered: int = 0
    skipped: int = 0

    def ensure(
        self, key: MetricKey, instrument: Instrument, *, enabled: bool = True
    ) -> Instrument | None:
        """Return the live instrument for ``key``.

        When the category is disabled nothing is registered and ``None`` is
        returned unless another caller already registered the key.
        """
        if not enabled:
            return self.registry.get(key)
        live, added = self.registry.register_if_absent(key, instrument)
        if added:
            self.registered += 1
            metrics_log.debug("Registered metric {}", key)
        else:
            self.skipped += 1
        return live


class LoggingReporter:
    """Reporter that writes one log line per instrument."""

    def report(
        self, cluster_name: ClusterName, snapshot: Mapping[EncodedMetricKey, Any]
    ) -> None:
        for name, values in snapshot.items():
            metrics_log.info("[{}] {} {}", cluster_name, name, values)


class MetricsSession:
    """Registry lifetime shared by every worker role of one process.

    Each thread joins the session at most once; ``stop()`` from a thread that
    never joined (for example because ``start()`` failed) is a no-op.
    """

    def __init__(
        self,
        cluster_name: ClusterName,
        registry: MetricRegistry | None = None,
        reporter: MetricsReporter | None = None,
    ) -> None:
        self.cluster_name = cluster_name
        self.registry = registry if registry is not None else MetricRegistry()
        self.reporter: MetricsReporter = (
            reporter if reporter is not None else LoggingReporter()
        )
        self._holders: set[int] = set()
        self._aggregators: dict[str, LatencyAggregator] = {}
        self._sessions_started = 0
        self._lock = RLock()

    @property
    def active(self) -> bool:
        with self._lock:
            return bool(self._holders)

    @property
    def sessions_started(self) -> int:
        with self._lock:
            return self._sessions_started

    def start(self) -> None:
        ident = threading.get_ident()
        with self._lock:
            if ident in self._holders:
                return
            if not self._holders:
                self._sessions_started += 1
                metrics_log.info(
                    "Metrics session {} started for cluster {}",
                    self._sessions_started,
                    self.cluster_name,
                )
            self._holders.add(ident)

    def report(self) -> None:
        self.reporter.report(self.cluster_name, self.registry.snapshot())

    def stop(self) -> None:
        ident = threading.get_ident()
        with self._lock:
            if ident not in self._holders:
                metrics_log.debug("Metrics session stop without start; ignoring")
                return
            self._holders.discard(ident)
            if self._holders:
                return
            self.registry.clear()
            self._aggregators.clear()
            metrics_log.info(
                "Metrics session {} stopped for cluster {}",
                self._sessions_started,
                self.cluster_name,
            )

    @contextmanager
    def holding(self) -> Iterator[MetricsSession]:
        """Join the session for the duration of the block; always leaves."""
        try:
            self.start()
            yield self
        finally:
            self.stop()

    def aggregator(self, prefix: str) -> LatencyAggregator:
        with self._lock:
            aggregator = self._aggregators.get(prefix)
            if aggregator is None:
                aggregator = LatencyAggregator(prefix)
                self._aggregators[prefix] = aggregator
            return aggregator

    def registrar(self) -> MetricRegistrar:
        return MetricRegistrar(self.registry)
