"""Pytest configuration and shared fixtures for brokerprobe tests.

Provides deterministic clocks, in-memory collaborators and a recording
metrics reporter so rounds can be driven without a real broker.
"""

import os
import sys
from collections.abc import Iterable, Mapping
from typing import Any

import pytest
from loguru import logger

from brokerprobe.core.model import TopologySnapshot
from brokerprobe.core.registry import MetricsSession
from brokerprobe.simulation import SimulatedBrokerClient, StaticTopologySource


class FakeClock:
    """Millisecond clock that advances by a fixed step on every read."""

    def __init__(self, start: int = 1000, step: int = 5) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        return value


class RecordingReporter:
    """Metrics reporter that keeps every snapshot it is handed."""

    def __init__(self) -> None:
        self.reports: list[tuple[str, dict[str, Any]]] = []

    def report(self, cluster_name: str, snapshot: Mapping[str, Any]) -> None:
        self.reports.append((cluster_name, dict(snapshot)))


class BrokenTopologySource:
    """Topology collaborator whose listing always fails."""

    def __init__(self) -> None:
        self.closed = 0

    def list_all_topic_partitions(self) -> TopologySnapshot:
        raise ConnectionError("zookeeper unreachable")

    def close(self) -> None:
        self.closed += 1


def topology_of(topics: Iterable[str], partitions: int) -> dict[str, int]:
    return {topic: partitions for topic in topics}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def session(reporter: RecordingReporter) -> MetricsSession:
    return MetricsSession("test-cluster", reporter=reporter)


@pytest.fixture
def four_topics() -> StaticTopologySource:
    """Four topics with two partitions each, in index order t0..t3."""
    return StaticTopologySource(topology_of(["t0", "t1", "t2", "t3"], 2))


@pytest.fixture
def healthy_client() -> SimulatedBrokerClient:
    return SimulatedBrokerClient(seed=7)


@pytest.fixture
def broken_topology() -> BrokenTopologySource:
    return BrokenTopologySource()


@pytest.fixture(autouse=True)
def _restore_logging():
    """CLI commands reconfigure loguru; put the default stderr sink back."""
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep ambient BROKERPROBE_* variables and any .env file out of settings."""
    for name in list(os.environ):
        if name.startswith("BROKERPROBE_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
