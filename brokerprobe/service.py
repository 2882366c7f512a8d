"""
Process bootstrap: one worker thread per role around a shared barrier.

``ProbeService`` wires settings and external collaborators into a
``PhaseBarrier``, a ``MetricsSession`` and one ``WorkerLoop`` per
configured role. Every loop is registered with the barrier before any
thread starts, then each runs in its own named thread.
"""

from __future__ import annotations

import threading
import time
from typing import Any

from loguru import logger

from brokerprobe.config import ProberSettings
from brokerprobe.core.interfaces import (
    BrokerClient,
    MetricsReporter,
    PartitionOperation,
    TopologyFactory,
)
from brokerprobe.core.model import RoundOutcome, WorkerRole
from brokerprobe.core.phase_barrier import PhaseBarrier
from brokerprobe.core.probe import ProbeExecutor
from brokerprobe.core.registry import MetricsSession
from brokerprobe.core.round import RoundCoordinator
from brokerprobe.core.worker import WorkerLoop
from brokerprobe.datastructures.type_aliases import DurationSeconds

service_log = logger


def operation_for(role: WorkerRole, client: BrokerClient) -> PartitionOperation:
    """The client call a role uses to exercise one partition."""
    if role is WorkerRole.CONSUMER:
        return client.read_one
    if role is WorkerRole.PRODUCER:
        return client.write_one
    return client.describe_partition


class ProbeService:
    def __init__(
        self,
        settings: ProberSettings,
        topology_factory: TopologyFactory,
        client: BrokerClient,
        reporter: MetricsReporter | None = None,
        *,
        probe_options: dict[str, Any] | None = None,
    ) -> None:
        self.settings = settings
        self.topology_factory = topology_factory
        self.client = client
        self.barrier = PhaseBarrier(f"{settings.cluster_name}-rounds")
        self.session = MetricsSession(settings.cluster_name, reporter=reporter)
        self._probe_options = probe_options or {}
        self.workers: dict[WorkerRole, WorkerLoop] = {
            role: self._build_worker(role) for role in settings.roles
        }
        self.errors: dict[WorkerRole, BaseException] = {}
        self._threads: dict[WorkerRole, threading.Thread] = {}

    def _build_worker(self, role: WorkerRole) -> WorkerLoop:
        executor = ProbeExecutor(
            operation_for(role, self.client),
            failure_penalty_ms=self.settings.failure_penalty_ms,
            **self._probe_options,
        )
        coordinator = RoundCoordinator(
            role,
            self.topology_factory,
            executor,
            self_address=self.settings.service_address,
            peers=self.settings.service_peers,
            flags=self.settings.metric_flags(role),
        )
        return WorkerLoop(
            role,
            coordinator,
            self.barrier,
            self.session,
            round_interval=self.settings.round_interval_seconds,
            max_rounds=self.settings.max_rounds,
        )

    def start(self) -> None:
        if self._threads:
            raise RuntimeError("ProbeService already started")
        for worker in self.workers.values():
            worker.register()
        for role, worker in self.workers.items():
            thread = threading.Thread(
                target=self._run_worker,
                args=(role, worker),
                name=worker.name,
                daemon=True,
            )
            self._threads[role] = thread
            thread.start()
        service_log.info(
            "Started {} worker(s) for cluster {} as {}",
            len(self._threads),
            self.settings.cluster_name,
            self.settings.service_address,
        )

    def _run_worker(self, role: WorkerRole, worker: WorkerLoop) -> None:
        try:
            worker.run()
        except Exception as e:
            self.errors[role] = e

    def stop(self) -> None:
        """Ask every worker to finish its current round and leave."""
        for worker in self.workers.values():
            worker.stop()

    def join(self, timeout: DurationSeconds | None = None) -> bool:
        """Wait for all worker threads; returns ``True`` if all finished."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in self._threads.values():
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return not any(thread.is_alive() for thread in self._threads.values())

    def run(self) -> None:
        """Start, then block until every worker finished."""
        self.start()
        try:
            self.join()
        except KeyboardInterrupt:
            service_log.warning("Interrupted; stopping workers after current round")
            self.stop()
            self.join()

    @property
    def terminated(self) -> bool:
        return self.barrier.is_terminated()

    @property
    def outcomes(self) -> dict[WorkerRole, RoundOutcome | None]:
        return {role: worker.last_outcome for role, worker in self.workers.items()}
