"""
Per-role worker loop.

A ``WorkerLoop`` registers once with the shared ``PhaseBarrier`` and keeps
its membership for its whole lifetime: after every round it arrives and
waits until every other role has finished the same phase, so no role
starts phase N+1 before all roles completed phase N. When the loop is
asked to stop (or reaches ``max_rounds``) it arrives and deregisters,
which lets the remaining roles carry on and terminates the barrier once
the last role is gone.

The loop also holds the shared ``MetricsSession`` for its whole run, so
the registry and the latency windows carry over from one round to the
next. Each round only reports.

Round failures never skip the barrier obligation. Only a barrier
protocol violation ends the loop early, and even then the loop leaves
the barrier if it is still registered.
"""

from __future__ import annotations

import threading
from collections import deque

from loguru import logger

from brokerprobe.core.errors import BarrierProtocolError, RoundSetupError
from brokerprobe.core.model import RoundOutcome, WorkerRole
from brokerprobe.core.phase_barrier import ParticipantHandle, PhaseBarrier
from brokerprobe.core.registry import MetricsSession
from brokerprobe.core.round import RoundCoordinator
from brokerprobe.datastructures.type_aliases import DurationSeconds, PhaseNumber
from brokerprobe.timer import Timer

worker_log = logger

OUTCOME_HISTORY = 100


class WorkerLoop:
    def __init__(
        self,
        role: WorkerRole,
        coordinator: RoundCoordinator,
        barrier: PhaseBarrier,
        session: MetricsSession,
        *,
        round_interval: DurationSeconds = 0.0,
        max_rounds: int | None = None,
    ) -> None:
        self.role = role
        self.coordinator = coordinator
        self.barrier = barrier
        self.session = session
        self.round_interval = round_interval
        self.max_rounds = max_rounds
        self.rounds_run = 0
        self.failed_rounds = 0
        self.last_error: BaseException | None = None
        self.outcomes: deque[RoundOutcome] = deque(maxlen=OUTCOME_HISTORY)
        self._stop = threading.Event()
        self._handle: ParticipantHandle | None = None

    @property
    def name(self) -> str:
        return f"{self.role.value}-worker"

    @property
    def last_outcome(self) -> RoundOutcome | None:
        return self.outcomes[-1] if self.outcomes else None

    def stop(self) -> None:
        """Finish after the current round and leave the barrier."""
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def register(self) -> ParticipantHandle:
        """Join the barrier ahead of ``run``.

        Registering every role before any thread starts keeps a fast role from
        completing phase 0 alone.
        """
        self._handle = self.barrier.register(self.name)
        return self._handle

    def run(self) -> None:
        handle = self._handle if self._handle is not None else self.register()
        try:
            with self.session.holding():
                self._loop(handle)
        except BarrierProtocolError as e:
            self.last_error = e
            worker_log.exception("{} violated the barrier protocol", self.name)
            raise
        finally:
            self._leave(handle)
        worker_log.info("{} worker has been COMPLETED.", self.role.display_name)

    def _loop(self, handle: ParticipantHandle) -> None:
        while not self.barrier.is_terminated():
            phase = self.barrier.phase
            worker_log.info(
                "{} - {} party has arrived and is working in Phase-{}",
                threading.current_thread().name,
                self.role.display_name,
                phase,
            )
            self._run_once(phase)
            if self._should_finish():
                break
            self.barrier.arrive_and_await_advance(handle)
            if self._stop.wait(self.round_interval):
                break

    def _should_finish(self) -> bool:
        if self._stop.is_set():
            return True
        return self.max_rounds is not None and self.rounds_run >= self.max_rounds

    def _run_once(self, phase: PhaseNumber) -> None:
        self.rounds_run += 1
        with Timer(self.role.display_name):
            try:
                outcome = self.coordinator.run_round(self.session, phase)
                self.session.report()
                self.outcomes.append(outcome)
            except BarrierProtocolError:
                raise
            except RoundSetupError as e:
                self.failed_rounds += 1
                self.last_error = e
                worker_log.error(
                    "{} round in Phase-{} could not start: {}",
                    self.role.display_name,
                    phase,
                    e,
                )
            except Exception as e:
                self.failed_rounds += 1
                self.last_error = e
                worker_log.exception(
                    "{} round in Phase-{} failed", self.role.display_name, phase
                )

    def _leave(self, handle: ParticipantHandle) -> None:
        if not self.barrier.is_registered(handle):
            return
        try:
            self.barrier.arrive_and_deregister(handle)
        except BarrierProtocolError as e:
            worker_log.error("{} could not leave the barrier: {}", self.name, e)
