"""
Multi-party phase barrier with dynamic registration.

Every worker role registers one participant. A phase advances by exactly
one when every participant registered at that instant has arrived, and
all waiters are released together. Participants may leave at any time
with ``arrive_and_deregister``; when the last one leaves the barrier
completes its final phase and terminates for good.

State is an explicit map of participant id to arrived flag for the
current phase, guarded by a single condition variable. Contract
violations (unknown handle, double arrival, registering after
termination) raise ``BarrierProtocolError`` before any state is touched.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass

from loguru import logger

from brokerprobe.core.errors import BarrierProtocolError, BarrierTerminatedError
from brokerprobe.datastructures.type_aliases import (
    DurationSeconds,
    ParticipantId,
    PhaseNumber,
)

barrier_log = logger

_barrier_ids = itertools.count(1)


@dataclass(frozen=True, slots=True)
class ParticipantHandle:
    participant_id: ParticipantId
    barrier_id: int
    registered_phase: PhaseNumber
    name: str = ""

    def __str__(self) -> str:
        return self.name or f"participant-{self.participant_id}"


@dataclass(frozen=True, slots=True)
class PhaseState:
    """Point-in-time view of the barrier."""

    phase: PhaseNumber
    registered: int
    arrived: int
    terminated: bool

    @property
    def unarrived(self) -> int:
        return self.registered - self.arrived


class PhaseBarrier:
    def __init__(self, name: str = "phase-barrier") -> None:
        self.name = name
        self._barrier_id = next(_barrier_ids)
        self._cond = threading.Condition(threading.RLock())
        self._participant_ids = itertools.count(1)
        self._arrived: dict[ParticipantId, bool] = {}
        self._phase: PhaseNumber = 0
        self._terminated = False

    # -- registration ----------------------------------------------------

    def register(self, name: str = "") -> ParticipantHandle:
        """Add one unarrived participant to the current phase."""
        with self._cond:
            if self._terminated:
                raise BarrierTerminatedError(
                    f"Cannot register {name or 'participant'} on terminated barrier "
                    f"{self.name}"
                )
            participant_id = next(self._participant_ids)
            self._arrived[participant_id] = False
            handle = ParticipantHandle(
                participant_id, self._barrier_id, self._phase, name
            )
            self._dump("After registration of", handle)
            return handle

    def is_registered(self, handle: ParticipantHandle) -> bool:
        with self._cond:
            return (
                handle.barrier_id == self._barrier_id
                and handle.participant_id in self._arrived
            )

    # -- arrival ---------------------------------------------------------

    def arrive_and_deregister(self, handle: ParticipantHandle) -> PhaseNumber:
        """Arrive at the current phase and leave the barrier, without waiting.

        A participant that already arrived in this phase (for example after
        ``arrive_and_await_advance`` timed out) may still leave; its arrival
        is not counted twice. Returns the phase number arrived at.
        """
        with self._cond:
            self._check_registered(handle)
            arrived_phase = self._phase
            del self._arrived[handle.participant_id]
            if not self._arrived:
                self._advance()
                self._terminated = True
                self._cond.notify_all()
            elif all(self._arrived.values()):
                self._advance()
            self._dump("After deregistration of", handle)
            return arrived_phase

    def arrive_and_await_advance(
        self, handle: ParticipantHandle, timeout: DurationSeconds | None = None
    ) -> PhaseNumber:
        """Arrive at the current phase and block until it advances.

        The participant stays registered for the next phase. Returns the new
        phase number. Raises ``TimeoutError`` if ``timeout`` elapses first;
        the arrival still counts in that case.
        """
        with self._cond:
            self._check_can_arrive(handle)
            arrived_phase = self._phase
            self._arrived[handle.participant_id] = True
            self._dump("After arrival of", handle)
            if all(self._arrived.values()):
                self._advance()
                return self._phase
            if not self._cond.wait_for(
                lambda: self._phase != arrived_phase, timeout=timeout
            ):
                raise TimeoutError(
                    f"{handle} timed out waiting for phase {arrived_phase} to advance"
                )
            return self._phase

    def _check_registered(self, handle: ParticipantHandle) -> None:
        if handle.barrier_id != self._barrier_id:
            raise BarrierProtocolError(f"{handle} belongs to a different barrier")
        if handle.participant_id not in self._arrived:
            raise BarrierProtocolError(
                f"{handle} is not registered with barrier {self.name}"
            )

    def _check_can_arrive(self, handle: ParticipantHandle) -> None:
        self._check_registered(handle)
        if self._arrived[handle.participant_id]:
            raise BarrierProtocolError(
                f"{handle} arrived twice in phase {self._phase}"
            )

    def _advance(self) -> None:
        self._phase += 1
        for participant_id in self._arrived:
            self._arrived[participant_id] = False
        self._cond.notify_all()

    # -- introspection ---------------------------------------------------

    def is_terminated(self) -> bool:
        with self._cond:
            return self._terminated

    @property
    def phase(self) -> PhaseNumber:
        with self._cond:
            return self._phase

    @property
    def registered_parties(self) -> int:
        with self._cond:
            return len(self._arrived)

    @property
    def arrived_parties(self) -> int:
        with self._cond:
            return sum(self._arrived.values())

    def state(self) -> PhaseState:
        with self._cond:
            return PhaseState(
                phase=self._phase,
                registered=len(self._arrived),
                arrived=sum(self._arrived.values()),
                terminated=self._terminated,
            )

    def _dump(self, event: str, handle: ParticipantHandle) -> None:
        state = self.state()
        barrier_log.debug(
            "{} {}: phase={} registered={} arrived={} unarrived={} terminated={}",
            event,
            handle,
            state.phase,
            state.registered,
            state.arrived,
            state.unarrived,
            state.terminated,
        )
