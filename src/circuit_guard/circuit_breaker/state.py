"""Circuit breaker state primitives.

Each state is its own variant carrying only the data meaningful in that state,
so an ``Open`` breaker always knows when it last failed and a ``HalfOpen``
breaker always knows how many trial calls have succeeded.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True, slots=True)
class Closed:
    """Healthy state; every call reaches the operation.

    Attributes:
        failure_count: Failures recorded since the circuit last closed.
        last_failure_at: Timestamp of the last recorded failure, if any.
    """

    failure_count: int = 0
    last_failure_at: datetime | None = None

    @property
    def state(self) -> CircuitState:
        return CircuitState.CLOSED


@dataclass(frozen=True, slots=True)
class Open:
    """Faulty state; calls are rejected until the recovery window elapses.

    Attributes:
        last_failure_at: Timestamp of the failure that (re)opened the circuit.
        failure_count: Failures recorded when the circuit opened.
    """

    last_failure_at: datetime
    failure_count: int

    @property
    def state(self) -> CircuitState:
        return CircuitState.OPEN


@dataclass(frozen=True, slots=True)
class HalfOpen:
    """Probing state; calls reach the operation to test recovery.

    Attributes:
        success_count: Successful trial calls since entering ``HALF_OPEN``.
        last_failure_at: Timestamp of the failure that last opened the circuit.
    """

    success_count: int = 0
    last_failure_at: datetime | None = None

    @property
    def state(self) -> CircuitState:
        return CircuitState.HALF_OPEN


BreakerPhase = Closed | Open | HalfOpen


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for metrics/logging.

    Attributes:
        name: Breaker name.
        state: Current breaker state.
        failure_count: Failures counted in the current state.
        success_count: Successful trial calls while ``HALF_OPEN``.
        last_failure_at: Timestamp of the last counted failure, if known.
    """

    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    last_failure_at: datetime | None

    @classmethod
    def from_phase(cls, name: str, phase: BreakerPhase) -> "BreakerSnapshot":
        """Flatten a state variant into a snapshot."""
        if isinstance(phase, Closed):
            return cls(
                name=name,
                state=CircuitState.CLOSED,
                failure_count=phase.failure_count,
                success_count=0,
                last_failure_at=phase.last_failure_at,
            )
        if isinstance(phase, Open):
            return cls(
                name=name,
                state=CircuitState.OPEN,
                failure_count=phase.failure_count,
                success_count=0,
                last_failure_at=phase.last_failure_at,
            )
        return cls(
            name=name,
            state=CircuitState.HALF_OPEN,
            failure_count=0,
            success_count=phase.success_count,
            last_failure_at=phase.last_failure_at,
        )
