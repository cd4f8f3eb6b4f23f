"""Circuit breaker configuration."""

from dataclasses import dataclass
from enum import StrEnum


class FailureCountMode(StrEnum):
    """How successes while ``CLOSED`` affect the failure count.

    ``CUMULATIVE`` keeps counting failures until the circuit opens, so ``k``
    failures spread across many successful calls still trip the breaker.
    ``CONSECUTIVE`` resets the count on every success.
    """

    CUMULATIVE = "cumulative"
    CONSECUTIVE = "consecutive"


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Failures required while ``CLOSED`` before opening.
        half_open_threshold: Successful trial calls required while ``HALF_OPEN``
            before closing.
        recovery_timeout: Seconds since the last failure before the circuit
            may leave ``OPEN``.
        call_timeout: Seconds a single operation may run before it counts as
            a failure.
        failure_count_mode: Whether successes while ``CLOSED`` reset the
            failure count.
        call_on_recovery: Run the operation on the call that leaves ``OPEN``
            instead of only switching to ``HALF_OPEN``.
    """

    failure_threshold: int
    half_open_threshold: int
    recovery_timeout: float
    call_timeout: float
    failure_count_mode: FailureCountMode = FailureCountMode.CUMULATIVE
    call_on_recovery: bool = False

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.half_open_threshold < 1:
            raise ValueError("half_open_threshold must be >= 1")
        if self.recovery_timeout <= 0:
            raise ValueError("recovery_timeout must be > 0")
        if self.call_timeout <= 0:
            raise ValueError("call_timeout must be > 0")
