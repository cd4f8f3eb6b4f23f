"""Circuit breaker with a timeout-bounded executor.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - All calls through one breaker are serialized. The breaker lock is held
    while the operation runs, so state transitions never interleave.
  - The call that finds the recovery window elapsed only moves the circuit to
    ``HALF_OPEN`` and returns ``None``; the next call is the first trial call.
    Set ``call_on_recovery`` to run the operation on the transitioning call
    instead.
  - A timed-out operation is not stopped. It finishes in the background and
    its outcome is discarded; pass a ``cancel_event`` to let it stop early.
"""

from circuit_guard.circuit_breaker.async_breaker import AsyncCircuitBreaker
from circuit_guard.circuit_breaker.breaker import CircuitBreaker
from circuit_guard.circuit_breaker.config import CircuitBreakerConfig, FailureCountMode
from circuit_guard.circuit_breaker.exceptions import (
    BreakerClosedError,
    CallTimeoutError,
    CircuitBreakerError,
    CircuitOpenError,
    InvalidStateError,
    OperationFailedError,
)
from circuit_guard.circuit_breaker.state import BreakerSnapshot, CircuitState

__all__ = [
    "AsyncCircuitBreaker",
    "BreakerClosedError",
    "BreakerSnapshot",
    "CallTimeoutError",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "FailureCountMode",
    "InvalidStateError",
    "OperationFailedError",
]
