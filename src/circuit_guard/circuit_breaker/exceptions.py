"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the circuit is open.
  - A call whose operation did not finish within the call timeout.
  - A call whose operation raised (the original error is the ``__cause__``).
  - A breaker found in a state it does not know how to handle.
  - A call made after the breaker was closed.
"""


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected because the circuit is open.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
        retry_after: Seconds until a half-open trial call may be attempted.
    """

    def __init__(self, breaker_name: str, retry_after: float) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            breaker_name: Breaker rejecting the call.
            retry_after: Seconds until the next trial window opens.
        """
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(f"circuit_open: {breaker_name} retry_after={retry_after:g}s")


class CallTimeoutError(CircuitBreakerError):
    """Raised when the protected operation exceeds the call timeout.

    Attributes:
        breaker_name: Name of the breaker running the call.
        timeout: Seconds the operation was allowed to run.
    """

    def __init__(self, breaker_name: str, timeout: float) -> None:
        self.breaker_name = breaker_name
        self.timeout = timeout
        super().__init__(f"call_timeout: {breaker_name} timeout={timeout:g}s")


class OperationFailedError(CircuitBreakerError):
    """Raised when the protected operation itself raised an exception."""

    def __init__(self, breaker_name: str) -> None:
        self.breaker_name = breaker_name
        super().__init__(f"operation_failed: {breaker_name}")


class InvalidStateError(CircuitBreakerError):
    """Raised when the breaker holds a state it cannot dispatch on."""

    def __init__(self, breaker_name: str, state: object) -> None:
        self.breaker_name = breaker_name
        self.state = state
        super().__init__(f"invalid_state: {breaker_name} state={state!r}")


class BreakerClosedError(CircuitBreakerError):
    """Raised when a call is made through a breaker that has been closed."""

    def __init__(self, breaker_name: str) -> None:
        self.breaker_name = breaker_name
        super().__init__(f"breaker_closed: {breaker_name}")
