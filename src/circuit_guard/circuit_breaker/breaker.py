"""Core circuit breaker implementation."""

import threading
from collections.abc import Callable
from concurrent.futures import Executor
from datetime import UTC, datetime
from types import TracebackType
from typing import Self, TypeVar

from circuit_guard.circuit_breaker.config import CircuitBreakerConfig, FailureCountMode
from circuit_guard.circuit_breaker.exceptions import (
    BreakerClosedError,
    CallTimeoutError,
    CircuitBreakerError,
    CircuitOpenError,
    InvalidStateError,
    OperationFailedError,
)
from circuit_guard.circuit_breaker.executor import run_with_timeout
from circuit_guard.circuit_breaker.state import (
    BreakerPhase,
    BreakerSnapshot,
    CircuitState,
    Closed,
    HalfOpen,
    Open,
)
from circuit_guard.logging import (
    BreakerLogger,
    get_logger,
    log_debug,
    log_info,
    log_warning,
)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class BreakerStateMachine:
    """Transition bookkeeping shared by the sync and async breakers.

    Callers must hold their breaker's lock around ``_admit`` and the matching
    ``_record_success`` / ``_record_failure`` so a call is one atomic unit.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig,
        logger: BreakerLogger | None = None,
    ) -> None:
        self.name = name
        self.config = config
        self._logger = get_logger(__name__) if logger is None else logger
        self._phase: BreakerPhase = Closed()
        self._closed = False

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._phase.state

    def snapshot(self) -> BreakerSnapshot:
        """Return a point-in-time view of the breaker's counters."""
        return BreakerSnapshot.from_phase(self.name, self._phase)

    def _transition(self, new: BreakerPhase) -> None:
        old = self._phase
        self._phase = new
        if old.state != new.state:
            log_info(
                self._logger,
                "circuit_breaker.state_changed",
                breaker=self.name,
                old=str(old.state),
                new=str(new.state),
            )

    def _admit(self) -> bool:
        """Decide whether the current call may run the operation.

        Returns:
            ``True`` when the operation should run. ``False`` when this call
            only moved the circuit from ``OPEN`` to ``HALF_OPEN``.

        Raises:
            CircuitOpenError: The recovery window has not elapsed yet.
            InvalidStateError: The breaker holds an unknown state.
            BreakerClosedError: The breaker was closed by its owner.
        """
        if self._closed:
            raise BreakerClosedError(self.name)

        phase = self._phase
        if not isinstance(phase, (Closed, Open, HalfOpen)):
            raise InvalidStateError(self.name, phase)

        log_debug(
            self._logger,
            "circuit_breaker.call",
            breaker=self.name,
            state=str(phase.state),
        )
        if not isinstance(phase, Open):
            return True

        elapsed = (_utcnow() - phase.last_failure_at).total_seconds()
        if elapsed <= self.config.recovery_timeout:
            retry_after = max(self.config.recovery_timeout - elapsed, 0.0)
            log_debug(
                self._logger,
                "circuit_breaker.call_rejected",
                breaker=self.name,
                retry_after=retry_after,
            )
            raise CircuitOpenError(self.name, retry_after=retry_after)

        self._transition(HalfOpen(last_failure_at=phase.last_failure_at))
        return self.config.call_on_recovery

    def _record_success(self) -> None:
        phase = self._phase
        if isinstance(phase, HalfOpen):
            successes = phase.success_count + 1
            if successes >= self.config.half_open_threshold:
                self._transition(Closed(last_failure_at=phase.last_failure_at))
            else:
                self._transition(
                    HalfOpen(
                        success_count=successes,
                        last_failure_at=phase.last_failure_at,
                    )
                )
            return

        if (
            isinstance(phase, Closed)
            and phase.failure_count
            and self.config.failure_count_mode == FailureCountMode.CONSECUTIVE
        ):
            self._transition(Closed(last_failure_at=phase.last_failure_at))

    def _record_failure(self, error: CircuitBreakerError) -> None:
        now = _utcnow()
        phase = self._phase
        if isinstance(phase, HalfOpen):
            log_warning(
                self._logger,
                "circuit_breaker.call_failed",
                breaker=self.name,
                state=str(phase.state),
                failure_count=1,
                error=str(error),
            )
            self._transition(Open(last_failure_at=now, failure_count=1))
            return

        if isinstance(phase, Closed):
            failures = phase.failure_count + 1
            log_warning(
                self._logger,
                "circuit_breaker.call_failed",
                breaker=self.name,
                state=str(phase.state),
                failure_count=failures,
                error=str(error),
            )
            if failures >= self.config.failure_threshold:
                self._transition(Open(last_failure_at=now, failure_count=failures))
            else:
                self._transition(Closed(failure_count=failures, last_failure_at=now))


class CircuitBreaker(BreakerStateMachine):
    """Stateful proxy around a dangerous blocking operation."""

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig,
        logger: BreakerLogger | None = None,
        executor: Executor | None = None,
    ) -> None:
        """Build a circuit breaker with optional custom dependencies.

        Args:
            name: Breaker name used in errors and log events.
            config: Breaker behavior configuration.
            logger: Structured or stdlib logger. Defaults to a structlog
                logger for this module.
            executor: Optional pool that runs operations, for callers that
                want to bound concurrency. By default each operation runs on
                its own daemon thread.
        """
        super().__init__(name, config=config, logger=logger)
        self._lock = threading.Lock()
        self._executor = executor

    def call(
        self,
        operation: Callable[[], T],
        *,
        cancel_event: threading.Event | None = None,
    ) -> T | None:
        """Invoke a callable under circuit breaker protection.

        Calls through one breaker are serialized: the lock is held while the
        operation runs, so a concurrent caller waits up to ``call_timeout``
        before it can even be rejected.

        Args:
            operation: Zero-argument callable to execute.
            cancel_event: Optional event set if the call times out, for
                operations that support cooperative cancellation.

        Returns:
            The result of ``operation`` when it ran and succeeded, or ``None``
            when this call only moved the circuit from ``OPEN`` to
            ``HALF_OPEN``.

        Raises:
            CircuitOpenError: The circuit is open and the call was rejected.
            CallTimeoutError: The operation exceeded ``call_timeout``.
            OperationFailedError: The operation raised.
            InvalidStateError: The breaker holds an unknown state.
            BreakerClosedError: :meth:`close` was called.
        """
        with self._lock:
            if not self._admit():
                return None

            try:
                result = run_with_timeout(
                    operation,
                    self.config.call_timeout,
                    name=self.name,
                    executor=self._executor,
                    cancel_event=cancel_event,
                    logger=self._logger,
                )
            except (CallTimeoutError, OperationFailedError) as exc:
                self._record_failure(exc)
                raise

            self._record_success()
            return result

    def close(self) -> None:
        """Stop accepting calls.

        Operations still running after a timeout finish in the background.
        Injected executors are left to their owner.
        """
        with self._lock:
            self._closed = True

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()
