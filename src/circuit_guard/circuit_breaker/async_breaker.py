"""Asyncio front-end for the circuit breaker state machine."""

import asyncio
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Self, TypeVar

from circuit_guard.circuit_breaker.breaker import BreakerStateMachine
from circuit_guard.circuit_breaker.config import CircuitBreakerConfig
from circuit_guard.circuit_breaker.exceptions import (
    CallTimeoutError,
    OperationFailedError,
)
from circuit_guard.circuit_breaker.executor import (
    AbandonedTasks,
    run_with_timeout_async,
)
from circuit_guard.logging import BreakerLogger

T = TypeVar("T")


class AsyncCircuitBreaker(BreakerStateMachine):
    """Stateful proxy around a dangerous async operation."""

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig,
        logger: BreakerLogger | None = None,
    ) -> None:
        super().__init__(name, config=config, logger=logger)
        self._lock = asyncio.Lock()
        self._abandoned = AbandonedTasks(name, self._logger)

    @property
    def abandoned_calls(self) -> int:
        """Number of timed-out operations still running in the background."""
        return len(self._abandoned)

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> T | None:
        """Invoke an async callable under circuit breaker protection.

        Same contract as :meth:`CircuitBreaker.call`. The lock is held across
        the awaited operation, so calls through one breaker are serialized.
        Cancelling the awaiting task cancels the operation and records
        nothing.
        """
        async with self._lock:
            if not self._admit():
                return None

            try:
                result = await run_with_timeout_async(
                    operation,
                    self.config.call_timeout,
                    name=self.name,
                    abandoned=self._abandoned,
                    cancel_event=cancel_event,
                    logger=self._logger,
                )
            except (CallTimeoutError, OperationFailedError) as exc:
                self._record_failure(exc)
                raise

            self._record_success()
            return result

    async def aclose(self) -> None:
        """Stop accepting calls and cancel timed-out operations still running."""
        async with self._lock:
            self._closed = True
        await self._abandoned.cancel_all()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.aclose()
