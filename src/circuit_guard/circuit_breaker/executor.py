"""Timeout-bounded execution of protected operations.

An operation that misses its deadline is never forcibly stopped. It keeps
running in the background and whatever it eventually returns or raises is
discarded. Callers that want an early stop pass a ``cancel_event`` which is set
once the deadline passes; operations that watch it can bail out cooperatively.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Awaitable, Callable
from concurrent.futures import Executor, Future, wait
from typing import TypeVar

from circuit_guard.circuit_breaker.exceptions import (
    CallTimeoutError,
    OperationFailedError,
)
from circuit_guard.logging import BreakerLogger, get_logger, log_debug

T = TypeVar("T")

_logger = get_logger(__name__)


def _callable_name(func: object) -> str:
    callable_name = getattr(func, "__qualname__", None)
    if callable_name is None:
        callable_name = getattr(func, "__name__", None)
    if callable_name is None:
        callable_name = func.__class__.__qualname__
    return str(callable_name)


def _discard_outcome(
    name: str, logger: BreakerLogger
) -> Callable[[Future[object]], None]:
    def _on_done(future: Future[object]) -> None:
        if future.cancelled():
            return
        error = future.exception()
        log_debug(
            logger,
            "circuit_breaker.abandoned_call_finished",
            breaker=name,
            error=None if error is None else repr(error),
        )

    return _on_done


def start_in_thread(operation: Callable[[], T], *, name: str) -> Future[T]:
    """Start ``operation`` on its own daemon thread.

    The returned future is a single-slot holder for the outcome; nothing ever
    blocks on filling it, so a thread outliving its caller simply exits.
    """
    future: Future[T] = Future()

    def _run() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = operation()
        except BaseException as exc:
            future.set_exception(exc)
        else:
            future.set_result(result)

    thread = threading.Thread(
        target=_run,
        name=f"circuit_breaker:{name}:{_callable_name(operation)}",
        daemon=True,
    )
    thread.start()
    return future


def run_with_timeout(
    operation: Callable[[], T],
    timeout: float,
    *,
    name: str,
    executor: Executor | None = None,
    cancel_event: threading.Event | None = None,
    logger: BreakerLogger | None = None,
) -> T:
    """Run ``operation`` concurrently and wait at most ``timeout`` seconds.

    Args:
        operation: Zero-argument callable to run.
        timeout: Seconds to wait for the operation to finish.
        name: Breaker name used in errors and log events.
        executor: Optional pool the operation is submitted to. Without one
            every operation gets its own daemon thread, so operations that
            outlive their deadline never delay later calls.
        cancel_event: Optional event set when the deadline elapses.
        logger: Logger for abandoned-call events.

    Returns:
        The operation's result.

    Raises:
        CallTimeoutError: The deadline elapsed before the operation finished.
        OperationFailedError: The operation raised; the original exception is
            chained as ``__cause__``.
    """
    logger = _logger if logger is None else logger
    if executor is None:
        future = start_in_thread(operation, name=name)
    else:
        future = executor.submit(operation)
    done, _ = wait((future,), timeout=timeout)

    if future not in done:
        if cancel_event is not None:
            cancel_event.set()
        # Only withdraws work still queued behind a busy injected pool.
        withdrawn = executor is not None and future.cancel()
        if not withdrawn:
            future.add_done_callback(_discard_outcome(name, logger))
        log_debug(
            logger,
            "circuit_breaker.call_abandoned",
            breaker=name,
            operation=_callable_name(operation),
            timeout=timeout,
            withdrawn=withdrawn,
        )
        raise CallTimeoutError(name, timeout)

    try:
        return future.result()
    except Exception as exc:
        raise OperationFailedError(name) from exc


class AbandonedTasks:
    """Keep strong references to timed-out tasks until they finish."""

    def __init__(self, name: str, logger: BreakerLogger) -> None:
        self._name = name
        self._logger = logger
        self._tasks: set[asyncio.Task[object]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def add(self, task: asyncio.Task[object]) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[object]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        log_debug(
            self._logger,
            "circuit_breaker.abandoned_call_finished",
            breaker=self._name,
            error=None if error is None else repr(error),
        )

    async def cancel_all(self) -> None:
        """Cancel every still-running task and wait for it to settle."""
        tasks = tuple(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


async def run_with_timeout_async(
    operation: Callable[[], Awaitable[T]],
    timeout: float,
    *,
    name: str,
    abandoned: AbandonedTasks,
    cancel_event: asyncio.Event | None = None,
    logger: BreakerLogger | None = None,
) -> T:
    """Run ``operation`` in its own task and wait at most ``timeout`` seconds.

    Mirrors :func:`run_with_timeout` for coroutines. A timed-out task is handed
    to ``abandoned`` and left running. If the awaiting caller is cancelled the
    operation task is cancelled with it.
    """
    logger = _logger if logger is None else logger

    async def _run() -> T:
        return await operation()

    task = asyncio.create_task(
        _run(), name=f"circuit_breaker:{name}:{_callable_name(operation)}"
    )
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task not in done:
        if cancel_event is not None:
            cancel_event.set()
        abandoned.add(task)
        log_debug(
            logger,
            "circuit_breaker.call_abandoned",
            breaker=name,
            operation=_callable_name(operation),
            timeout=timeout,
        )
        raise CallTimeoutError(name, timeout)

    try:
        return task.result()
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        raise OperationFailedError(name) from exc
