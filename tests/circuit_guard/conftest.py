from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest
import structlog

import circuit_guard.circuit_breaker.breaker as breaker_mod
from tests.circuit_guard.support.breaker_fakes import FakeClock, FakeLogger


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Drive breaker timestamps from a manually advanced clock."""
    clock = FakeClock()
    monkeypatch.setattr(breaker_mod, "_utcnow", clock.now)
    return clock


@pytest.fixture
def restore_logging() -> Iterator[None]:
    """Undo process-wide logging configuration made by a test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)
