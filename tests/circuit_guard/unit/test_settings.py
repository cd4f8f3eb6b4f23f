from __future__ import annotations

import json
import logging
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, cast

import pytest
from pydantic import ValidationError

from circuit_guard.circuit_breaker import (
    AsyncCircuitBreaker,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    FailureCountMode,
    OperationFailedError,
)
from circuit_guard.settings import CircuitBreakerSettings
from tests.circuit_guard.support.breaker_fakes import FakeLogger


def _build_settings(**overrides: object) -> CircuitBreakerSettings:
    values: dict[str, object] = {
        "failure_threshold": 2,
        "half_open_threshold": 2,
        "recovery_timeout_seconds": 2.0,
        "call_timeout_seconds": 2.0,
    }
    values.update(overrides)
    return CircuitBreakerSettings(**cast(Any, values))


def test_settings_build_breaker_config() -> None:
    settings = _build_settings()

    assert settings.breaker_config() == CircuitBreakerConfig(
        failure_threshold=2,
        half_open_threshold=2,
        recovery_timeout=2.0,
        call_timeout=2.0,
    )
    assert settings.name == "default"
    assert settings.log_level == "INFO"


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CIRCUIT_BREAKER_NAME", " payments ")
    monkeypatch.setenv("CIRCUIT_BREAKER_FAILURE_THRESHOLD", "3")
    monkeypatch.setenv("CIRCUIT_BREAKER_HALF_OPEN_THRESHOLD", "1")
    monkeypatch.setenv("circuit_breaker_recovery_timeout_seconds", "0.5")
    monkeypatch.setenv("CIRCUIT_BREAKER_CALL_TIMEOUT_SECONDS", "0.25")
    monkeypatch.setenv("CIRCUIT_BREAKER_FAILURE_COUNT_MODE", "Consecutive")
    monkeypatch.setenv("CIRCUIT_BREAKER_CALL_ON_RECOVERY", "true")
    monkeypatch.setenv("CIRCUIT_BREAKER_LOG_LEVEL", "debug")

    settings = CircuitBreakerSettings()  # type: ignore[call-arg]
    config = settings.breaker_config()

    assert settings.name == "payments"
    assert settings.log_level == "DEBUG"
    assert config.failure_threshold == 3
    assert config.half_open_threshold == 1
    assert config.recovery_timeout == 0.5
    assert config.call_timeout == 0.25
    assert config.failure_count_mode == FailureCountMode.CONSECUTIVE
    assert config.call_on_recovery is True


def test_settings_require_core_thresholds(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CIRCUIT_BREAKER_FAILURE_THRESHOLD", raising=False)

    with pytest.raises(ValidationError):
        CircuitBreakerSettings(  # type: ignore[call-arg]
            half_open_threshold=1,
            recovery_timeout_seconds=1.0,
            call_timeout_seconds=1.0,
        )


@pytest.mark.parametrize(
    "overrides",
    [
        {"failure_threshold": 0},
        {"half_open_threshold": -1},
        {"recovery_timeout_seconds": 0},
        {"call_timeout_seconds": 0},
        {"log_level": "TRACE"},
        {"name": "   "},
        {"failure_count_mode": "sliding"},
    ],
)
def test_settings_reject_invalid_values(overrides: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        _build_settings(**overrides)


def test_build_breaker_applies_name_and_config(fake_logger: FakeLogger) -> None:
    settings = _build_settings(name="payments", failure_threshold=1)

    with settings.build_breaker(logger=fake_logger) as breaker:
        assert isinstance(breaker, CircuitBreaker)
        assert breaker.name == "payments"
        assert breaker.config == settings.breaker_config()
        assert breaker.call(lambda: "ok") == "ok"

        with pytest.raises(OperationFailedError):
            breaker.call(lambda: 1 / 0)

        assert breaker.state == CircuitState.OPEN

    assert fake_logger.events("circuit_breaker.state_changed")[0]["breaker"] == (
        "payments"
    )


def test_build_breaker_passes_injected_executor(fake_logger: FakeLogger) -> None:
    settings = _build_settings()

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="io") as executor:
        with settings.build_breaker(logger=fake_logger, executor=executor) as breaker:
            thread_name = breaker.call(lambda: threading.current_thread().name)

    assert thread_name is not None
    assert thread_name.startswith("io")


@pytest.mark.asyncio
async def test_build_async_breaker_applies_name_and_config(
    fake_logger: FakeLogger,
) -> None:
    settings = _build_settings(name="search")

    async def _ok() -> str:
        return "ok"

    async with settings.build_async_breaker(logger=fake_logger) as breaker:
        assert isinstance(breaker, AsyncCircuitBreaker)
        assert breaker.name == "search"
        assert breaker.config == settings.breaker_config()
        assert await breaker.call(_ok) == "ok"


@pytest.mark.usefixtures("restore_logging")
def test_configure_logging_applies_log_level(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(sys.stderr, "isatty", lambda: False, raising=False)
    settings = _build_settings(log_level="warning")

    logger = settings.configure_logging()

    assert logging.getLogger().level == logging.WARNING
    assert logger is not None


@pytest.mark.usefixtures("restore_logging")
def test_configured_breaker_emits_json_events_at_configured_level(
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(sys.stderr, "isatty", lambda: False, raising=False)
    settings = _build_settings(
        name="payments", failure_threshold=1, log_level="WARNING"
    )
    logger = settings.configure_logging()

    with settings.build_breaker(logger=logger) as breaker:
        assert breaker.call(lambda: "ok") == "ok"
        with pytest.raises(OperationFailedError):
            breaker.call(lambda: 1 / 0)

    lines = [line for line in capsys.readouterr().err.splitlines() if line.strip()]
    events = [json.loads(line) for line in lines]

    assert [event["event"] for event in events] == ["circuit_breaker.call_failed"]
    assert events[0]["breaker"] == "payments"
    assert events[0]["level"] == "warning"
    assert events[0]["logger"] == settings.logger_name
