from __future__ import annotations

from concurrent.futures import Executor

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from circuit_guard.circuit_breaker.async_breaker import AsyncCircuitBreaker
from circuit_guard.circuit_breaker.breaker import CircuitBreaker
from circuit_guard.circuit_breaker.config import CircuitBreakerConfig, FailureCountMode
from circuit_guard.logging import (
    BreakerLogger,
    configure_structlog,
    get_log_level_value,
    get_logger,
)


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class CircuitBreakerSettings(BaseSettings):
    """Environment-driven settings for one protected dependency."""

    model_config = prefixed_settings_config("CIRCUIT_BREAKER_")

    name: str = "default"
    failure_threshold: int
    half_open_threshold: int
    recovery_timeout_seconds: float
    call_timeout_seconds: float
    failure_count_mode: FailureCountMode = FailureCountMode.CUMULATIVE
    call_on_recovery: bool = False
    log_level: str = "INFO"

    @field_validator("failure_count_mode", "log_level", mode="before")
    @classmethod
    def _normalize_case(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip()
        if info.field_name == "log_level":
            return normalized.upper()
        return normalized.lower()

    @field_validator("name", mode="before")
    @classmethod
    def _validate_name(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip()
        if not normalized:
            raise ValueError("name must be non-empty")
        return normalized

    @model_validator(mode="after")
    def _validate_breaker_settings(self) -> CircuitBreakerSettings:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.half_open_threshold < 1:
            raise ValueError("half_open_threshold must be >= 1")
        if self.recovery_timeout_seconds <= 0:
            raise ValueError("recovery_timeout_seconds must be > 0")
        if self.call_timeout_seconds <= 0:
            raise ValueError("call_timeout_seconds must be > 0")
        get_log_level_value(self.log_level)
        return self

    @property
    def logger_name(self) -> str:
        """Logger name used for this breaker's events."""
        return f"circuit_guard.breaker.{self.name}"

    def breaker_config(self) -> CircuitBreakerConfig:
        """Build the breaker configuration described by these settings."""
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            half_open_threshold=self.half_open_threshold,
            recovery_timeout=self.recovery_timeout_seconds,
            call_timeout=self.call_timeout_seconds,
            failure_count_mode=self.failure_count_mode,
            call_on_recovery=self.call_on_recovery,
        )

    def configure_logging(self) -> BreakerLogger:
        """Install process logging at ``log_level`` and return this breaker's logger."""
        return configure_structlog(
            log_level=self.log_level,
            logger_name=self.logger_name,
        )

    def build_breaker(
        self,
        *,
        logger: BreakerLogger | None = None,
        executor: Executor | None = None,
    ) -> CircuitBreaker:
        """Build a synchronous breaker named and configured by these settings."""
        return CircuitBreaker(
            self.name,
            config=self.breaker_config(),
            logger=get_logger(self.logger_name) if logger is None else logger,
            executor=executor,
        )

    def build_async_breaker(
        self,
        *,
        logger: BreakerLogger | None = None,
    ) -> AsyncCircuitBreaker:
        """Build an asyncio breaker named and configured by these settings."""
        return AsyncCircuitBreaker(
            self.name,
            config=self.breaker_config(),
            logger=get_logger(self.logger_name) if logger is None else logger,
        )
