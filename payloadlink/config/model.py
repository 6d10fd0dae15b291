"""Data model for PayloadLink configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..const import (
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_LIVENESS_TIMEOUT_MS,
    DEFAULT_METRICS_ENABLED,
    DEFAULT_METRICS_HOST,
    DEFAULT_METRICS_PORT,
    DEFAULT_MOMENTARY_TIMEOUT,
    DEFAULT_STATUS_INTERVAL_MS,
    DEFAULT_TICK_INTERVAL_MS,
)

logger = logging.getLogger("payloadlink.config")


@dataclass(slots=True)
class RuntimeConfig:
    """Strongly typed configuration for one engine."""

    tick_interval_ms: int = DEFAULT_TICK_INTERVAL_MS
    status_interval_ms: int = DEFAULT_STATUS_INTERVAL_MS
    momentary_default_timeout_ms: int = DEFAULT_MOMENTARY_TIMEOUT
    liveness_timeout_ms: int = DEFAULT_LIVENESS_TIMEOUT_MS
    debug_logging: bool = DEFAULT_DEBUG_LOGGING
    metrics_enabled: bool = DEFAULT_METRICS_ENABLED
    metrics_host: str = DEFAULT_METRICS_HOST
    metrics_port: int = DEFAULT_METRICS_PORT

    def __post_init__(self) -> None:
        for field_name in ("tick_interval_ms", "status_interval_ms", "momentary_default_timeout_ms"):
            setattr(self, field_name, self._require_positive(field_name, int(getattr(self, field_name))))
        if self.liveness_timeout_ms < 0:
            raise ValueError("liveness_timeout_ms must be zero (disabled) or positive")
        if not 0 <= self.metrics_port <= 65535:
            raise ValueError("metrics_port must be within 0..65535")
        if self.tick_interval_ms > self.momentary_default_timeout_ms:
            logger.warning(
                "tick_interval_ms (%d) exceeds the momentary timeout (%d); "
                "momentary reverts will be late by up to one tick.",
                self.tick_interval_ms,
                self.momentary_default_timeout_ms,
            )

    @staticmethod
    def _require_positive(name: str, value: int) -> int:
        if value <= 0:
            raise ValueError(f"{name} must be a positive integer")
        return value
