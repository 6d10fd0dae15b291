"""Runtime defaults for the PayloadLink engine."""

from __future__ import annotations

from typing import Final

from .protocol.protocol import DEFAULT_MOMENTARY_TIMEOUT_MS, STATUS_INTERVAL_MS

DEFAULT_TICK_INTERVAL_MS: Final[int] = 10
DEFAULT_STATUS_INTERVAL_MS: Final[int] = STATUS_INTERVAL_MS
DEFAULT_MOMENTARY_TIMEOUT: Final[int] = DEFAULT_MOMENTARY_TIMEOUT_MS

# Payloads silent for this long are dropped; 0 disables pruning.
DEFAULT_LIVENESS_TIMEOUT_MS: Final[int] = 5000

DEFAULT_DEBUG_LOGGING: Final[bool] = False
DEFAULT_METRICS_ENABLED: Final[bool] = False
DEFAULT_METRICS_HOST: Final[str] = "127.0.0.1"
DEFAULT_METRICS_PORT: Final[int] = 9140

LOG_STREAM_ENV: Final[str] = "PAYLOADLINK_LOG_STREAM"
SYSLOG_IDENT: Final[str] = "payloadlink "
