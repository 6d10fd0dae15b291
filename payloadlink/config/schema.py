"""Marshmallow schema for RuntimeConfig validation."""

from __future__ import annotations

from typing import Any, Dict

from marshmallow import RAISE, Schema, ValidationError, fields, post_load, validate, validates_schema

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
from ..protocol import protocol
from .model import RuntimeConfig


class RuntimeConfigSchema(Schema):
    """Declarative validation schema for PayloadLink configuration."""

    class Meta:
        unknown = RAISE

    # Scheduler
    tick_interval_ms = fields.Int(load_default=DEFAULT_TICK_INTERVAL_MS, validate=validate.Range(min=1))
    status_interval_ms = fields.Int(load_default=DEFAULT_STATUS_INTERVAL_MS, validate=validate.Range(min=1))
    momentary_default_timeout_ms = fields.Int(
        load_default=DEFAULT_MOMENTARY_TIMEOUT,
        validate=validate.Range(min=1, max=protocol.UINT32_MAX),
    )
    liveness_timeout_ms = fields.Int(load_default=DEFAULT_LIVENESS_TIMEOUT_MS, validate=validate.Range(min=0))

    # System
    debug_logging = fields.Bool(load_default=DEFAULT_DEBUG_LOGGING)
    metrics_enabled = fields.Bool(load_default=DEFAULT_METRICS_ENABLED)
    metrics_host = fields.Str(load_default=DEFAULT_METRICS_HOST, validate=validate.Length(min=1))
    metrics_port = fields.Int(load_default=DEFAULT_METRICS_PORT, validate=validate.Range(min=0, max=65535))

    @validates_schema
    def validate_liveness_window(self, data: Dict[str, Any], **kwargs: Any) -> None:
        liveness = data.get("liveness_timeout_ms", 0)
        status = data.get("status_interval_ms", DEFAULT_STATUS_INTERVAL_MS)
        if liveness and liveness < status:
            raise ValidationError(
                "liveness_timeout_ms must be 0 or at least status_interval_ms",
                field_name="liveness_timeout_ms",
            )

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> RuntimeConfig:
        return RuntimeConfig(**data)
