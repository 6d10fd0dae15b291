"""Settings loader for the PayloadLink engine.

Configuration is read from an optional JSON file; every key is optional and
missing files fall back to the built-in defaults.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import msgspec
from marshmallow import ValidationError

from .model import RuntimeConfig
from .schema import RuntimeConfigSchema

logger = logging.getLogger("payloadlink.config")


def _load_raw_config(path: Path | None) -> dict[str, Any]:
    if path is None or not path.exists():
        if path is not None:
            logger.info("Config file %s not found; using defaults", path)
        return {}
    try:
        raw = msgspec.json.decode(path.read_bytes())
    except msgspec.DecodeError as exc:
        raise ValueError(f"Config file {path} is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return raw


def load_runtime_config(path: str | Path | None = None) -> RuntimeConfig:
    """Load configuration from *path* or defaults."""

    raw = _load_raw_config(Path(path) if path is not None else None)
    try:
        config: RuntimeConfig = RuntimeConfigSchema().load(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc.messages}") from exc
    return config


__all__ = ["RuntimeConfig", "load_runtime_config"]
