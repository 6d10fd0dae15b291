"""Counters describing engine activity."""

from __future__ import annotations

from typing import Any

import msgspec


def _counts_factory() -> dict[str, int]:
    return {}


class EngineStats(msgspec.Struct):
    """Mutable counters updated by the dispatcher and the tick loop."""

    frames_in: int = 0
    frames_out: int = 0
    commands_accepted: int = 0
    momentary_expiries: int = 0
    telemetry_samples: int = 0
    status_broadcasts: int = 0
    discoveries: int = 0
    removals: int = 0
    rejections: dict[str, int] = msgspec.field(default_factory=_counts_factory)

    def record_rejection(self, kind: str) -> None:
        self.rejections[kind] = self.rejections.get(kind, 0) + 1

    @property
    def total_rejections(self) -> int:
        return sum(self.rejections.values())

    def as_dict(self) -> dict[str, Any]:
        return msgspec.structs.asdict(self)


__all__ = ["EngineStats"]
