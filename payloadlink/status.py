"""Payload-wide health roll-up and the periodic status broadcast."""

from __future__ import annotations

import logging

from .const import DEFAULT_STATUS_INTERVAL_MS
from .protocol import protocol
from .protocol.protocol import PayloadErrorFlag
from .protocol.structures import StatusPacket
from .registry import CapabilityRegistry

logger = logging.getLogger("payloadlink.status")


class StatusAggregator:
    """Uptime, fault flags and counts for one payload.

    Uptime advances only by forward tick deltas.  Fault flags are set and
    cleared exclusively by the payload's own sensing logic through
    :meth:`raise_fault` / :meth:`clear_fault`; command outcomes never touch
    them.
    """

    def __init__(
        self,
        payload_id: int,
        name: str,
        registry: CapabilityRegistry,
        *,
        interval_ms: int = DEFAULT_STATUS_INTERVAL_MS,
    ) -> None:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self.payload_id = payload_id
        self.name = name
        self._registry = registry
        self._interval_ms = interval_ms
        self.uptime_ms = 0
        self.error_flags = PayloadErrorFlag(0)
        self.custom_error_flags = 0
        self.power_draw = 0.0
        self.temperature = 0.0
        self._last_tick_ms: int | None = None
        self._next_boundary_ms = interval_ms

    def raise_fault(self, flags: PayloadErrorFlag, custom: int = 0) -> None:
        if custom:
            flags |= PayloadErrorFlag.CUSTOM
        added = flags & ~self.error_flags
        self.error_flags |= flags
        self.custom_error_flags = (self.custom_error_flags | custom) & protocol.UINT32_MAX
        if added:
            logger.warning("Payload %d fault raised: %r", self.payload_id, added)

    def clear_fault(self, flags: PayloadErrorFlag, custom: int = 0) -> None:
        self.error_flags &= ~flags
        self.custom_error_flags &= ~custom & protocol.UINT32_MAX
        if PayloadErrorFlag.CUSTOM in flags:
            self.custom_error_flags = 0
        elif not self.custom_error_flags:
            self.error_flags &= ~PayloadErrorFlag.CUSTOM
        logger.info("Payload %d fault cleared: %r", self.payload_id, flags)

    def update_health(
        self,
        *,
        power_draw: float | None = None,
        temperature: float | None = None,
    ) -> None:
        if power_draw is not None:
            self.power_draw = power_draw
        if temperature is not None:
            self.temperature = temperature

    def advance(self, now_ms: int) -> None:
        """Fold the time since the previous tick into the uptime counter."""
        if self._last_tick_ms is not None and now_ms > self._last_tick_ms:
            self.uptime_ms += now_ms - self._last_tick_ms
        if self._last_tick_ms is None or now_ms > self._last_tick_ms:
            self._last_tick_ms = now_ms

    def tick(self, now_ms: int) -> StatusPacket | None:
        """Advance uptime; return a status packet when a boundary is crossed.

        A late tick that skips several boundaries still emits a single packet.
        """
        self.advance(now_ms)
        if self.uptime_ms < self._next_boundary_ms:
            return None
        missed = (self.uptime_ms - self._next_boundary_ms) // self._interval_ms
        self._next_boundary_ms += (missed + 1) * self._interval_ms
        return self.status_packet()

    def status_packet(self) -> StatusPacket:
        return StatusPacket(
            payload_id=self.payload_id,
            uptime_ms=self.uptime_ms & protocol.UINT32_MAX,
            error_flags=int(self.error_flags),
            custom_error_flags=self.custom_error_flags,
            power_draw=self.power_draw,
            temperature=self.temperature,
            num_functions=self._registry.num_functions,
            num_telemetry=self._registry.num_telemetry,
            name=self.name,
        )


__all__ = ["StatusAggregator"]
