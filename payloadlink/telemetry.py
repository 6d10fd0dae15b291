"""Rate-limited telemetry sampling."""

from __future__ import annotations

import logging
from collections.abc import Callable

import msgspec

from .errors import TypeMismatch
from .protocol.codec import Number, TypedValue
from .protocol.structures import TelemetryDataPacket
from .registry import CapabilityRegistry, TelemetryChannelDescriptor

logger = logging.getLogger("payloadlink.telemetry")

SensorSource = Callable[[], Number | TypedValue]


class TelemetryFrame(msgspec.Struct, frozen=True):
    index: int
    value: TypedValue
    timestamp_ms: int

    def to_packet(self, payload_id: int) -> TelemetryDataPacket:
        low, high = self.value.encode()
        return TelemetryDataPacket(
            payload_id=payload_id,
            index=self.index,
            value_low=low,
            value_high=high,
        )


class _ChannelState:
    __slots__ = ("descriptor", "last_sample_ms", "source")

    def __init__(self, descriptor: TelemetryChannelDescriptor) -> None:
        self.descriptor = descriptor
        self.last_sample_ms: int | None = None
        self.source: SensorSource | None = None

    def due(self, now_ms: int) -> bool:
        interval = self.descriptor.sample_interval_ms
        if interval is None or self.last_sample_ms is None:
            return True
        return now_ms - self.last_sample_ms >= interval


class TelemetrySampler:
    """Per-channel sampling gate for one payload.

    Only the most recent sample matters: a sample that arrives too early is
    dropped, never queued.
    """

    def __init__(self, registry: CapabilityRegistry) -> None:
        self._registry = registry
        self._channels: dict[int, _ChannelState] = {}

    def track(self, descriptor: TelemetryChannelDescriptor) -> None:
        if descriptor.index is None:
            raise ValueError("Only registered channels can be tracked")
        self._channels.setdefault(descriptor.index, _ChannelState(descriptor))

    def bind(self, index: int, source: SensorSource) -> None:
        """Attach the sensor read used by :meth:`poll` for channel *index*."""
        self._channel(index).source = source

    def last_sample_ms(self, index: int) -> int | None:
        return self._channel(index).last_sample_ms

    def sample(
        self,
        index: int,
        now_ms: int,
        raw_value: Number | TypedValue,
    ) -> TelemetryFrame | None:
        """Return a frame for *raw_value* if channel *index* is due at *now_ms*."""
        channel = self._channel(index)
        if not channel.due(now_ms):
            return None
        value = self._typed(channel.descriptor, raw_value)
        channel.last_sample_ms = now_ms
        return TelemetryFrame(index=index, value=value, timestamp_ms=now_ms)

    def poll(self, now_ms: int) -> list[TelemetryFrame]:
        """Sample every bound periodic channel that is due."""
        frames: list[TelemetryFrame] = []
        for index in sorted(self._channels):
            channel = self._channels[index]
            if channel.source is None or channel.descriptor.sample_interval_ms is None:
                continue
            if not channel.due(now_ms):
                continue
            try:
                raw_value = channel.source()
                frame = self.sample(index, now_ms, raw_value)
            except Exception:
                logger.exception("Sensor read failed for telemetry channel %d", index)
                continue
            if frame is not None:
                frames.append(frame)
        return frames

    def _channel(self, index: int) -> _ChannelState:
        descriptor = self._registry.describe_telemetry(index)
        assert descriptor.index is not None
        channel = self._channels.get(index)
        if channel is None:
            channel = _ChannelState(descriptor)
            self._channels[index] = channel
        return channel

    @staticmethod
    def _typed(descriptor: TelemetryChannelDescriptor, raw_value: Number | TypedValue) -> TypedValue:
        if isinstance(raw_value, TypedValue):
            if raw_value.value_type != descriptor.value_type:
                raise TypeMismatch(
                    f"Channel {descriptor.index} expects {descriptor.value_type.name}, "
                    f"sample is {raw_value.value_type.name}"
                )
            return raw_value
        return TypedValue.of(descriptor.value_type, raw_value)


__all__ = ["SensorSource", "TelemetryFrame", "TelemetrySampler"]
