"""Capability registry: per-payload function and telemetry descriptors."""

from __future__ import annotations

import logging
from typing import TypeVar

import msgspec

from .errors import DuplicateIndex, OutOfRange, TypeMismatch, UnknownIndex
from .protocol import codec, protocol
from .protocol.codec import Number, TypedValue
from .protocol.protocol import ControlMode, FunctionType, ValueType
from .protocol.structures import FunctionDescriptionPacket, TelemetryDescriptionPacket

logger = logging.getLogger("payloadlink.registry")

D = TypeVar("D", "FunctionDescriptor", "TelemetryChannelDescriptor")


def _check_label(field_name: str, value: str, limit: int) -> None:
    if len(value.encode("utf-8")) > limit:
        raise ValueError(f"{field_name} {value!r} exceeds {limit} bytes")


def _check_bound(value_type: ValueType, bound: TypedValue | None, label: str) -> None:
    if bound is not None and bound.value_type != value_type:
        raise TypeMismatch(
            f"{label} is {bound.value_type.name} but the declared type is {value_type.name}"
        )


def _coerce_bound(value_type: ValueType, bound: Number | TypedValue | None) -> TypedValue | None:
    if bound is None or isinstance(bound, TypedValue):
        return bound
    return TypedValue.of(value_type, bound)


class FunctionDescriptor(msgspec.Struct, frozen=True, kw_only=True):
    """Metadata for one controllable payload function.

    ``minimum``/``maximum`` are required for CONTINUOUS, DISCRETE and BITMASK
    functions and must satisfy ``minimum <= maximum``; LOGICAL functions
    ignore them.
    """

    name: str
    function_type: FunctionType
    value_type: ValueType
    minimum: TypedValue | None = None
    maximum: TypedValue | None = None
    supported_control_modes: ControlMode = ControlMode.LATCHING
    default_timeout_ms: int = 0
    enabled: bool = True
    units: str = ""
    index: int | None = None

    def __post_init__(self) -> None:
        _check_label("name", self.name, protocol.NAME_LENGTH)
        _check_label("units", self.units, protocol.UNITS_LENGTH)
        if not 0 <= self.default_timeout_ms <= protocol.UINT32_MAX:
            raise ValueError(f"default_timeout_ms {self.default_timeout_ms} outside uint32 range")
        _check_bound(self.value_type, self.minimum, "minimum")
        _check_bound(self.value_type, self.maximum, "maximum")
        if not self.function_type.is_ranged:
            return
        if self.minimum is None or self.maximum is None:
            raise ValueError(f"{self.function_type.name} function {self.name!r} needs minimum and maximum")
        if not self.minimum.value <= self.maximum.value:
            raise OutOfRange(
                f"{self.name!r}: minimum {self.minimum.value!r} exceeds maximum {self.maximum.value!r}"
            )

    @classmethod
    def create(
        cls,
        name: str,
        function_type: FunctionType,
        value_type: ValueType,
        *,
        minimum: Number | TypedValue | None = None,
        maximum: Number | TypedValue | None = None,
        supported_control_modes: ControlMode = ControlMode.LATCHING,
        default_timeout_ms: int = 0,
        enabled: bool = True,
        units: str = "",
    ) -> FunctionDescriptor:
        """Build a descriptor from plain numbers for the bounds."""
        return cls(
            name=name,
            function_type=function_type,
            value_type=value_type,
            minimum=_coerce_bound(value_type, minimum),
            maximum=_coerce_bound(value_type, maximum),
            supported_control_modes=supported_control_modes,
            default_timeout_ms=default_timeout_ms,
            enabled=enabled,
            units=units,
        )

    def bounds(self) -> tuple[TypedValue, TypedValue]:
        """Return the range, zero-filled where none was declared."""
        zero = TypedValue.zero(self.value_type)
        return self.minimum or zero, self.maximum or zero

    def accepts(self, value: TypedValue) -> bool:
        if not self.function_type.is_ranged:
            return True
        minimum, maximum = self.bounds()
        return codec.in_range(value, minimum, maximum)

    def to_packet(self, payload_id: int) -> FunctionDescriptionPacket:
        if self.index is None:
            raise UnknownIndex(f"Function {self.name!r} is not registered")
        minimum, maximum = self.bounds()
        min_low, min_high = minimum.encode()
        max_low, max_high = maximum.encode()
        return FunctionDescriptionPacket(
            payload_id=payload_id,
            index=self.index,
            function_type=int(self.function_type),
            value_type=int(self.value_type),
            enabled=int(self.enabled),
            min_low=min_low,
            min_high=min_high,
            max_low=max_low,
            max_high=max_high,
            control_modes=int(self.supported_control_modes),
            timeout_ms=self.default_timeout_ms,
            name=self.name,
            units=self.units,
        )

    @classmethod
    def from_packet(cls, packet: FunctionDescriptionPacket) -> FunctionDescriptor:
        value_type = codec.resolve_value_type(packet.value_type)
        try:
            function_type = FunctionType(packet.function_type)
        except ValueError as exc:
            raise TypeMismatch(f"Unknown function type {packet.function_type}") from exc
        return cls(
            name=packet.name,
            function_type=function_type,
            value_type=value_type,
            minimum=codec.decode(value_type, packet.min_low, packet.min_high),
            maximum=codec.decode(value_type, packet.max_low, packet.max_high),
            supported_control_modes=protocol.control_mode_from_wire(packet.control_modes),
            default_timeout_ms=packet.timeout_ms,
            enabled=bool(packet.enabled),
            units=packet.units,
            index=packet.index,
        )


class TelemetryChannelDescriptor(msgspec.Struct, frozen=True, kw_only=True):
    """Metadata for one streamed telemetry channel.

    ``update_rate_hz == 0`` marks an on-demand channel that is never sampled
    periodically.
    """

    name: str
    value_type: ValueType
    update_rate_hz: float = 0.0
    minimum: TypedValue | None = None
    maximum: TypedValue | None = None
    units: str = ""
    index: int | None = None

    def __post_init__(self) -> None:
        _check_label("name", self.name, protocol.NAME_LENGTH)
        _check_label("units", self.units, protocol.UNITS_LENGTH)
        if not self.update_rate_hz >= 0.0:
            raise ValueError(f"update_rate_hz must be non-negative, got {self.update_rate_hz!r}")
        _check_bound(self.value_type, self.minimum, "minimum")
        _check_bound(self.value_type, self.maximum, "maximum")
        if self.minimum is not None and self.maximum is not None:
            if not self.minimum.value <= self.maximum.value:
                raise OutOfRange(f"{self.name!r}: minimum exceeds maximum")

    @classmethod
    def create(
        cls,
        name: str,
        value_type: ValueType,
        *,
        update_rate_hz: float = 0.0,
        minimum: Number | TypedValue | None = None,
        maximum: Number | TypedValue | None = None,
        units: str = "",
    ) -> TelemetryChannelDescriptor:
        return cls(
            name=name,
            value_type=value_type,
            update_rate_hz=update_rate_hz,
            minimum=_coerce_bound(value_type, minimum),
            maximum=_coerce_bound(value_type, maximum),
            units=units,
        )

    @property
    def sample_interval_ms(self) -> float | None:
        """Minimum spacing between periodic samples, None when on-demand."""
        if self.update_rate_hz == 0:
            return None
        return 1000.0 / self.update_rate_hz

    def to_packet(self, payload_id: int) -> TelemetryDescriptionPacket:
        if self.index is None:
            raise UnknownIndex(f"Telemetry channel {self.name!r} is not registered")
        zero = TypedValue.zero(self.value_type)
        min_low, min_high = (self.minimum or zero).encode()
        max_low, max_high = (self.maximum or zero).encode()
        return TelemetryDescriptionPacket(
            payload_id=payload_id,
            index=self.index,
            value_type=int(self.value_type),
            update_rate_hz=self.update_rate_hz,
            min_low=min_low,
            min_high=min_high,
            max_low=max_low,
            max_high=max_high,
            name=self.name,
            units=self.units,
        )

    @classmethod
    def from_packet(cls, packet: TelemetryDescriptionPacket) -> TelemetryChannelDescriptor:
        value_type = codec.resolve_value_type(packet.value_type)
        return cls(
            name=packet.name,
            value_type=value_type,
            update_rate_hz=packet.update_rate_hz,
            minimum=codec.decode(value_type, packet.min_low, packet.min_high),
            maximum=codec.decode(value_type, packet.max_low, packet.max_high),
            units=packet.units,
            index=packet.index,
        )


class CapabilityRegistry:
    """Function and telemetry tables of a single payload.

    Local registrations get indices handed out sequentially from 0, never
    reused while the payload exists.  Descriptors mirrored from description
    messages keep the index they were announced with and may arrive in any
    order, so a mirrored table can be sparse until every reply is in.
    Either table holds at most ``MAX_TABLE_ENTRIES`` descriptors.
    """

    def __init__(self) -> None:
        self._functions: dict[int, FunctionDescriptor] = {}
        self._telemetry: dict[int, TelemetryChannelDescriptor] = {}

    @property
    def num_functions(self) -> int:
        return len(self._functions)

    @property
    def num_telemetry(self) -> int:
        return len(self._telemetry)

    def register_function(self, descriptor: FunctionDescriptor) -> int:
        return self._register(self._functions, descriptor, "function")

    def register_telemetry(self, descriptor: TelemetryChannelDescriptor) -> int:
        return self._register(self._telemetry, descriptor, "telemetry channel")

    def mirror_function(self, descriptor: FunctionDescriptor) -> int:
        """Store a remote payload's function at its announced index."""
        return self._mirror(self._functions, descriptor, "function")

    def mirror_telemetry(self, descriptor: TelemetryChannelDescriptor) -> int:
        """Store a remote payload's telemetry channel at its announced index."""
        return self._mirror(self._telemetry, descriptor, "telemetry channel")

    def describe_function(self, index: int) -> FunctionDescriptor:
        return self._describe(self._functions, index, "function")

    def describe_telemetry(self, index: int) -> TelemetryChannelDescriptor:
        return self._describe(self._telemetry, index, "telemetry channel")

    def list_functions(self) -> tuple[FunctionDescriptor, ...]:
        return tuple(self._functions[index] for index in sorted(self._functions))

    def list_telemetry(self) -> tuple[TelemetryChannelDescriptor, ...]:
        return tuple(self._telemetry[index] for index in sorted(self._telemetry))

    def has_function(self, index: int) -> bool:
        return index in self._functions

    @staticmethod
    def _describe(table: dict[int, D], index: int, label: str) -> D:
        descriptor = table.get(index)
        if descriptor is None:
            raise UnknownIndex(f"No {label} registered at index {index} ({len(table)} known)")
        return descriptor

    @staticmethod
    def _register(table: dict[int, D], descriptor: D, label: str) -> int:
        next_index = len(table)
        requested = descriptor.index
        if requested is None or requested == next_index:
            if next_index >= protocol.MAX_TABLE_ENTRIES:
                raise OutOfRange(f"No free {label} index left")
            table[next_index] = msgspec.structs.replace(descriptor, index=next_index)
            logger.debug("Registered %s %r at index %d", label, descriptor.name, next_index)
            return next_index
        if 0 <= requested < next_index:
            if table.get(requested) == descriptor:
                return requested
            raise DuplicateIndex(f"{label.capitalize()} index {requested} is already registered")
        raise UnknownIndex(
            f"{label.capitalize()} index {requested} skips ahead of next free index {next_index}"
        )

    @staticmethod
    def _mirror(table: dict[int, D], descriptor: D, label: str) -> int:
        index = descriptor.index
        if index is None or not 0 <= index <= protocol.UINT8_MAX:
            raise UnknownIndex(f"Mirrored {label} {descriptor.name!r} has no valid index")
        existing = table.get(index)
        if existing is not None:
            if existing == descriptor:
                return index
            raise DuplicateIndex(f"{label.capitalize()} index {index} is already registered")
        if len(table) >= protocol.MAX_TABLE_ENTRIES:
            raise OutOfRange(f"No free {label} index left")
        table[index] = descriptor
        logger.debug("Mirrored %s %r at index %d", label, descriptor.name, index)
        return index


__all__ = [
    "CapabilityRegistry",
    "FunctionDescriptor",
    "TelemetryChannelDescriptor",
]
