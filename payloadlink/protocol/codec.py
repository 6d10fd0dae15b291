"""Typed value codec for the two-slot wire representation.

Values are carried as raw bit patterns.  A REAL32 is packed as its IEEE-754
single-precision pattern into the low slot, never converted to an integer,
and a 64-bit kind is split across the low (bits 0-31) and high (bits 32-63)
slots.  :class:`TypedValue` keeps the bit pattern itself so that NaN payloads
and signed zeros survive a decode/encode cycle unchanged.
"""

from __future__ import annotations

from typing import Any, Final

import msgspec
from construct import (  # type: ignore
    Construct,
    ConstructError,
    Float32l,
    Float64l,
    Int8ul,
    Int16ul,
    Int32sl,
    Int32ul,
    Int64sl,
    Int64ul,
)

from ..errors import MalformedMessage, OutOfRange, TypeMismatch, UnknownValueType
from . import protocol
from .protocol import ValueType

Number = int | float

_FORMATS: Final[dict[ValueType, Construct[Any]]] = {
    ValueType.INT32: Int32sl,
    ValueType.UINT32: Int32ul,
    ValueType.REAL32: Float32l,
    ValueType.INT64: Int64sl,
    ValueType.UINT64: Int64ul,
    ValueType.REAL64: Float64l,
    ValueType.BITMASK8: Int8ul,
    ValueType.BITMASK16: Int16ul,
    ValueType.BITMASK32: Int32ul,
    ValueType.BITMASK64: Int64ul,
}


def resolve_value_type(raw: int | ValueType) -> ValueType:
    """Map a wire tag onto :class:`ValueType` or raise UnknownValueType."""
    try:
        return ValueType(raw)
    except ValueError as exc:
        raise UnknownValueType(f"Unknown value type tag {raw!r}") from exc


class TypedValue(msgspec.Struct, frozen=True):
    """A value tagged with its declared kind, stored as its bit pattern."""

    value_type: ValueType
    bits: int = 0

    @classmethod
    def of(cls, value_type: int | ValueType, value: Number) -> TypedValue:
        """Pack a Python number into the declared kind.

        Raises OutOfRange when the number is not representable, e.g. a
        negative UINT32, a fractional INT64 or a REAL32 beyond float range.
        """
        kind = resolve_value_type(value_type)
        if not kind.is_float and isinstance(value, float):
            if not value.is_integer():
                raise OutOfRange(f"{kind.name} cannot hold fractional value {value!r}")
            value = int(value)
        try:
            packed = _FORMATS[kind].build(value)
        except ConstructError as exc:
            raise OutOfRange(f"{value!r} is not representable as {kind.name}") from exc
        return cls(value_type=kind, bits=Int64ul.parse(packed.ljust(8, b"\x00")))

    @classmethod
    def zero(cls, value_type: int | ValueType) -> TypedValue:
        return cls(value_type=resolve_value_type(value_type), bits=0)

    @property
    def value(self) -> Number:
        fmt = _FORMATS[self.value_type]
        raw = Int64ul.build(self.bits)
        return fmt.parse(raw[: fmt.sizeof()])

    def encode(self) -> tuple[bytes, bytes]:
        return encode(self)


def encode(value: TypedValue) -> tuple[bytes, bytes]:
    """Return the ``(low, high)`` slots for *value*."""
    slots = protocol.SLOT_STRUCT.parse(Int64ul.build(value.bits))
    if not value.value_type.is_wide:
        return slots.low, protocol.ZERO_SLOT
    return slots.low, slots.high


def decode(
    value_type: int | ValueType,
    low: bytes,
    high: bytes | None = None,
) -> TypedValue:
    """Rebuild a :class:`TypedValue` from its wire slots.

    ``high`` is ignored for 32-bit and narrower kinds.  The 8 and 16 bit
    bitmasks take only their significant bits from the low slot.
    """
    kind = resolve_value_type(value_type)
    if len(low) != protocol.SLOT_SIZE:
        raise MalformedMessage(f"Low slot must be {protocol.SLOT_SIZE} bytes, got {len(low)}")
    if kind.is_wide:
        if high is None or len(high) != protocol.SLOT_SIZE:
            raise MalformedMessage(f"{kind.name} requires a {protocol.SLOT_SIZE}-byte high slot")
        bits = Int64ul.parse(bytes(low) + bytes(high))
    else:
        bits = Int32ul.parse(bytes(low)) & ((1 << kind.width) - 1)
    return TypedValue(value_type=kind, bits=bits)


def in_range(value: TypedValue, minimum: TypedValue, maximum: TypedValue) -> bool:
    """Check ``minimum <= value <= maximum`` in the kind's numeric ordering.

    NaN never lies within a range.
    """
    return minimum.value <= value.value <= maximum.value


def compare(a: TypedValue, b: TypedValue) -> int:
    """Return -1, 0 or 1 ordering *a* against *b* as numbers of one kind.

    Raises TypeMismatch for values of different kinds and OutOfRange when
    either side is NaN.
    """
    if a.value_type is not b.value_type:
        raise TypeMismatch(f"Cannot compare {a.value_type.name} with {b.value_type.name}")
    left, right = a.value, b.value
    if left != left or right != right:
        raise OutOfRange("NaN has no ordering")
    return (left > right) - (left < right)


__all__ = [
    "Number",
    "TypedValue",
    "compare",
    "decode",
    "encode",
    "in_range",
    "resolve_value_type",
]
