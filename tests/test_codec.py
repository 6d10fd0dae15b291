"""Tests for the typed value codec."""

from __future__ import annotations

import math
import struct

import pytest

from payloadlink.errors import MalformedMessage, OutOfRange, TypeMismatch, UnknownValueType
from payloadlink.protocol import codec
from payloadlink.protocol.codec import TypedValue
from payloadlink.protocol.protocol import ZERO_SLOT, ValueType


@pytest.mark.parametrize(
    ("value_type", "value"),
    [
        (ValueType.INT32, -(2**31)),
        (ValueType.INT32, 2**31 - 1),
        (ValueType.UINT32, 2**32 - 1),
        (ValueType.INT64, -(2**63)),
        (ValueType.INT64, 2**63 - 1),
        (ValueType.UINT64, 2**64 - 1),
        (ValueType.BITMASK8, 0xA5),
        (ValueType.BITMASK16, 0xBEEF),
        (ValueType.BITMASK32, 0xDEADBEEF),
        (ValueType.BITMASK64, 0x0123456789ABCDEF),
        (ValueType.REAL32, 1.5),
        (ValueType.REAL64, -2.25e300),
    ],
)
def test_boundary_values_survive_the_wire(value_type: ValueType, value: int | float) -> None:
    typed = TypedValue.of(value_type, value)
    low, high = codec.encode(typed)

    decoded = codec.decode(value_type, low, high)

    assert decoded == typed
    assert decoded.value == value


def test_real32_uses_ieee_bit_pattern_not_integer_conversion() -> None:
    low, high = TypedValue.of(ValueType.REAL32, 1.5).encode()

    assert low == struct.pack("<f", 1.5)
    assert high == ZERO_SLOT


def test_wide_values_split_low_and_high_slots() -> None:
    low, high = TypedValue.of(ValueType.UINT64, (0x80000000 << 32) | 5).encode()

    assert low == b"\x05\x00\x00\x00"
    assert high == b"\x00\x00\x00\x80"


def test_negative_int64_fills_both_slots() -> None:
    low, high = TypedValue.of(ValueType.INT64, -1).encode()

    assert low == b"\xff" * 4
    assert high == b"\xff" * 4


def test_nan_payload_is_preserved_bit_for_bit() -> None:
    quiet_nan_with_payload = b"\x01\x00\xc0\x7f"

    decoded = codec.decode(ValueType.REAL32, quiet_nan_with_payload)

    assert math.isnan(decoded.value)
    assert decoded.encode()[0] == quiet_nan_with_payload


def test_signed_zero_and_infinity_survive() -> None:
    negative_zero = codec.decode(ValueType.REAL64, *TypedValue.of(ValueType.REAL64, -0.0).encode())
    infinity = codec.decode(ValueType.REAL32, *TypedValue.of(ValueType.REAL32, math.inf).encode())

    assert math.copysign(1.0, negative_zero.value) == -1.0
    assert negative_zero != TypedValue.zero(ValueType.REAL64)
    assert infinity.value == math.inf


def test_high_slot_is_ignored_for_narrow_kinds() -> None:
    low = struct.pack("<i", -7)

    assert codec.decode(ValueType.INT32, low, b"\xff" * 4) == codec.decode(ValueType.INT32, low)
    assert codec.decode(ValueType.INT32, low).value == -7


def test_short_bitmasks_take_only_significant_bits() -> None:
    decoded = codec.decode(ValueType.BITMASK8, b"\xff\x12\x34\x56")

    assert decoded.value == 0xFF
    assert decoded.encode()[0] == b"\xff\x00\x00\x00"


@pytest.mark.parametrize(
    ("value_type", "value"),
    [
        (ValueType.UINT32, -1),
        (ValueType.UINT32, 2**32),
        (ValueType.INT32, 2**31),
        (ValueType.BITMASK8, 256),
        (ValueType.INT64, 1.5),
    ],
)
def test_unrepresentable_values_raise_out_of_range(value_type: ValueType, value: int | float) -> None:
    with pytest.raises(OutOfRange):
        TypedValue.of(value_type, value)


def test_integral_float_is_accepted_for_integer_kinds() -> None:
    assert TypedValue.of(ValueType.UINT32, 5.0) == TypedValue.of(ValueType.UINT32, 5)


@pytest.mark.parametrize("tag", [0, 11, 255])
def test_unknown_value_type_tag(tag: int) -> None:
    with pytest.raises(UnknownValueType):
        codec.decode(tag, ZERO_SLOT, ZERO_SLOT)


def test_decode_rejects_bad_slot_lengths() -> None:
    with pytest.raises(MalformedMessage):
        codec.decode(ValueType.INT32, b"\x00\x00\x00")
    with pytest.raises(MalformedMessage):
        codec.decode(ValueType.INT64, ZERO_SLOT)


def test_in_range_uses_kind_ordering_and_rejects_nan() -> None:
    minimum = TypedValue.of(ValueType.INT32, -10)
    maximum = TypedValue.of(ValueType.INT32, 10)

    assert codec.in_range(TypedValue.of(ValueType.INT32, -10), minimum, maximum)
    assert not codec.in_range(TypedValue.of(ValueType.INT32, -11), minimum, maximum)

    real_min = TypedValue.of(ValueType.REAL32, 0.0)
    real_max = TypedValue.of(ValueType.REAL32, 1.0)
    assert not codec.in_range(TypedValue.of(ValueType.REAL32, math.nan), real_min, real_max)


def test_compare_orders_within_kind() -> None:
    small = TypedValue.of(ValueType.INT64, -(2**40))
    large = TypedValue.of(ValueType.INT64, 2**40)
    assert codec.compare(small, large) == -1
    assert codec.compare(large, small) == 1
    assert codec.compare(large, TypedValue.of(ValueType.INT64, 2**40)) == 0

    with pytest.raises(TypeMismatch):
        codec.compare(small, TypedValue.of(ValueType.UINT64, 1))
    with pytest.raises(OutOfRange):
        codec.compare(
            TypedValue.of(ValueType.REAL64, math.nan),
            TypedValue.of(ValueType.REAL64, 0.0),
        )
