"""Tests for the capability registry and descriptors."""

from __future__ import annotations

import msgspec
import pytest

from payloadlink.errors import DuplicateIndex, OutOfRange, TypeMismatch, UnknownIndex
from payloadlink.protocol.codec import TypedValue
from payloadlink.protocol.protocol import ControlMode, FunctionType, ValueType
from payloadlink.registry import CapabilityRegistry, FunctionDescriptor, TelemetryChannelDescriptor


def test_indices_are_sequential(brightness: FunctionDescriptor, power: FunctionDescriptor) -> None:
    registry = CapabilityRegistry()

    assert registry.register_function(brightness) == 0
    assert registry.register_function(power) == 1
    assert registry.num_functions == 2
    assert registry.describe_function(1).name == "Power"
    assert registry.describe_function(1).index == 1


def test_function_and_telemetry_tables_are_independent(
    brightness: FunctionDescriptor,
    voltage: TelemetryChannelDescriptor,
) -> None:
    registry = CapabilityRegistry()
    registry.register_function(brightness)

    assert registry.register_telemetry(voltage) == 0
    assert registry.num_telemetry == 1


def test_describe_unknown_index(registry: CapabilityRegistry) -> None:
    with pytest.raises(UnknownIndex):
        registry.describe_function(2)
    with pytest.raises(UnknownIndex):
        registry.describe_telemetry(-1)


def test_mirrored_descriptor_must_claim_next_index(registry: CapabilityRegistry) -> None:
    existing = registry.describe_function(0)

    assert registry.register_function(existing) == 0

    conflicting = msgspec.structs.replace(existing, name="Dimmer")
    with pytest.raises(DuplicateIndex):
        registry.register_function(conflicting)

    skipping = msgspec.structs.replace(existing, index=5)
    with pytest.raises(UnknownIndex):
        registry.register_function(skipping)
    assert registry.num_functions == 2



def test_mirrored_descriptors_keep_announced_indices(registry: CapabilityRegistry) -> None:
    power, brightness = registry.describe_function(1), registry.describe_function(0)
    mirror = CapabilityRegistry()

    assert mirror.mirror_function(power) == 1
    assert mirror.has_function(1)
    assert not mirror.has_function(0)
    with pytest.raises(UnknownIndex):
        mirror.describe_function(0)

    assert mirror.mirror_function(brightness) == 0
    assert mirror.mirror_function(brightness) == 0
    assert mirror.list_functions() == (brightness, power)

    with pytest.raises(DuplicateIndex):
        mirror.mirror_function(msgspec.structs.replace(power, name="Mains"))
    assert mirror.num_functions == 2


def test_function_table_holds_at_most_255_entries() -> None:
    registry = CapabilityRegistry()
    for n in range(255):
        assert registry.register_function(
            FunctionDescriptor.create(f"Relay{n}", FunctionType.LOGICAL, ValueType.UINT32)
        ) == n

    with pytest.raises(OutOfRange):
        registry.register_function(FunctionDescriptor.create("Extra", FunctionType.LOGICAL, ValueType.UINT32))
    assert registry.num_functions == 255

    last = FunctionDescriptor.create("Last", FunctionType.LOGICAL, ValueType.UINT32)
    mirror = CapabilityRegistry()
    for n in range(255):
        mirror.mirror_function(msgspec.structs.replace(last, name=f"R{n}", index=n))
    with pytest.raises(OutOfRange):
        mirror.mirror_function(msgspec.structs.replace(last, index=255))

def test_ranged_function_requires_bounds() -> None:
    with pytest.raises(ValueError):
        FunctionDescriptor.create("Zoom", FunctionType.CONTINUOUS, ValueType.INT32)


def test_minimum_must_not_exceed_maximum() -> None:
    with pytest.raises(OutOfRange):
        FunctionDescriptor.create("Zoom", FunctionType.DISCRETE, ValueType.INT32, minimum=5, maximum=1)


def test_bound_tags_must_match_value_type() -> None:
    with pytest.raises(TypeMismatch):
        FunctionDescriptor(
            name="Zoom",
            function_type=FunctionType.CONTINUOUS,
            value_type=ValueType.INT32,
            minimum=TypedValue.of(ValueType.UINT32, 0),
            maximum=TypedValue.of(ValueType.INT32, 10),
        )


def test_labels_are_length_limited() -> None:
    with pytest.raises(ValueError):
        FunctionDescriptor.create("A" * 17, FunctionType.LOGICAL, ValueType.UINT32)
    with pytest.raises(ValueError):
        TelemetryChannelDescriptor.create("Temp", ValueType.REAL32, units="celsius!!")


def test_logical_function_accepts_any_value(power: FunctionDescriptor) -> None:
    assert power.accepts(TypedValue.of(ValueType.UINT32, 2**32 - 1))


def test_function_description_packet_mirrors_descriptor(registry: CapabilityRegistry) -> None:
    descriptor = registry.describe_function(0)

    packet = descriptor.to_packet(payload_id=4)
    mirrored = FunctionDescriptor.from_packet(packet)

    assert packet.payload_id == 4
    assert mirrored == descriptor
    assert mirrored.supported_control_modes == ControlMode.LATCHING | ControlMode.MOMENTARY
    assert mirrored.units == "%"


def test_telemetry_description_packet_mirrors_descriptor(registry: CapabilityRegistry) -> None:
    descriptor = registry.describe_telemetry(0)

    mirrored = TelemetryChannelDescriptor.from_packet(descriptor.to_packet(payload_id=4))

    assert mirrored == descriptor
    assert mirrored.sample_interval_ms == 100.0


def test_unregistered_descriptor_cannot_be_described(brightness: FunctionDescriptor) -> None:
    with pytest.raises(UnknownIndex):
        brightness.to_packet(payload_id=1)


def test_on_demand_channel_has_no_interval() -> None:
    channel = TelemetryChannelDescriptor.create("Serial", ValueType.UINT32)

    assert channel.sample_interval_ms is None
