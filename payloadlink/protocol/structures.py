"""PayloadLink wire messages.

Each message is a frozen msgspec struct bound to a Construct schema, so the
binary layout is declared once and the Python side stays typed.  Fields are
wire-level integers; richer types (flags, TypedValue) are produced by the
registry and control layers.
"""

from __future__ import annotations

from typing import Any, ClassVar, Type, TypeVar

import msgspec
from construct import (  # type: ignore
    Bytes,
    Construct,
    ConstructError,
    Float32l,
    Int8ul,
    Int16ul,
    Int32ul,
    PaddedString,
    Struct as BinStruct,
)

from ..errors import MalformedMessage
from . import protocol
from .protocol import MessageId

T = TypeVar("T", bound="BaseStruct")

_SLOT = Bytes(protocol.SLOT_SIZE)
_NAME = PaddedString(protocol.NAME_LENGTH, "utf8")
_UNITS = PaddedString(protocol.UNITS_LENGTH, "utf8")


class BaseStruct(msgspec.Struct, frozen=True):
    """Base class for hybrid Msgspec/Construct structures."""

    _SCHEMA: ClassVar[Construct[Any]]
    MESSAGE_ID: ClassVar[MessageId]

    @classmethod
    def size(cls) -> int:
        return cls._SCHEMA.sizeof()

    @classmethod
    def decode(cls: Type[T], data: bytes | bytearray | memoryview) -> T:
        """Decode binary data into a typed struct, rejecting short or long input."""
        raw = bytes(data)
        if len(raw) != cls.size():
            raise MalformedMessage(
                f"{cls.__name__} expects {cls.size()} bytes, got {len(raw)}"
            )
        try:
            container: Any = cls._SCHEMA.parse(raw)
        except (ConstructError, UnicodeDecodeError) as exc:
            raise MalformedMessage(f"{cls.__name__} parsing failed: {exc}") from exc
        return cls(**{k: v for k, v in container.items() if not k.startswith("_")})

    def encode(self) -> bytes:
        """Encode the typed struct into its binary layout."""
        try:
            return self._SCHEMA.build(msgspec.structs.asdict(self))
        except ConstructError as exc:
            raise MalformedMessage(f"{type(self).__name__} build failed: {exc}") from exc


class StatusPacket(BaseStruct, frozen=True):
    payload_id: int
    uptime_ms: int
    error_flags: int
    custom_error_flags: int
    power_draw: float
    temperature: float
    num_functions: int
    num_telemetry: int
    name: str

    MESSAGE_ID = MessageId.STATUS
    _SCHEMA = BinStruct(
        "payload_id" / Int8ul,
        "uptime_ms" / Int32ul,
        "error_flags" / Int32ul,
        "custom_error_flags" / Int32ul,
        "power_draw" / Float32l,
        "temperature" / Float32l,
        "num_functions" / Int8ul,
        "num_telemetry" / Int8ul,
        "name" / PaddedString(protocol.PAYLOAD_NAME_LENGTH, "utf8"),
    )


class FunctionDescriptionPacket(BaseStruct, frozen=True):
    payload_id: int
    index: int
    function_type: int
    value_type: int
    enabled: int
    min_low: bytes
    min_high: bytes
    max_low: bytes
    max_high: bytes
    control_modes: int
    timeout_ms: int
    name: str
    units: str

    MESSAGE_ID = MessageId.FUNCTION_DESCRIPTION
    _SCHEMA = BinStruct(
        "payload_id" / Int8ul,
        "index" / Int8ul,
        "function_type" / Int8ul,
        "value_type" / Int8ul,
        "enabled" / Int8ul,
        "min_low" / _SLOT,
        "min_high" / _SLOT,
        "max_low" / _SLOT,
        "max_high" / _SLOT,
        "control_modes" / Int8ul,
        "timeout_ms" / Int32ul,
        "name" / _NAME,
        "units" / _UNITS,
    )


class FunctionStatusPacket(BaseStruct, frozen=True):
    payload_id: int
    index: int
    enabled: int
    value_low: bytes
    value_high: bytes

    MESSAGE_ID = MessageId.FUNCTION_STATUS
    _SCHEMA = BinStruct(
        "payload_id" / Int8ul,
        "index" / Int8ul,
        "enabled" / Int8ul,
        "value_low" / _SLOT,
        "value_high" / _SLOT,
    )


class FunctionControlPacket(BaseStruct, frozen=True):
    payload_id: int
    index: int
    value_type: int
    control_mode: int
    enable: int
    value_low: bytes
    value_high: bytes
    timeout_ms: int

    MESSAGE_ID = MessageId.FUNCTION_CONTROL
    _SCHEMA = BinStruct(
        "payload_id" / Int8ul,
        "index" / Int8ul,
        "value_type" / Int8ul,
        "control_mode" / Int8ul,
        "enable" / Int8ul,
        "value_low" / _SLOT,
        "value_high" / _SLOT,
        "timeout_ms" / Int32ul,
    )


class TelemetryDescriptionPacket(BaseStruct, frozen=True):
    payload_id: int
    index: int
    value_type: int
    update_rate_hz: float
    min_low: bytes
    min_high: bytes
    max_low: bytes
    max_high: bytes
    name: str
    units: str

    MESSAGE_ID = MessageId.TELEMETRY_DESCRIPTION
    _SCHEMA = BinStruct(
        "payload_id" / Int8ul,
        "index" / Int8ul,
        "value_type" / Int8ul,
        "update_rate_hz" / Float32l,
        "min_low" / _SLOT,
        "min_high" / _SLOT,
        "max_low" / _SLOT,
        "max_high" / _SLOT,
        "name" / _NAME,
        "units" / _UNITS,
    )


class TelemetryDataPacket(BaseStruct, frozen=True):
    payload_id: int
    index: int
    value_low: bytes
    value_high: bytes

    MESSAGE_ID = MessageId.TELEMETRY_DATA
    _SCHEMA = BinStruct(
        "payload_id" / Int8ul,
        "index" / Int8ul,
        "value_low" / _SLOT,
        "value_high" / _SLOT,
    )


class MessageRequestPacket(BaseStruct, frozen=True):
    """Decoded form of the transport's "request specific message" primitive."""

    message_id: int
    payload_id: int
    index: int = 0

    MESSAGE_ID = MessageId.REQUEST_MESSAGE
    _SCHEMA = BinStruct(
        "message_id" / Int16ul,
        "payload_id" / Int8ul,
        "index" / Int8ul,
    )


PACKET_TYPES: dict[int, type[BaseStruct]] = {
    cls.MESSAGE_ID.value: cls
    for cls in (
        StatusPacket,
        FunctionDescriptionPacket,
        FunctionStatusPacket,
        FunctionControlPacket,
        TelemetryDescriptionPacket,
        TelemetryDataPacket,
        MessageRequestPacket,
    )
}


def decode_packet(message_id: int, payload: bytes) -> BaseStruct:
    """Decode *payload* using the packet class registered for *message_id*."""
    packet_cls = PACKET_TYPES.get(message_id)
    if packet_cls is None:
        raise MalformedMessage(f"Unknown message id 0x{message_id:02X}")
    return packet_cls.decode(payload)


__all__ = [
    "PACKET_TYPES",
    "BaseStruct",
    "FunctionControlPacket",
    "FunctionDescriptionPacket",
    "FunctionStatusPacket",
    "MessageRequestPacket",
    "StatusPacket",
    "TelemetryDataPacket",
    "TelemetryDescriptionPacket",
    "decode_packet",
]
