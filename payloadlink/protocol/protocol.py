"""Protocol constants and enumerations for PayloadLink.

All multi-byte wire fields are little-endian.  Typed values travel in two
4-byte slots: ``*_low`` carries bits 0-31 and ``*_high`` bits 32-63.
"""
from __future__ import annotations
from construct import Bytes, Int8ul, Int16ul, Struct as BinStruct  # type: ignore
from enum import IntEnum, IntFlag
from typing import Final

PROTOCOL_VERSION: Final[int] = 1
SLOT_SIZE: Final[int] = 4
ZERO_SLOT: Final[bytes] = bytes(SLOT_SIZE)
NAME_LENGTH: Final[int] = 16
UNITS_LENGTH: Final[int] = 8
PAYLOAD_NAME_LENGTH: Final[int] = 32
MAX_PAYLOAD_SIZE: Final[int] = 255
UINT8_MAX: Final[int] = 255
# Status counts are u8 on the wire.
MAX_TABLE_ENTRIES: Final[int] = UINT8_MAX
UINT16_MAX: Final[int] = 65535
UINT32_MAX: Final[int] = 4294967295
BROADCAST_PAYLOAD_ID: Final[int] = 255
DEFAULT_MOMENTARY_TIMEOUT_MS: Final[int] = 100
STATUS_INTERVAL_MS: Final[int] = 1000

SLOT_STRUCT: Final = BinStruct(
    "low" / Bytes(SLOT_SIZE),
    "high" / Bytes(SLOT_SIZE),
)
FRAME_HEADER_STRUCT: Final = BinStruct(
    "message_id" / Int16ul,
    "payload_len" / Int8ul,
)
FRAME_HEADER_SIZE: Final[int] = FRAME_HEADER_STRUCT.sizeof()  # type: ignore


class ValueType(IntEnum):
    INT32 = 1
    UINT32 = 2
    REAL32 = 3
    INT64 = 4
    UINT64 = 5
    REAL64 = 6
    BITMASK8 = 7
    BITMASK16 = 8
    BITMASK32 = 9
    BITMASK64 = 10

    @property
    def width(self) -> int:
        """Significant width of the kind in bits."""
        return _VALUE_WIDTHS[self]

    @property
    def is_wide(self) -> bool:
        """True when the value needs both slots."""
        return self.width == 64

    @property
    def is_float(self) -> bool:
        return self in (ValueType.REAL32, ValueType.REAL64)


_VALUE_WIDTHS: Final[dict[ValueType, int]] = {
    ValueType.INT32: 32,
    ValueType.UINT32: 32,
    ValueType.REAL32: 32,
    ValueType.INT64: 64,
    ValueType.UINT64: 64,
    ValueType.REAL64: 64,
    ValueType.BITMASK8: 8,
    ValueType.BITMASK16: 16,
    ValueType.BITMASK32: 32,
    ValueType.BITMASK64: 64,
}


class FunctionType(IntEnum):
    LOGICAL = 0  # On/off; min/max ignored
    CONTINUOUS = 1  # Analogue setpoint within [min, max]
    DISCRETE = 2  # Enumerated steps within [min, max]
    BITMASK = 3  # Independent flags within [min, max]

    @property
    def is_ranged(self) -> bool:
        return self is not FunctionType.LOGICAL


class ControlMode(IntFlag):
    LATCHING = 1  # Value persists until superseded
    MOMENTARY = 2  # Value reverts to disabled after a timeout


class PayloadErrorFlag(IntFlag):
    HARDWARE = 1
    SOFTWARE = 2
    OVERTEMP = 4
    CUSTOM = 8


class MessageId(IntEnum):
    STATUS = 0x01  # Periodic health broadcast, doubles as discovery
    FUNCTION_DESCRIPTION = 0x02  # Function metadata, on request
    FUNCTION_STATUS = 0x03  # Current function state
    FUNCTION_CONTROL = 0x04  # Command from the vehicle
    TELEMETRY_DESCRIPTION = 0x05  # Channel metadata, on request
    TELEMETRY_DATA = 0x06  # Streamed channel sample
    REQUEST_MESSAGE = 0x07  # Transport request primitive, decoded


# Messages that may be requested through REQUEST_MESSAGE.
REQUESTABLE_MESSAGES: frozenset[int] = frozenset({
    MessageId.STATUS.value,
    MessageId.FUNCTION_DESCRIPTION.value,
    MessageId.FUNCTION_STATUS.value,
    MessageId.TELEMETRY_DESCRIPTION.value,
})


def control_mode_from_wire(raw: int) -> ControlMode:
    """Convert a wire bitmask into the named flag set, dropping unknown bits."""
    return ControlMode(raw & int(ControlMode.LATCHING | ControlMode.MOMENTARY))


def error_flags_from_wire(raw: int) -> PayloadErrorFlag:
    mask = 0
    for flag in PayloadErrorFlag:
        mask |= flag.value
    return PayloadErrorFlag(raw & mask)
