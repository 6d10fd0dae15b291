"""Validation errors raised by the PayloadLink core.

Every error here is a local rejection: the command or decode that raised it
had no effect on registry or control state, and none of them ever sets a
payload fault flag.
"""

from __future__ import annotations

__all__ = [
    "DuplicateIndex",
    "MalformedMessage",
    "OutOfRange",
    "PayloadLinkError",
    "TypeMismatch",
    "UnknownIndex",
    "UnknownPayload",
    "UnknownValueType",
    "UnsupportedControlMode",
]


class PayloadLinkError(ValueError):
    """Base class for protocol validation failures."""

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnknownPayload(PayloadLinkError):
    kind = "unknown_payload"


class UnknownIndex(PayloadLinkError):
    kind = "unknown_index"


class DuplicateIndex(PayloadLinkError):
    kind = "duplicate_index"


class TypeMismatch(PayloadLinkError):
    kind = "type_mismatch"


class OutOfRange(PayloadLinkError):
    kind = "out_of_range"


class UnsupportedControlMode(PayloadLinkError):
    kind = "unsupported_control_mode"


class UnknownValueType(PayloadLinkError):
    kind = "unknown_value_type"


class MalformedMessage(PayloadLinkError):
    kind = "malformed"
