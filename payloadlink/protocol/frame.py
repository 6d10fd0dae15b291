"""Message envelope for PayloadLink frames.

The link layer (framing, checksums, routing) belongs to the host transport,
which hands over whole frames.  Inside a frame the envelope is:

    [message_id (u16 LE)] [payload_len (u8)] [payload (payload_len bytes)]
"""

from __future__ import annotations

import msgspec
from construct import ConstructError

from ..errors import MalformedMessage
from . import protocol
from .protocol import MessageId
from .structures import BaseStruct, decode_packet


class Frame(msgspec.Struct, frozen=True, kw_only=True):
    """A single PayloadLink message as exchanged with the transport.

    Attributes:
        message_id: One of :class:`MessageId`.
        payload: The encoded message body.
    """

    message_id: int
    payload: bytes = b""

    @staticmethod
    def build(message_id: int, payload: bytes = b"") -> bytes:
        payload_len = len(payload)
        if payload_len > protocol.MAX_PAYLOAD_SIZE:
            raise MalformedMessage(
                f"Payload too large ({payload_len} bytes); max is {protocol.MAX_PAYLOAD_SIZE}"
            )
        if not 0 <= message_id <= protocol.UINT16_MAX:
            raise MalformedMessage(f"Message id {message_id} outside 16-bit range")
        header = protocol.FRAME_HEADER_STRUCT.build({
            "message_id": message_id,
            "payload_len": payload_len,
        })
        return header + payload

    @staticmethod
    def parse(raw_frame: bytes | bytearray | memoryview) -> tuple[int, bytes]:
        """Split a whole frame into ``(message_id, payload)``."""
        data = bytes(raw_frame)
        if len(data) < protocol.FRAME_HEADER_SIZE:
            raise MalformedMessage(
                f"Incomplete frame: size {len(data)} is less than header size {protocol.FRAME_HEADER_SIZE}"
            )
        try:
            header = protocol.FRAME_HEADER_STRUCT.parse(data)
        except ConstructError as exc:
            raise MalformedMessage(f"Frame header parsing failed: {exc}") from exc

        payload = data[protocol.FRAME_HEADER_SIZE :]
        if len(payload) != header.payload_len:
            raise MalformedMessage(
                f"Frame size mismatch: header says {header.payload_len} payload bytes, "
                f"buffer has {len(payload)}"
            )
        try:
            MessageId(header.message_id)
        except ValueError as exc:
            raise MalformedMessage(f"Unknown message id 0x{header.message_id:02X}") from exc
        return header.message_id, payload

    @classmethod
    def for_packet(cls, packet: BaseStruct) -> Frame:
        return cls(message_id=packet.MESSAGE_ID.value, payload=packet.encode())

    def packet(self) -> BaseStruct:
        """Decode the payload into its typed message."""
        return decode_packet(self.message_id, self.payload)

    def to_bytes(self) -> bytes:
        return self.build(self.message_id, self.payload)

    @classmethod
    def from_bytes(cls, raw_frame: bytes | bytearray | memoryview) -> Frame:
        message_id, payload = cls.parse(raw_frame)
        return cls(message_id=message_id, payload=payload)


__all__ = ["Frame"]
