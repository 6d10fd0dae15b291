"""Tests for wire messages and the frame envelope."""

from __future__ import annotations

import pytest

from payloadlink.errors import MalformedMessage
from payloadlink.protocol import protocol
from payloadlink.protocol.frame import Frame
from payloadlink.protocol.protocol import MessageId
from payloadlink.protocol.structures import (
    PACKET_TYPES,
    FunctionControlPacket,
    FunctionStatusPacket,
    MessageRequestPacket,
    StatusPacket,
    decode_packet,
)


def _status() -> StatusPacket:
    return StatusPacket(
        payload_id=3,
        uptime_ms=1500,
        error_flags=0,
        custom_error_flags=0,
        power_draw=2.5,
        temperature=40.0,
        num_functions=2,
        num_telemetry=1,
        name="Camera",
    )


def test_every_message_id_has_a_packet_type() -> None:
    assert set(PACKET_TYPES) == {message.value for message in MessageId}


@pytest.mark.parametrize(
    ("packet_cls", "size"),
    [
        (StatusPacket, 55),
        (FunctionStatusPacket, 11),
        (FunctionControlPacket, 17),
        (MessageRequestPacket, 4),
    ],
)
def test_packet_sizes_are_fixed(packet_cls: type, size: int) -> None:
    assert packet_cls.size() == size


def test_status_packet_survives_encoding() -> None:
    packet = _status()

    assert StatusPacket.decode(packet.encode()) == packet


def test_decode_rejects_wrong_length() -> None:
    encoded = _status().encode()

    with pytest.raises(MalformedMessage):
        StatusPacket.decode(encoded[:-1])
    with pytest.raises(MalformedMessage):
        StatusPacket.decode(encoded + b"\x00")


def test_encode_rejects_overlong_name() -> None:
    packet = StatusPacket(
        payload_id=1,
        uptime_ms=0,
        error_flags=0,
        custom_error_flags=0,
        power_draw=0.0,
        temperature=0.0,
        num_functions=0,
        num_telemetry=0,
        name="x" * (protocol.PAYLOAD_NAME_LENGTH + 1),
    )

    with pytest.raises(MalformedMessage):
        packet.encode()


def test_frame_header_layout() -> None:
    request = MessageRequestPacket(message_id=MessageId.STATUS.value, payload_id=9)

    raw = Frame.for_packet(request).to_bytes()

    assert raw[:3] == b"\x07\x00\x04"
    assert raw[3:] == b"\x01\x00\x09\x00"
    assert Frame.from_bytes(raw).packet() == request


def test_frame_parse_errors() -> None:
    with pytest.raises(MalformedMessage, match="Incomplete"):
        Frame.parse(b"\x01\x00")
    with pytest.raises(MalformedMessage, match="mismatch"):
        Frame.parse(b"\x07\x00\x04\x01")
    with pytest.raises(MalformedMessage, match="Unknown message id"):
        Frame.parse(b"\x99\x00\x00")


def test_frame_build_rejects_oversized_payload() -> None:
    with pytest.raises(MalformedMessage):
        Frame.build(MessageId.STATUS.value, bytes(protocol.MAX_PAYLOAD_SIZE + 1))


def test_decode_packet_unknown_message() -> None:
    with pytest.raises(MalformedMessage):
        decode_packet(0x42, b"")
