"""Frame inspection utility for PayloadLink developers.

Builds a frame from a message id and payload hex, or decodes a raw frame
captured from the link, and prints its metadata and decoded fields.

    python -m payloadlink.tools.frame_debug --message STATUS --payload "01 00 ..."
    python -m payloadlink.tools.frame_debug --decode "04 00 1B 01 00 ..."
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass, field
from typing import Any

import msgspec

from payloadlink.errors import PayloadLinkError
from payloadlink.protocol.frame import Frame
from payloadlink.protocol.protocol import MessageId


@dataclass(slots=True)
class FrameDebugSnapshot:
    message_id: int
    message_name: str
    payload_length: int
    raw_length: int
    raw_frame_hex: str
    fields: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    def render(self) -> str:
        lines = [
            "[FrameDebug] --- Snapshot ---",
            f"msg_id=0x{self.message_id:02X} ({self.message_name})",
            f"payload_len={self.payload_length}",
            f"raw_len={self.raw_length}",
            f"raw_frame={self.raw_frame_hex}",
        ]
        lines.extend(f"  {key}={value}" for key, value in self.fields.items())
        if self.error:
            lines.append(f"decode_error={self.error}")
        return "\n".join(lines)

    def to_json(self) -> str:
        return msgspec.json.encode(
            {
                "message_id": self.message_id,
                "message_name": self.message_name,
                "payload_length": self.payload_length,
                "raw_length": self.raw_length,
                "raw_frame": self.raw_frame_hex,
                "fields": self.fields,
                "error": self.error,
            }
        ).decode("utf-8")


def _resolve_message(candidate: str) -> int:
    if not candidate:
        raise ValueError("message may not be empty")

    normalized = candidate.strip().upper()
    if normalized.startswith("0X"):
        try:
            return int(normalized[2:], 16)
        except ValueError:
            pass
    if normalized.isdigit():
        return int(normalized)

    try:
        return MessageId[normalized].value
    except KeyError as exc:
        raise ValueError(
            f"Unknown message '{candidate}'. Use a number, hex (e.g. 0x04) " "or a MessageId name."
        ) from exc


def _parse_hex(hex_string: str | None) -> bytes:
    if not hex_string:
        return b""
    compact = "".join(hex_string.split())
    if compact.startswith("0x") or compact.startswith("0X"):
        compact = compact[2:]
    if len(compact) % 2:
        raise ValueError("hex input must contain an even number of digits")
    try:
        return bytes.fromhex(compact)
    except ValueError as exc:
        raise ValueError(f"Invalid hex '{hex_string}': {exc}") from exc


def _name_for_message(message_id: int) -> str:
    try:
        return MessageId(message_id).name
    except ValueError:
        return f"UNKNOWN(0x{message_id:02X})"


def _hex_with_spacing(data: bytes) -> str:
    return " ".join(f"{byte:02X}" for byte in data)


def _render_fields(frame: Frame) -> dict[str, Any]:
    packet = frame.packet()
    rendered: dict[str, Any] = {}
    for key, value in msgspec.structs.asdict(packet).items():
        rendered[key] = _hex_with_spacing(value) if isinstance(value, bytes) else value
    return rendered


def _snapshot(frame: Frame, raw_frame: bytes) -> FrameDebugSnapshot:
    snapshot = FrameDebugSnapshot(
        message_id=frame.message_id,
        message_name=_name_for_message(frame.message_id),
        payload_length=len(frame.payload),
        raw_length=len(raw_frame),
        raw_frame_hex=_hex_with_spacing(raw_frame),
    )
    try:
        snapshot.fields = _render_fields(frame)
    except PayloadLinkError as exc:
        snapshot.error = exc.message
    return snapshot


def build_snapshot(message_id: int, payload: bytes) -> FrameDebugSnapshot:
    raw_frame = Frame.build(message_id, payload)
    return _snapshot(Frame(message_id=message_id, payload=payload), raw_frame)


def decode_snapshot(raw_frame: bytes) -> FrameDebugSnapshot:
    return _snapshot(Frame.from_bytes(raw_frame), raw_frame)


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Build or decode PayloadLink frames.")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--message",
        "-m",
        default="REQUEST_MESSAGE",
        help="Message to build. Accepts a MessageId name (e.g. STATUS) or a number such as 0x04.",
    )
    mode.add_argument(
        "--decode",
        "-d",
        help="Raw frame as hex string (spaces allowed) to decode instead of building.",
    )
    parser.add_argument(
        "--payload",
        "-p",
        help="Payload as hex string (spaces allowed) for --message.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print a single JSON object instead of the text snapshot.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    try:
        if args.decode:
            snapshot = decode_snapshot(_parse_hex(args.decode))
        else:
            snapshot = build_snapshot(_resolve_message(args.message), _parse_hex(args.payload))
    except ValueError as exc:
        parser.error(str(exc))
        return 2

    print(snapshot.to_json() if args.json else snapshot.render())
    return 0 if snapshot.error is None else 1


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
