"""Frame dispatch for inbound PayloadLink messages."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .directory import PayloadDirectory, PayloadRecord
from .errors import MalformedMessage, PayloadLinkError
from .protocol import protocol
from .protocol.frame import Frame
from .protocol.protocol import MessageId
from .protocol.structures import (
    BaseStruct,
    FunctionControlPacket,
    FunctionDescriptionPacket,
    MessageRequestPacket,
    StatusPacket,
    TelemetryDescriptionPacket,
)
from .registry import FunctionDescriptor, TelemetryChannelDescriptor
from .stats import EngineStats

logger = logging.getLogger("payloadlink.dispatcher")

MessageHandler = Callable[[Any, int], list[BaseStruct]]
PacketObserver = Callable[[BaseStruct], None]


class MessageHandlerRegistry:
    """Registry that maps message identifiers to handlers."""

    def __init__(self) -> None:
        self._handlers: dict[int, MessageHandler] = {}

    def register(self, message_id: int, handler: MessageHandler) -> None:
        self._handlers[message_id] = handler

    def get(self, message_id: int) -> MessageHandler | None:
        return self._handlers.get(message_id)


class MessageDispatcher:
    """Route decoded frames to the directory and collect reply packets.

    Validation failures are logged and counted, then dropped: the caller
    receives no reply frames for a rejected message.
    """

    def __init__(
        self,
        directory: PayloadDirectory,
        stats: EngineStats,
        *,
        observer: PacketObserver | None = None,
    ) -> None:
        self.directory = directory
        self.stats = stats
        self.observer = observer
        self.handlers = MessageHandlerRegistry()
        self.handlers.register(MessageId.STATUS.value, self._handle_status)
        self.handlers.register(MessageId.FUNCTION_CONTROL.value, self._handle_control)
        self.handlers.register(MessageId.REQUEST_MESSAGE.value, self._handle_request)
        self.handlers.register(MessageId.FUNCTION_DESCRIPTION.value, self._handle_function_description)
        self.handlers.register(MessageId.TELEMETRY_DESCRIPTION.value, self._handle_telemetry_description)
        self.handlers.register(MessageId.FUNCTION_STATUS.value, self._handle_observed)
        self.handlers.register(MessageId.TELEMETRY_DATA.value, self._handle_observed)

    def handle_frame(self, raw_frame: bytes, now_ms: int) -> list[Frame]:
        self.stats.frames_in += 1
        try:
            frame = Frame.from_bytes(raw_frame)
            packet = frame.packet()
            handler = self.handlers.get(frame.message_id)
            if handler is None:
                logger.debug("Ignoring message 0x%02X without handler", frame.message_id)
                return []
            replies = handler(packet, now_ms)
        except PayloadLinkError as exc:
            self.stats.record_rejection(exc.kind)
            logger.warning(
                "Rejected inbound message: %s",
                exc.message,
                extra={"reason": exc.kind, "frame": bytes(raw_frame)},
            )
            return []
        return [Frame.for_packet(reply) for reply in replies]

    def _handle_status(self, packet: StatusPacket, now_ms: int) -> list[BaseStruct]:
        is_new = packet.payload_id not in self.directory
        self.directory.on_discovery(packet.payload_id, packet.name, now_ms=now_ms, status=packet)
        if is_new:
            self.stats.discoveries += 1
        return []

    def _handle_control(self, packet: FunctionControlPacket, now_ms: int) -> list[BaseStruct]:
        if not self._hosted(packet.payload_id):
            return []
        reply = self.directory.route(packet.payload_id, packet, now_ms)
        self.stats.commands_accepted += 1
        return [reply]

    def _handle_request(self, packet: MessageRequestPacket, now_ms: int) -> list[BaseStruct]:
        if packet.message_id not in protocol.REQUESTABLE_MESSAGES:
            raise MalformedMessage(f"Message 0x{packet.message_id:02X} cannot be requested")
        if packet.payload_id != protocol.BROADCAST_PAYLOAD_ID:
            if not self._hosted(packet.payload_id):
                return []
            return [self.directory.route(packet.payload_id, packet, now_ms)]

        replies: list[BaseStruct] = []
        for record in self.directory:
            if not record.hosted:
                continue
            try:
                replies.append(record.respond(packet))
            except PayloadLinkError as exc:
                logger.debug("Payload %d skipped broadcast request: %s", record.payload_id, exc.message)
        return replies

    def _handle_function_description(
        self,
        packet: FunctionDescriptionPacket,
        now_ms: int,
    ) -> list[BaseStruct]:
        record = self._discovered(packet.payload_id, now_ms)
        if record is not None:
            with self.directory.lock:
                record.mirror_function(FunctionDescriptor.from_packet(packet))
        return []

    def _handle_telemetry_description(
        self,
        packet: TelemetryDescriptionPacket,
        now_ms: int,
    ) -> list[BaseStruct]:
        record = self._discovered(packet.payload_id, now_ms)
        if record is not None:
            with self.directory.lock:
                record.mirror_telemetry(TelemetryChannelDescriptor.from_packet(packet))
        return []

    def _handle_observed(self, packet: Any, now_ms: int) -> list[BaseStruct]:
        self._discovered(packet.payload_id, now_ms)
        if self.observer is not None:
            self.observer(packet)
        return []

    def _hosted(self, payload_id: int) -> bool:
        """True when this node serves *payload_id*."""
        if self.directory.get(payload_id).hosted:
            return True
        logger.debug("Ignoring message addressed to remote payload %d", payload_id)
        return False

    def _discovered(self, payload_id: int, now_ms: int) -> PayloadRecord | None:
        """Look up a mirrored payload and mark it alive; None for hosted ones."""
        record = self.directory.get(payload_id)
        if record.hosted:
            logger.debug("Ignoring echo of hosted payload %d", payload_id)
            return None
        record.last_seen_ms = max(record.last_seen_ms, now_ms)
        return record


__all__ = ["MessageDispatcher", "MessageHandler", "MessageHandlerRegistry", "PacketObserver"]
