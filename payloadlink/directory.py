"""Payload directory: every payload known to one coordinating context.

A directory is owned by a single engine (one per link), never shared
process-wide.  Records are either *hosted* (this node serves the payload and
broadcasts for it) or *discovered* (learned from another node's status
broadcasts and mirrored here).
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator

from .const import DEFAULT_MOMENTARY_TIMEOUT, DEFAULT_STATUS_INTERVAL_MS
from .control import ControlCommand, ControlStateMachine
from .errors import MalformedMessage, UnknownPayload
from .protocol import protocol
from .protocol.protocol import MessageId, PayloadErrorFlag
from .protocol.structures import (
    BaseStruct,
    FunctionControlPacket,
    MessageRequestPacket,
    StatusPacket,
)
from .registry import CapabilityRegistry, FunctionDescriptor, TelemetryChannelDescriptor
from .status import StatusAggregator
from .telemetry import TelemetrySampler

logger = logging.getLogger("payloadlink.directory")


class PayloadRecord:
    """Registry, control states, sampler and status of one payload."""

    def __init__(
        self,
        payload_id: int,
        name: str,
        *,
        hosted: bool = False,
        now_ms: int = 0,
        momentary_timeout_ms: int = DEFAULT_MOMENTARY_TIMEOUT,
        status_interval_ms: int = DEFAULT_STATUS_INTERVAL_MS,
    ) -> None:
        if not 0 <= payload_id < protocol.BROADCAST_PAYLOAD_ID:
            raise ValueError(f"payload_id {payload_id} outside 0..{protocol.BROADCAST_PAYLOAD_ID - 1}")
        if len(name.encode("utf-8")) > protocol.PAYLOAD_NAME_LENGTH:
            raise ValueError(f"Payload name {name!r} exceeds {protocol.PAYLOAD_NAME_LENGTH} bytes")
        self.payload_id = payload_id
        self.hosted = hosted
        self.last_seen_ms = now_ms
        self.registry = CapabilityRegistry()
        self.controls = ControlStateMachine(self.registry, momentary_timeout_ms=momentary_timeout_ms)
        self.telemetry = TelemetrySampler(self.registry)
        self.status = StatusAggregator(payload_id, name, self.registry, interval_ms=status_interval_ms)
        self.status.advance(now_ms)

    @property
    def name(self) -> str:
        return self.status.name

    @name.setter
    def name(self, value: str) -> None:
        self.status.name = value

    def register_function(self, descriptor: FunctionDescriptor) -> int:
        index = self.registry.register_function(descriptor)
        self.controls.track(self.registry.describe_function(index))
        return index

    def register_telemetry(self, descriptor: TelemetryChannelDescriptor) -> int:
        index = self.registry.register_telemetry(descriptor)
        self.telemetry.track(self.registry.describe_telemetry(index))
        return index

    def mirror_function(self, descriptor: FunctionDescriptor) -> int:
        index = self.registry.mirror_function(descriptor)
        self.controls.track(self.registry.describe_function(index))
        return index

    def mirror_telemetry(self, descriptor: TelemetryChannelDescriptor) -> int:
        index = self.registry.mirror_telemetry(descriptor)
        self.telemetry.track(self.registry.describe_telemetry(index))
        return index

    def apply(self, command: ControlCommand, now_ms: int) -> BaseStruct:
        return self.controls.apply(command, now_ms).to_packet(self.payload_id)

    def respond(self, request: MessageRequestPacket) -> BaseStruct:
        """Answer a description or status request for this payload."""
        if request.message_id == MessageId.STATUS:
            return self.status.status_packet()
        if request.message_id == MessageId.FUNCTION_DESCRIPTION:
            return self.registry.describe_function(request.index).to_packet(self.payload_id)
        if request.message_id == MessageId.FUNCTION_STATUS:
            return self.controls.status(request.index).to_packet(self.payload_id)
        if request.message_id == MessageId.TELEMETRY_DESCRIPTION:
            return self.registry.describe_telemetry(request.index).to_packet(self.payload_id)
        raise MalformedMessage(f"Message 0x{request.message_id:02X} cannot be requested")

    def refresh(self, status: StatusPacket) -> None:
        """Mirror a received status broadcast into the local aggregator."""
        self.status.uptime_ms = status.uptime_ms
        self.status.error_flags = protocol.error_flags_from_wire(status.error_flags)
        self.status.custom_error_flags = status.custom_error_flags
        self.status.update_health(power_draw=status.power_draw, temperature=status.temperature)

    def __repr__(self) -> str:
        return (
            f"PayloadRecord(payload_id={self.payload_id}, name={self.name!r}, hosted={self.hosted}, "
            f"functions={self.registry.num_functions}, telemetry={self.registry.num_telemetry})"
        )


class PayloadDirectory:
    """Maps bus addresses to payload records.

    Every mutation goes through one re-entrant lock, so a multi-threaded host
    can share a directory as long as it only uses these methods.
    """

    def __init__(
        self,
        *,
        momentary_timeout_ms: int = DEFAULT_MOMENTARY_TIMEOUT,
        status_interval_ms: int = DEFAULT_STATUS_INTERVAL_MS,
    ) -> None:
        self._records: dict[int, PayloadRecord] = {}
        self._lock = threading.RLock()
        self._momentary_timeout_ms = momentary_timeout_ms
        self._status_interval_ms = status_interval_ms

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def __contains__(self, payload_id: object) -> bool:
        return payload_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[PayloadRecord]:
        with self._lock:
            return iter(list(self._records.values()))

    def host(self, payload_id: int, name: str, *, now_ms: int = 0) -> PayloadRecord:
        """Create the record for a payload served by this node."""
        with self._lock:
            existing = self._records.get(payload_id)
            if existing is not None:
                if not existing.hosted:
                    raise ValueError(f"Payload {payload_id} is already known as a discovered payload")
                existing.name = name
                return existing
            record = self._new_record(payload_id, name, hosted=True, now_ms=now_ms)
            logger.info("Hosting payload %d (%s)", payload_id, name)
            return record

    def on_discovery(
        self,
        payload_id: int,
        announced_name: str,
        *,
        now_ms: int = 0,
        status: StatusPacket | None = None,
    ) -> PayloadRecord:
        """Create a record on first sighting; refresh it on repeat announcements."""
        with self._lock:
            record = self._records.get(payload_id)
            if record is None:
                record = self._new_record(payload_id, announced_name, hosted=False, now_ms=now_ms)
                logger.info("Discovered payload %d (%s)", payload_id, announced_name)
            elif record.hosted:
                logger.warning("Payload id %d announced on the bus collides with a hosted payload", payload_id)
                return record
            else:
                if record.name != announced_name:
                    logger.info("Payload %d renamed %r -> %r", payload_id, record.name, announced_name)
                record.name = announced_name
            record.last_seen_ms = max(record.last_seen_ms, now_ms)
            if status is not None:
                record.refresh(status)
            return record

    def get(self, payload_id: int) -> PayloadRecord:
        record = self._records.get(payload_id)
        if record is None:
            raise UnknownPayload(f"Payload {payload_id} is not registered")
        return record

    def route(
        self,
        payload_id: int,
        message: ControlCommand | FunctionControlPacket | MessageRequestPacket,
        now_ms: int,
    ) -> BaseStruct:
        """Deliver *message* to its payload and return the reply packet.

        Messages to unknown payloads, and to discovered payloads this node
        only mirrors, are dropped with UnknownPayload; nothing is queued for
        payloads that may appear later.
        """
        with self._lock:
            record = self.get(payload_id)
            if not record.hosted:
                raise UnknownPayload(f"Payload {payload_id} is not hosted by this node")
            if isinstance(message, FunctionControlPacket):
                message = ControlCommand.from_packet(message)
            if isinstance(message, ControlCommand):
                return record.apply(message, now_ms)
            if isinstance(message, MessageRequestPacket):
                return record.respond(message)
            raise TypeError(f"Cannot route {type(message).__name__}")

    def remove(self, payload_id: int) -> PayloadRecord:
        with self._lock:
            record = self.get(payload_id)
            del self._records[payload_id]
            logger.info("Removed payload %d (%s)", payload_id, record.name)
            return record

    def prune(self, now_ms: int, liveness_timeout_ms: int) -> list[int]:
        """Drop discovered payloads silent for longer than *liveness_timeout_ms*.

        A timeout of 0 disables pruning.  Hosted payloads are never pruned.
        """
        if liveness_timeout_ms <= 0:
            return []
        with self._lock:
            stale = [
                record.payload_id
                for record in self._records.values()
                if not record.hosted and now_ms - record.last_seen_ms > liveness_timeout_ms
            ]
            for payload_id in stale:
                logger.warning("Payload %d timed out; removing", payload_id)
                del self._records[payload_id]
            return stale

    def tick(self, now_ms: int) -> list[BaseStruct]:
        """Run one scheduler tick over all hosted payloads.

        Order: momentary expiry, then telemetry sampling, then status
        broadcasts.
        """
        with self._lock:
            hosted = [self._records[pid] for pid in sorted(self._records) if self._records[pid].hosted]
            outbound: list[BaseStruct] = []
            for record in hosted:
                outbound.extend(event.to_packet(record.payload_id) for event in record.controls.expire(now_ms))
            for record in hosted:
                outbound.extend(frame.to_packet(record.payload_id) for frame in record.telemetry.poll(now_ms))
            for record in hosted:
                status = record.status.tick(now_ms)
                if status is not None:
                    outbound.append(status)
            return outbound

    def raise_fault(self, payload_id: int, flags: PayloadErrorFlag, custom: int = 0) -> None:
        with self._lock:
            self.get(payload_id).status.raise_fault(flags, custom)

    def clear_fault(self, payload_id: int, flags: PayloadErrorFlag, custom: int = 0) -> None:
        with self._lock:
            self.get(payload_id).status.clear_fault(flags, custom)

    def _new_record(self, payload_id: int, name: str, *, hosted: bool, now_ms: int) -> PayloadRecord:
        record = PayloadRecord(
            payload_id,
            name,
            hosted=hosted,
            now_ms=now_ms,
            momentary_timeout_ms=self._momentary_timeout_ms,
            status_interval_ms=self._status_interval_ms,
        )
        self._records[payload_id] = record
        return record


__all__ = ["PayloadDirectory", "PayloadRecord"]
