"""Top-level engine wiring the directory, dispatcher and scheduler tick."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from transitions import Machine

from .config.model import RuntimeConfig
from .control import ControlCommand
from .directory import PayloadDirectory, PayloadRecord
from .dispatcher import MessageDispatcher, PacketObserver
from .metrics import PrometheusExporter
from .protocol.frame import Frame
from .protocol.structures import BaseStruct, FunctionStatusPacket, StatusPacket, TelemetryDataPacket
from .stats import EngineStats

FrameSink = Callable[[bytes], Awaitable[None]]
Clock = Callable[[], int]

logger = logging.getLogger("payloadlink.engine")


def monotonic_ms() -> int:
    return time.monotonic_ns() // 1_000_000


class PayloadLinkEngine:
    """Protocol engine for one link.

    The engine never touches a transport.  Inbound frames are fed to
    :meth:`handle_frame` and every outbound frame is returned to the
    caller (or handed to the ``send`` coroutine in :meth:`run`).
    """

    if TYPE_CHECKING:
        fsm_state: str
        start: Callable[[], None]
        stop: Callable[[], None]

    STATE_IDLE = "idle"
    STATE_RUNNING = "running"
    STATE_STOPPED = "stopped"

    def __init__(
        self,
        config: RuntimeConfig | None = None,
        *,
        observer: PacketObserver | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or RuntimeConfig()
        self.stats = EngineStats()
        self.directory = PayloadDirectory(
            momentary_timeout_ms=self.config.momentary_default_timeout_ms,
            status_interval_ms=self.config.status_interval_ms,
        )
        self.dispatcher = MessageDispatcher(self.directory, self.stats, observer=observer)
        self._clock = clock or monotonic_ms
        self.exporter: PrometheusExporter | None = None

        self.state_machine = Machine(
            model=self,
            states=[self.STATE_IDLE, self.STATE_RUNNING, self.STATE_STOPPED],
            initial=self.STATE_IDLE,
            ignore_invalid_triggers=True,
            model_attribute="fsm_state",
        )
        self.state_machine.add_transition(
            trigger="start", source=[self.STATE_IDLE, self.STATE_STOPPED], dest=self.STATE_RUNNING
        )
        self.state_machine.add_transition(trigger="stop", source=self.STATE_RUNNING, dest=self.STATE_STOPPED)

    @property
    def running(self) -> bool:
        return self.fsm_state == self.STATE_RUNNING

    def host(self, payload_id: int, name: str) -> PayloadRecord:
        return self.directory.host(payload_id, name, now_ms=self._clock())

    def handle_frame(self, raw_frame: bytes, now_ms: int | None = None) -> list[bytes]:
        """Process one inbound frame and return the encoded replies."""
        now = self._clock() if now_ms is None else now_ms
        replies = [frame.to_bytes() for frame in self.dispatcher.handle_frame(raw_frame, now)]
        self.stats.frames_out += len(replies)
        return replies

    def apply(self, payload_id: int, command: ControlCommand, now_ms: int | None = None) -> bytes:
        """Apply a locally issued command; validation errors propagate."""
        now = self._clock() if now_ms is None else now_ms
        reply = self.directory.route(payload_id, command, now)
        self.stats.commands_accepted += 1
        self.stats.frames_out += 1
        return Frame.for_packet(reply).to_bytes()

    def tick(self, now_ms: int | None = None) -> list[bytes]:
        """Run expiry, sampling and status for all hosted payloads."""
        now = self._clock() if now_ms is None else now_ms
        packets = self.directory.tick(now)
        for packet in packets:
            self._count(packet)

        removed = self.directory.prune(now, self.config.liveness_timeout_ms)
        self.stats.removals += len(removed)

        frames = [Frame.for_packet(packet).to_bytes() for packet in packets]
        self.stats.frames_out += len(frames)
        return frames

    async def run(self, send: FrameSink, *, clock: Clock | None = None) -> None:
        """Tick every ``tick_interval_ms`` and hand frames to *send* until cancelled.

        With ``metrics_enabled`` set, a Prometheus exporter serves for as long
        as the loop runs.
        """
        if clock is not None:
            self._clock = clock
        interval = self.config.tick_interval_ms / 1000.0
        if self.config.metrics_enabled:
            self.exporter = PrometheusExporter(self, self.config.metrics_host, self.config.metrics_port)
            await self.exporter.start()
        self.start()
        logger.info("Engine running with %d ms tick", self.config.tick_interval_ms)
        try:
            while self.running:
                for raw in self.tick():
                    await send(raw)
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.debug("Engine loop cancelled")
            raise
        finally:
            self.stop()
            if self.exporter is not None:
                await self.exporter.stop()
                self.exporter = None

    def _count(self, packet: BaseStruct) -> None:
        if isinstance(packet, FunctionStatusPacket):
            self.stats.momentary_expiries += 1
        elif isinstance(packet, TelemetryDataPacket):
            self.stats.telemetry_samples += 1
        elif isinstance(packet, StatusPacket):
            self.stats.status_broadcasts += 1


__all__ = ["FrameSink", "PayloadLinkEngine", "monotonic_ms"]
