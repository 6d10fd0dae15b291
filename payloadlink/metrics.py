"""Prometheus exporter for PayloadLink engine counters and payload health."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any, cast

import msgspec
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily, InfoMetricFamily
from prometheus_client.registry import Collector

from . import __version__

if TYPE_CHECKING:
    from .engine import PayloadLinkEngine

logger = logging.getLogger("payloadlink.metrics")

_SANITIZE_RE = re.compile(r"[^a-zA-Z0-9_]")
_INFO_METRIC = "payloadlink"
_GAUGE_DOC = "PayloadLink engine counter"
_PAYLOAD_LABELS = ("payload_id", "name", "hosted")


class PayloadLinkCollector(Collector):
    """Prometheus collector projecting engine stats and per-payload status."""

    def __init__(self, engine: PayloadLinkEngine) -> None:
        self._engine = engine

    def collect(self) -> Iterator[Any]:
        info = InfoMetricFamily(_INFO_METRIC, "PayloadLink build information")
        info.add_metric((), {"version": __version__})
        yield info

        for name, value in self._flatten("payloadlink", self._engine.stats):
            metric = GaugeMetricFamily(_sanitize_metric_name(name), _GAUGE_DOC)
            metric.add_metric((), value)
            yield metric

        yield from self._payload_metrics()

    def _payload_metrics(self) -> Iterator[Any]:
        families = {
            "uptime_ms": GaugeMetricFamily(
                "payloadlink_payload_uptime_ms", "Payload uptime in milliseconds", labels=_PAYLOAD_LABELS
            ),
            "error_flags": GaugeMetricFamily(
                "payloadlink_payload_error_flags", "Payload error flag bitmask", labels=_PAYLOAD_LABELS
            ),
            "power_draw": GaugeMetricFamily(
                "payloadlink_payload_power_draw", "Reported power draw", labels=_PAYLOAD_LABELS
            ),
            "temperature": GaugeMetricFamily(
                "payloadlink_payload_temperature", "Reported temperature", labels=_PAYLOAD_LABELS
            ),
            "num_functions": GaugeMetricFamily(
                "payloadlink_payload_functions", "Registered functions", labels=_PAYLOAD_LABELS
            ),
            "num_telemetry": GaugeMetricFamily(
                "payloadlink_payload_telemetry_channels", "Registered telemetry channels", labels=_PAYLOAD_LABELS
            ),
        }
        with self._engine.directory.lock:
            for record in self._engine.directory:
                labels = (str(record.payload_id), record.name, "1" if record.hosted else "0")
                packet = record.status.status_packet()
                for key, family in families.items():
                    family.add_metric(labels, float(getattr(packet, key)))
        yield from families.values()

    def _flatten(self, prefix: str, value: Any) -> Iterator[tuple[str, float]]:
        if isinstance(value, msgspec.Struct):
            yield from self._flatten(prefix, msgspec.structs.asdict(value))
            return
        if isinstance(value, dict):
            typed_dict = cast(dict[Any, Any], value)
            for raw_key, sub_value in typed_dict.items():
                yield from self._flatten(f"{prefix}_{raw_key}", sub_value)
            return
        if isinstance(value, bool):
            yield (prefix, 1.0 if value else 0.0)
            return
        if isinstance(value, (int, float)):
            yield (prefix, float(value))


class PrometheusExporter:
    """Expose engine metrics via the Prometheus text format."""

    def __init__(self, engine: PayloadLinkEngine, host: str, port: int) -> None:
        self._host = host
        self._port = port
        self._server: asyncio.AbstractServer | None = None
        self._resolved_port: int | None = None
        self._registry = CollectorRegistry()
        self._registry.register(PayloadLinkCollector(engine))

    @property
    def port(self) -> int:
        return self._resolved_port or self._port

    async def start(self) -> None:
        if self._server is not None:
            return
        self._server = await asyncio.start_server(
            self._handle_client,
            host=self._host,
            port=self._port,
        )
        sockets = self._server.sockets or []
        if sockets:
            sockname = sockets[0].getsockname()
            if isinstance(sockname, tuple) and len(sockname) >= 2 and isinstance(sockname[1], int):
                self._resolved_port = sockname[1]
        logger.info(
            "Prometheus exporter listening",
            extra={"host": self._host, "port": self.port},
        )

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Prometheus exporter stopped")

    async def run(self) -> None:
        await self.start()
        assert self._server is not None
        try:
            await self._server.serve_forever()
        finally:
            await self.stop()

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        try:
            request_line = await reader.readline()
            if not request_line:
                return
            parts = request_line.decode("ascii", errors="ignore").split()
            if len(parts) < 2:
                await self._write_response(writer, 400, b"")
                return
            method, path = parts[0], parts[1]
            while True:
                line = await reader.readline()
                if not line or line in {b"\r\n", b"\n"}:
                    break
            if method != "GET" or path not in {"/metrics", "/"}:
                await self._write_response(writer, 404, b"")
                return
            await self._write_response(
                writer,
                200,
                self.render(),
                content_type=CONTENT_TYPE_LATEST,
            )
        except (OSError, ValueError) as e:
            logger.warning("Prometheus client request error: %s", e)
        finally:
            try:
                writer.close()
                await writer.wait_closed()
            except (OSError, RuntimeError):
                logger.debug("Error closing metrics client connection", exc_info=True)

    async def _write_response(
        self,
        writer: asyncio.StreamWriter,
        status: int,
        body: bytes,
        *,
        content_type: str = "text/plain; charset=utf-8",
    ) -> None:
        phrases = {
            200: "OK",
            400: "Bad Request",
            404: "Not Found",
        }
        status_line = f"HTTP/1.1 {status} {phrases.get(status, 'Error')}\r\n"
        headers = f"Content-Type: {content_type}\r\n" f"Content-Length: {len(body)}\r\n" "Connection: close\r\n\r\n"
        writer.write(status_line.encode("ascii") + headers.encode("ascii") + body)
        await writer.drain()

    def render(self) -> bytes:
        return generate_latest(self._registry)


def _sanitize_metric_name(name: str) -> str:
    cleaned = _SANITIZE_RE.sub("_", name.lower())
    cleaned = cleaned.strip("_") or "payloadlink_metric"
    if cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned


__all__ = ["PayloadLinkCollector", "PrometheusExporter"]
