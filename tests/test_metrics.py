"""Tests for the Prometheus collector and exporter."""

from __future__ import annotations

import asyncio

import pytest
from prometheus_client import CollectorRegistry

from payloadlink import __version__
from payloadlink.engine import PayloadLinkEngine
from payloadlink.metrics import PayloadLinkCollector, PrometheusExporter, _sanitize_metric_name
from payloadlink.protocol.protocol import PayloadErrorFlag


@pytest.fixture()
def registry_for(engine: PayloadLinkEngine) -> CollectorRegistry:
    registry = CollectorRegistry()
    registry.register(PayloadLinkCollector(engine))
    return registry


def test_collector_exports_engine_counters(engine: PayloadLinkEngine, registry_for: CollectorRegistry) -> None:
    engine.stats.frames_in = 3
    engine.stats.record_rejection("out_of_range")

    assert registry_for.get_sample_value("payloadlink_frames_in") == 3.0
    assert registry_for.get_sample_value("payloadlink_rejections_out_of_range") == 1.0
    assert registry_for.get_sample_value("payloadlink_info", {"version": __version__}) == 1.0


def test_collector_exports_payload_health(engine: PayloadLinkEngine, registry_for: CollectorRegistry) -> None:
    engine.directory.raise_fault(7, PayloadErrorFlag.OVERTEMP)
    labels = {"payload_id": "7", "name": "Lamp", "hosted": "1"}

    assert registry_for.get_sample_value("payloadlink_payload_functions", labels) == 2.0
    assert registry_for.get_sample_value("payloadlink_payload_telemetry_channels", labels) == 1.0
    assert registry_for.get_sample_value("payloadlink_payload_error_flags", labels) == float(PayloadErrorFlag.OVERTEMP)


def test_sanitize_metric_name() -> None:
    assert _sanitize_metric_name("Payload-Link.frames") == "payload_link_frames"
    assert _sanitize_metric_name("9lives") == "_9lives"
    assert _sanitize_metric_name("---") == "payloadlink_metric"


async def _http_get(port: int, path: str) -> bytes:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(f"GET {path} HTTP/1.1\r\nHost: localhost\r\n\r\n".encode("ascii"))
    await writer.drain()
    response = await reader.read()
    writer.close()
    await writer.wait_closed()
    return response


@pytest.mark.asyncio
async def test_exporter_serves_metrics(engine: PayloadLinkEngine) -> None:
    exporter = PrometheusExporter(engine, "127.0.0.1", 0)
    await exporter.start()
    try:
        assert exporter.port != 0
        ok = await _http_get(exporter.port, "/metrics")
        missing = await _http_get(exporter.port, "/nope")
    finally:
        await exporter.stop()

    assert ok.startswith(b"HTTP/1.1 200 OK")
    assert b"payloadlink_frames_in" in ok
    assert missing.startswith(b"HTTP/1.1 404")
