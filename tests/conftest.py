"""Pytest configuration for PayloadLink tests."""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import logging

import pytest

from payloadlink.config.model import RuntimeConfig
from payloadlink.directory import PayloadDirectory, PayloadRecord
from payloadlink.engine import PayloadLinkEngine
from payloadlink.protocol.protocol import ControlMode, FunctionType, ValueType
from payloadlink.registry import CapabilityRegistry, FunctionDescriptor, TelemetryChannelDescriptor

_HAS_PYTEST_ASYNCIO = importlib.util.find_spec("pytest_asyncio") is not None


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test to run on asyncio loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Fallback asyncio runner when pytest-asyncio is unavailable."""
    if _HAS_PYTEST_ASYNCIO:
        return None
    if "asyncio" not in pyfuncitem.keywords:
        return None
    test_function = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_function):
        return None

    kwargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
    asyncio.run(test_function(**kwargs))
    return True


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    """Close and remove all root handlers after each test to prevent ResourceWarnings."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)


def brightness_descriptor() -> FunctionDescriptor:
    return FunctionDescriptor.create(
        "Brightness",
        FunctionType.CONTINUOUS,
        ValueType.INT32,
        minimum=0,
        maximum=100,
        supported_control_modes=ControlMode.LATCHING | ControlMode.MOMENTARY,
        units="%",
    )


def power_descriptor() -> FunctionDescriptor:
    return FunctionDescriptor.create("Power", FunctionType.LOGICAL, ValueType.UINT32)


def voltage_channel(rate_hz: float = 10.0) -> TelemetryChannelDescriptor:
    return TelemetryChannelDescriptor.create(
        "Voltage",
        ValueType.REAL32,
        update_rate_hz=rate_hz,
        minimum=0.0,
        maximum=50.0,
        units="V",
    )


@pytest.fixture()
def runtime_config() -> RuntimeConfig:
    return RuntimeConfig(liveness_timeout_ms=0)


@pytest.fixture()
def registry() -> CapabilityRegistry:
    registry = CapabilityRegistry()
    registry.register_function(brightness_descriptor())
    registry.register_function(power_descriptor())
    registry.register_telemetry(voltage_channel())
    return registry


@pytest.fixture()
def directory() -> PayloadDirectory:
    return PayloadDirectory()


@pytest.fixture()
def hosted_record(directory: PayloadDirectory) -> PayloadRecord:
    record = directory.host(7, "Lamp", now_ms=0)
    record.register_function(brightness_descriptor())
    record.register_function(power_descriptor())
    record.register_telemetry(voltage_channel())
    return record


class FakeClock:
    def __init__(self, now_ms: int = 0) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, delta_ms: int) -> int:
        self.now_ms += delta_ms
        return self.now_ms


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def engine(runtime_config: RuntimeConfig, clock: FakeClock) -> PayloadLinkEngine:
    engine = PayloadLinkEngine(runtime_config, clock=clock)
    record = engine.host(7, "Lamp")
    record.register_function(brightness_descriptor())
    record.register_function(power_descriptor())
    record.register_telemetry(voltage_channel())
    return engine


@pytest.fixture()
def brightness() -> FunctionDescriptor:
    return brightness_descriptor()


@pytest.fixture()
def power() -> FunctionDescriptor:
    return power_descriptor()


@pytest.fixture()
def voltage() -> TelemetryChannelDescriptor:
    return voltage_channel()
