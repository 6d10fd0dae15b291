"""Control state machine for payload functions.

Each function owns a small FSM (``disabled`` / ``latched`` / ``momentary``).
Commands are validated against the capability registry before any state is
touched, and momentary holds revert to ``disabled`` when a tick observes
their deadline.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

import msgspec
from transitions import Machine

from .const import DEFAULT_MOMENTARY_TIMEOUT
from .errors import OutOfRange, TypeMismatch, UnsupportedControlMode
from .protocol import codec
from .protocol.codec import TypedValue
from .protocol.protocol import ControlMode
from .protocol.structures import FunctionControlPacket, FunctionStatusPacket
from .registry import CapabilityRegistry, FunctionDescriptor

logger = logging.getLogger("payloadlink.control")

# FSM States
STATE_DISABLED = "disabled"
STATE_LATCHED = "latched"
STATE_MOMENTARY = "momentary"

_SINGLE_MODES = (ControlMode.LATCHING, ControlMode.MOMENTARY)


class ControlCommand(msgspec.Struct, frozen=True, kw_only=True):
    """A decoded function-control request."""

    index: int
    value: TypedValue
    control_mode: ControlMode = ControlMode.LATCHING
    enable: bool = True
    timeout_ms: int = 0

    @classmethod
    def from_packet(cls, packet: FunctionControlPacket) -> ControlCommand:
        value = codec.decode(packet.value_type, packet.value_low, packet.value_high)
        try:
            mode = ControlMode(packet.control_mode)
        except ValueError as exc:
            raise UnsupportedControlMode(f"Unknown control mode 0x{packet.control_mode:02X}") from exc
        return cls(
            index=packet.index,
            value=value,
            control_mode=mode,
            enable=bool(packet.enable),
            timeout_ms=packet.timeout_ms,
        )

    def to_packet(self, payload_id: int) -> FunctionControlPacket:
        low, high = self.value.encode()
        return FunctionControlPacket(
            payload_id=payload_id,
            index=self.index,
            value_type=int(self.value.value_type),
            control_mode=int(self.control_mode),
            enable=int(self.enable),
            value_low=low,
            value_high=high,
            timeout_ms=self.timeout_ms,
        )


class ControlState(msgspec.Struct, frozen=True):
    """Point-in-time view of a function's control state."""

    mode: str
    current_value: TypedValue
    deadline_ms: int | None = None

    @property
    def enabled(self) -> bool:
        return self.mode != STATE_DISABLED


class FunctionStatusEvent(msgspec.Struct, frozen=True):
    """Emitted for every accepted command and every momentary expiry."""

    index: int
    enabled: bool
    value: TypedValue
    expired: bool = False

    def to_packet(self, payload_id: int) -> FunctionStatusPacket:
        low, high = self.value.encode()
        return FunctionStatusPacket(
            payload_id=payload_id,
            index=self.index,
            enabled=int(self.enabled),
            value_low=low,
            value_high=high,
        )


class FunctionControl:
    """FSM model holding the runtime state of one function."""

    if TYPE_CHECKING:
        # FSM generated methods and attributes for static analysis
        fsm_state: str
        disable: Callable[..., bool]
        latch: Callable[..., bool]
        engage: Callable[..., bool]
        expire: Callable[..., bool]

    def __init__(self, descriptor: FunctionDescriptor) -> None:
        self.descriptor = descriptor
        self.current_value = TypedValue.zero(descriptor.value_type)
        self.deadline_ms: int | None = None

        self.state_machine = Machine(
            model=self,
            states=[STATE_DISABLED, STATE_LATCHED, STATE_MOMENTARY],
            initial=STATE_DISABLED,
            auto_transitions=False,
            ignore_invalid_triggers=True,
            model_attribute="fsm_state",
        )
        self.state_machine.add_transition("disable", "*", STATE_DISABLED, after="_clear_deadline")
        self.state_machine.add_transition("latch", "*", STATE_LATCHED, before="_hold_value")
        self.state_machine.add_transition("engage", "*", STATE_MOMENTARY, before="_hold_until")
        self.state_machine.add_transition(
            "expire",
            STATE_MOMENTARY,
            STATE_DISABLED,
            conditions="_deadline_reached",
            after="_clear_deadline",
        )

    @property
    def enabled(self) -> bool:
        return self.fsm_state != STATE_DISABLED

    def snapshot(self) -> ControlState:
        return ControlState(self.fsm_state, self.current_value, self.deadline_ms)

    def status_event(self, *, expired: bool = False) -> FunctionStatusEvent:
        return FunctionStatusEvent(
            index=self.descriptor.index or 0,
            enabled=self.enabled,
            value=self.current_value,
            expired=expired,
        )

    def _hold_value(self, value: TypedValue, *args: Any) -> None:
        self.current_value = value
        self.deadline_ms = None

    def _hold_until(self, value: TypedValue, deadline_ms: int) -> None:
        self.current_value = value
        self.deadline_ms = deadline_ms

    def _deadline_reached(self, now_ms: int) -> bool:
        return self.deadline_ms is not None and self.deadline_ms <= now_ms

    def _clear_deadline(self, *args: Any) -> None:
        self.deadline_ms = None


class ControlStateMachine:
    """Runtime control state for every function of one payload.

    Validation happens in full before a transition fires, so a rejected
    command leaves every state untouched.
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        *,
        momentary_timeout_ms: int = DEFAULT_MOMENTARY_TIMEOUT,
    ) -> None:
        self._registry = registry
        self._momentary_timeout_ms = momentary_timeout_ms
        self._controls: dict[int, FunctionControl] = {}

    def track(self, descriptor: FunctionDescriptor) -> None:
        """Create the initial ``disabled`` state for a newly registered function."""
        if descriptor.index is None:
            raise ValueError("Only registered functions can be tracked")
        self._controls.setdefault(descriptor.index, FunctionControl(descriptor))

    def validate(self, command: ControlCommand) -> FunctionDescriptor:
        descriptor = self._registry.describe_function(command.index)
        if command.value.value_type != descriptor.value_type:
            raise TypeMismatch(
                f"Function {command.index} expects {descriptor.value_type.name}, "
                f"command carries {command.value.value_type.name}"
            )
        if (
            command.control_mode not in _SINGLE_MODES
            or command.control_mode not in descriptor.supported_control_modes
        ):
            raise UnsupportedControlMode(
                f"Function {command.index} does not support {command.control_mode!r}"
            )
        if not descriptor.accepts(command.value):
            minimum, maximum = descriptor.bounds()
            raise OutOfRange(
                f"Value {command.value.value!r} outside [{minimum.value!r}, {maximum.value!r}] "
                f"for function {command.index}"
            )
        return descriptor

    def apply(self, command: ControlCommand, now_ms: int) -> FunctionStatusEvent:
        """Validate and apply *command*, returning the resulting status event."""
        descriptor = self.validate(command)
        control = self._control(descriptor)

        if not command.enable:
            control.disable()
        elif command.control_mode is ControlMode.MOMENTARY:
            timeout_ms = command.timeout_ms or self._momentary_timeout_ms
            control.engage(command.value, now_ms + timeout_ms)
        else:
            control.latch(command.value)

        logger.debug(
            "Function %d -> %s value=%r deadline=%s",
            command.index,
            control.fsm_state,
            control.current_value.value,
            control.deadline_ms,
        )
        return control.status_event()

    def expire(self, now_ms: int) -> list[FunctionStatusEvent]:
        """Revert every momentary hold whose deadline is at or before *now_ms*."""
        events: list[FunctionStatusEvent] = []
        for index in sorted(self._controls):
            control = self._controls[index]
            if control.fsm_state != STATE_MOMENTARY:
                continue
            if control.expire(now_ms):
                logger.debug("Function %d momentary hold expired", index)
                events.append(control.status_event(expired=True))
        return events

    def state(self, index: int) -> ControlState:
        descriptor = self._registry.describe_function(index)
        return self._control(descriptor).snapshot()

    def status(self, index: int) -> FunctionStatusEvent:
        """Current status of *index*, used to answer status requests."""
        descriptor = self._registry.describe_function(index)
        return self._control(descriptor).status_event()

    def snapshot(self) -> dict[int, ControlState]:
        return {index: control.snapshot() for index, control in sorted(self._controls.items())}

    def next_deadline(self) -> int | None:
        deadlines = [c.deadline_ms for c in self._controls.values() if c.deadline_ms is not None]
        return min(deadlines) if deadlines else None

    def _control(self, descriptor: FunctionDescriptor) -> FunctionControl:
        assert descriptor.index is not None
        control = self._controls.get(descriptor.index)
        if control is None:
            control = FunctionControl(descriptor)
            self._controls[descriptor.index] = control
        return control


__all__ = [
    "STATE_DISABLED",
    "STATE_LATCHED",
    "STATE_MOMENTARY",
    "ControlCommand",
    "ControlState",
    "ControlStateMachine",
    "FunctionControl",
    "FunctionStatusEvent",
]
