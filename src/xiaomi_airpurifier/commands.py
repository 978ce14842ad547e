"""Command resolver - control intents to device commands.

A control intent ("set rotation speed to 42%") is validated first, then
resolved into an ordered list of command candidates for the device model.
Most intents resolve to exactly one candidate. Rotation speed resolves to a
fallback chain, because firmware revisions disagree on the method name:

    1. set_level_favorite [level]
    2. set_favorite_level [level]

The chain is consumed by FallbackChain:

    OK           -> SUCCEED (stop, write succeeded)
    UNSUPPORTED  -> ADVANCE (try the next candidate)
    anything else-> ABORT   (stop, surface the error)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple

from .codec import format_switch, percent_to_level
from .exceptions import PurifierError, UnsupportedCommandError, ValidationError
from .models import (
    LedBrightness,
    LedControl,
    ModelSpec,
    OperatingMode,
    StateKey,
)
from .session import CallResult, CallStatus, DeviceSession
from .state import StateSnapshot

_LOGGER = logging.getLogger(__name__)

# Volume sent when the audible alert is switched on via set_volume
ALERT_VOLUME = 50


class IntentName(str, Enum):
    POWER = "power"
    MODE = "mode"
    ROTATION_SPEED = "rotation_speed"
    LIGHT = "light"
    LIGHT_BRIGHTNESS = "light_brightness"
    BUZZER = "buzzer"
    CHILD_LOCK = "child_lock"


_SETTABLE_MODES = {
    "auto": OperatingMode.AUTO,
    "favorite": OperatingMode.FAVORITE,
    "manual": OperatingMode.FAVORITE,
    "silent": OperatingMode.SILENT,
}


@dataclass(frozen=True)
class ControlIntent:
    """A validated control request, independent of the device command."""

    name: IntentName
    value: Any


class CommandCandidate(NamedTuple):
    """One concrete device call that may satisfy an intent."""

    command: str
    args: tuple[Any, ...]


# =============================================================================
# Intent validation
# =============================================================================


def _validate_bool(name: IntentName, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ValidationError(f"{name.value} expects a boolean, got {value!r}")


def build_intent(name: IntentName | str, value: Any) -> ControlIntent:
    """Validate a control value and wrap it in an intent.

    Args:
        name: Intent name (see IntentName)
        value: Requested value

    Returns:
        ControlIntent with a normalized value

    Raises:
        ValidationError: If the intent is unknown or the value is invalid
    """
    try:
        intent = IntentName(name)
    except ValueError as err:
        raise ValidationError(f"Unknown intent: {name!r}") from err

    if intent is IntentName.MODE:
        mode = _SETTABLE_MODES.get(value.lower()) if isinstance(value, str) else None
        if mode is None:
            raise ValidationError(
                f"Mode must be 'auto', 'favorite' or 'silent', got {value!r}"
            )
        return ControlIntent(intent, mode)

    if intent is IntentName.ROTATION_SPEED:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ValidationError(f"Rotation speed must be a number, got {value!r}")
        if not 0 <= value <= 100:
            raise ValidationError(f"Rotation speed must be between 0 and 100, got {value}")
        return ControlIntent(intent, value)

    if intent is IntentName.LIGHT_BRIGHTNESS:
        if isinstance(value, LedBrightness):
            return ControlIntent(intent, value)
        try:
            return ControlIntent(intent, LedBrightness[str(value).upper()])
        except KeyError as err:
            raise ValidationError(
                f"Light brightness must be 'bright', 'dim' or 'off', got {value!r}"
            ) from err

    return ControlIntent(intent, _validate_bool(intent, value))


# =============================================================================
# Resolution
# =============================================================================


def resolve(intent: ControlIntent, spec: ModelSpec) -> list[CommandCandidate]:
    """Resolve an intent to its ordered candidate list for a model.

    Raises:
        ValidationError: If the model has no command for the intent
    """
    name, value = intent.name, intent.value

    if name is IntentName.POWER:
        return [CommandCandidate("set_power", (format_switch(value),))]

    if name is IntentName.MODE:
        return [CommandCandidate("set_mode", (OperatingMode(value).value,))]

    if name is IntentName.ROTATION_SPEED:
        level = percent_to_level(value, spec.favorite_level_max)
        return [
            CommandCandidate("set_level_favorite", (level,)),
            CommandCandidate("set_favorite_level", (level,)),
        ]

    if name is IntentName.LIGHT:
        if spec.led_control is LedControl.TRI_STATE:
            brightness = LedBrightness.BRIGHT if value else LedBrightness.OFF
            return [CommandCandidate("set_led_b", (int(brightness),))]
        return [CommandCandidate("set_led", (format_switch(value),))]

    if name is IntentName.LIGHT_BRIGHTNESS:
        if spec.led_control is not LedControl.TRI_STATE:
            raise ValidationError(
                f"{spec.model.value} does not support light brightness levels"
            )
        return [CommandCandidate("set_led_b", (int(value),))]

    if name is IntentName.BUZZER:
        return [CommandCandidate("set_volume", (ALERT_VOLUME if value else 0,))]

    if name is IntentName.CHILD_LOCK:
        return [CommandCandidate("set_child_lock", (format_switch(value),))]

    raise ValidationError(f"No command for intent {name.value}")


def prerequisite(
    intent: ControlIntent, spec: ModelSpec, snapshot: StateSnapshot
) -> CommandCandidate | None:
    """Command that should run before the intent's chain, if any.

    A favorite level only takes effect in favorite mode, so a rotation
    speed write switches the mode first when the cached mode differs.
    """
    if intent.name is not IntentName.ROTATION_SPEED:
        return None
    if snapshot.get(StateKey.MODE) is OperatingMode.FAVORITE:
        return None
    return CommandCandidate("set_mode", (OperatingMode.FAVORITE.value,))


# =============================================================================
# Execution
# =============================================================================


class Decision(Enum):
    SUCCEED = "succeed"
    ADVANCE = "advance"
    ABORT = "abort"


class FallbackChain:
    """Walks an ordered candidate list, one call result at a time.

    Example:
        chain = FallbackChain(candidates)
        while not chain.done:
            decision = chain.feed(await session.request(*chain.current))
            if decision is not Decision.ADVANCE:
                break
    """

    def __init__(self, candidates: list[CommandCandidate]) -> None:
        if not candidates:
            raise ValueError("Fallback chain needs at least one candidate")
        self._candidates = list(candidates)
        self._index = 0
        self._decision: Decision | None = None
        self.last_result: CallResult | None = None

    @property
    def current(self) -> CommandCandidate | None:
        """Next candidate to try, or None once the chain has halted."""
        if self.done:
            return None
        return self._candidates[self._index]

    @property
    def done(self) -> bool:
        return self._decision in (Decision.SUCCEED, Decision.ABORT) or self._index >= len(
            self._candidates
        )

    @property
    def succeeded(self) -> bool:
        return self._decision is Decision.SUCCEED

    def feed(self, result: CallResult) -> Decision:
        """Record the result of the current candidate and decide what next."""
        if self.done:
            raise RuntimeError("Fallback chain has already halted")
        self.last_result = result
        if result.status is CallStatus.OK:
            self._decision = Decision.SUCCEED
        elif result.status is CallStatus.UNSUPPORTED:
            self._index += 1
            self._decision = Decision.ADVANCE
        else:
            self._decision = Decision.ABORT
        return self._decision

    def error(self) -> PurifierError:
        """Error to surface when the chain did not succeed."""
        if self.last_result is not None and self.last_result.error is not None:
            return self.last_result.error
        return UnsupportedCommandError("No candidate command was accepted")


async def apply_intent(
    session: DeviceSession,
    intent: ControlIntent,
    spec: ModelSpec,
    snapshot: StateSnapshot,
) -> CommandCandidate:
    """Run an intent against a session.

    Args:
        session: Live device session
        intent: Validated intent
        spec: Model spec of the device
        snapshot: Current cached state (used for the mode pre-switch)

    Returns:
        The candidate the device acknowledged

    Raises:
        TransportError: If the session failed
        CommandRejectedError: If a candidate was rejected
        UnsupportedCommandError: If every candidate was unsupported
    """
    candidates = resolve(intent, spec)

    pre = prerequisite(intent, spec, snapshot)
    if pre is not None:
        result = await session.request(pre.command, pre.args, expect_ack=True)
        if not result.ok:
            _LOGGER.warning(
                "Switching %s to favorite mode failed, continuing: %s",
                session.name, result.error,
            )

    chain = FallbackChain(candidates)
    candidate = chain.current
    while candidate is not None:
        result = await session.request(candidate.command, candidate.args, expect_ack=True)
        decision = chain.feed(result)
        if decision is Decision.SUCCEED:
            return candidate
        if decision is Decision.ADVANCE:
            _LOGGER.debug("%s: %s unsupported, trying next candidate", session.name, candidate.command)
        candidate = chain.current

    raise chain.error()
