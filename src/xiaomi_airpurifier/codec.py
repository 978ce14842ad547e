"""Property codec - translation between raw device values and domain values.

Pure functions, no I/O and no state. Everything the poll loop stores in the
snapshot goes through decode_properties(); everything the command resolver
sends for a percentage goes through percent_to_level().
"""

from __future__ import annotations

import logging
import math
from enum import IntEnum
from typing import Any, Sequence

from .models import ModelSpec, OperatingMode, RawProperty, StateKey

_LOGGER = logging.getLogger(__name__)

DEFAULT_AQI_THRESHOLDS: tuple[float, float, float, float] = (5, 15, 35, 55)

# Below this remaining filter life (%) the filter should be replaced
FILTER_CHANGE_THRESHOLD = 5


class AirQuality(IntEnum):
    """Five-level air quality classification (plus UNKNOWN).

    Values match the HomeKit AirQuality characteristic.
    """

    UNKNOWN = 0
    EXCELLENT = 1
    GOOD = 2
    FAIR = 3
    INFERIOR = 4
    POOR = 5


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _as_finite_number(raw: Any) -> float | None:
    """Return raw as a finite float, or None for anything else."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        try:
            value = float(raw)
        except ValueError:
            return None
    else:
        return None
    return value if math.isfinite(value) else None


# =============================================================================
# Device -> domain
# =============================================================================


def parse_switch(raw: Any) -> bool | None:
    """Map an "on"/"off" property to a boolean (None if unrecognized)."""
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        lowered = raw.lower()
        if lowered == "on":
            return True
        if lowered == "off":
            return False
    return None


def parse_tenths(raw: Any) -> float | None:
    """Map a tenths-scaled integer (e.g. temp_dec=215) to units (21.5)."""
    value = _as_finite_number(raw)
    if value is None:
        return None
    return value / 10


def parse_int(raw: Any) -> int | None:
    value = _as_finite_number(raw)
    if value is None:
        return None
    return int(value)


def parse_mode(raw: Any) -> OperatingMode | None:
    if not isinstance(raw, str):
        return None
    try:
        return OperatingMode(raw.lower())
    except ValueError:
        return None


def level_to_percent(level: Any, model_max: int) -> int | None:
    """Convert a favorite level to a 0-100 percentage.

    round(level / model_max * 100), half-up.

    Args:
        level: Raw favorite level
        model_max: Model's highest favorite level (14 or 16)

    Returns:
        Percentage, or None if level is not a number
    """
    value = _as_finite_number(level)
    if value is None:
        return None
    percent = _round_half_up(value / model_max * 100)
    return max(0, min(100, percent))


def classify_air_quality(
    aqi: Any,
    thresholds: Sequence[float] = DEFAULT_AQI_THRESHOLDS,
) -> AirQuality:
    """Classify a PM2.5 index into five bands.

    With thresholds (t1, t2, t3, t4):
        aqi <= t1 -> EXCELLENT
        aqi <= t2 -> GOOD
        aqi <= t3 -> FAIR
        aqi <= t4 -> INFERIOR
        otherwise -> POOR

    Args:
        aqi: Raw index value
        thresholds: Four ascending breakpoints (see validate_thresholds)

    Returns:
        AirQuality level, UNKNOWN if aqi is not a finite number
    """
    value = _as_finite_number(aqi)
    if value is None:
        return AirQuality.UNKNOWN

    t1, t2, t3, t4 = thresholds
    if value <= t1:
        return AirQuality.EXCELLENT
    if value <= t2:
        return AirQuality.GOOD
    if value <= t3:
        return AirQuality.FAIR
    if value <= t4:
        return AirQuality.INFERIOR
    return AirQuality.POOR


def filter_needs_change(life: Any) -> bool | None:
    """True when remaining filter life is below FILTER_CHANGE_THRESHOLD."""
    value = _as_finite_number(life)
    if value is None:
        return None
    return value < FILTER_CHANGE_THRESHOLD


def parse_alert(volume: Any) -> bool | None:
    """The buzzer is on whenever its volume is above zero."""
    value = _as_finite_number(volume)
    return None if value is None else value > 0


def decode_properties(
    spec: ModelSpec,
    raw_values: Sequence[Any],
    thresholds: Sequence[float] = DEFAULT_AQI_THRESHOLDS,
) -> dict[str, Any]:
    """Normalize a batched get_prop reply.

    Args:
        spec: Model spec whose properties were requested
        raw_values: Reply values, in spec.properties order
        thresholds: Air quality breakpoints

    Returns:
        Mapping of StateKey name to normalized value (None where the device
        reported something unusable)

    Raises:
        ValueError: If the reply does not have one value per property
    """
    names = spec.properties
    if not isinstance(raw_values, (list, tuple)) or len(raw_values) != len(names):
        raise ValueError(
            f"Expected {len(names)} property values, got {raw_values!r}"
        )
    raw = dict(zip(names, raw_values))

    aqi = raw[RawProperty.AQI]
    filter_life = raw[RawProperty.FILTER_LIFE]
    return {
        StateKey.POWER: parse_switch(raw[RawProperty.POWER]),
        StateKey.MODE: parse_mode(raw[RawProperty.MODE]),
        StateKey.AQI: parse_int(aqi),
        StateKey.AIR_QUALITY: classify_air_quality(aqi, thresholds),
        StateKey.TEMPERATURE: parse_tenths(raw[RawProperty.TEMPERATURE]),
        StateKey.HUMIDITY: parse_int(raw[RawProperty.HUMIDITY]),
        StateKey.FILTER_LIFE: parse_int(filter_life),
        StateKey.FILTER_CHANGE: filter_needs_change(filter_life),
        StateKey.ROTATION_SPEED: level_to_percent(
            raw[RawProperty.FAVORITE_LEVEL], spec.favorite_level_max
        ),
        StateKey.LIGHT: parse_switch(raw[RawProperty.LED]),
        StateKey.BUZZER: parse_alert(raw[RawProperty.VOLUME]),
        StateKey.CHILD_LOCK: parse_switch(raw[RawProperty.CHILD_LOCK]),
    }


# =============================================================================
# Domain -> device
# =============================================================================


def percent_to_level(percent: float, model_max: int) -> int:
    """Convert a 0-100 percentage to a favorite level.

    round(percent / 100 * model_max), half-up, clamped to [1, model_max].
    0% maps to level 1: turning the purifier off is done with
    the power intent, never with a level of 0.

    Args:
        percent: Requested speed in percent
        model_max: Model's highest favorite level

    Returns:
        Level in [1, model_max]
    """
    level = _round_half_up(percent / 100 * model_max)
    return max(1, min(model_max, level))


def format_switch(value: bool) -> str:
    return "on" if value else "off"


# =============================================================================
# Configuration
# =============================================================================


def validate_thresholds(value: Any) -> tuple[float, float, float, float]:
    """Validate configured air quality breakpoints.

    Args:
        value: Candidate thresholds from configuration

    Returns:
        The thresholds as a tuple, or DEFAULT_AQI_THRESHOLDS if value is not
        exactly four finite, non-decreasing numbers
    """
    if value is None:
        return DEFAULT_AQI_THRESHOLDS
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence) or len(value) != 4:
        _LOGGER.warning("Invalid air quality thresholds %r, using defaults", value)
        return DEFAULT_AQI_THRESHOLDS

    numbers = [_as_finite_number(v) if not isinstance(v, str) else None for v in value]
    if any(n is None for n in numbers):
        _LOGGER.warning("Air quality thresholds must be numbers, got %r, using defaults", value)
        return DEFAULT_AQI_THRESHOLDS
    if any(a > b for a, b in zip(numbers, numbers[1:])):
        _LOGGER.warning("Air quality thresholds %r are not ascending, using defaults", value)
        return DEFAULT_AQI_THRESHOLDS

    t1, t2, t3, t4 = numbers
    return (t1, t2, t3, t4)
