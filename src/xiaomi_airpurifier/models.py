"""Supported purifier models and their per-model differences."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PurifierModel(str, Enum):
    """Model identifiers accepted in device configuration."""

    AIR_PURIFIER_2 = "MiAirPurifier2"
    AIR_PURIFIER_2S = "MiAirPurifier2S"
    AIR_PURIFIER_PRO = "MiAirPurifierPro"


class OperatingMode(str, Enum):
    """Operating modes reported by the device.

    IDLE is reported while the purifier is switched off and cannot be set.
    """

    AUTO = "auto"
    FAVORITE = "favorite"
    SILENT = "silent"
    IDLE = "idle"


class LedControl(Enum):
    """How the indicator light is driven.

    SWITCH:    set_led ["on"|"off"]
    TRI_STATE: set_led_b [0|1|2] (0=bright, 1=dim, 2=off)
    """

    SWITCH = "switch"
    TRI_STATE = "tri_state"


class LedBrightness(int, Enum):
    """Argument values for set_led_b."""

    BRIGHT = 0
    DIM = 1
    OFF = 2


class RawProperty:
    """Device property names requested with get_prop."""

    POWER = "power"
    MODE = "mode"
    AQI = "aqi"
    TEMPERATURE = "temp_dec"        # tenths of a degree C
    HUMIDITY = "humidity"
    FILTER_LIFE = "filter1_life"    # remaining %
    FAVORITE_LEVEL = "favorite_level"
    LED = "led"
    VOLUME = "volume"              # buzzer volume 0-100, 0 is silent
    CHILD_LOCK = "child_lock"


class StateKey:
    """Normalized snapshot keys exposed to the accessory layer."""

    POWER = "power"
    MODE = "mode"
    AQI = "aqi"
    AIR_QUALITY = "air_quality"
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    FILTER_LIFE = "filter_life"
    FILTER_CHANGE = "filter_change"
    ROTATION_SPEED = "rotation_speed"
    LIGHT = "light"
    BUZZER = "buzzer"
    CHILD_LOCK = "child_lock"

    ALL = (
        POWER,
        MODE,
        AQI,
        AIR_QUALITY,
        TEMPERATURE,
        HUMIDITY,
        FILTER_LIFE,
        FILTER_CHANGE,
        ROTATION_SPEED,
        LIGHT,
        BUZZER,
        CHILD_LOCK,
    )


_PROPERTIES = (
    RawProperty.POWER,
    RawProperty.MODE,
    RawProperty.AQI,
    RawProperty.TEMPERATURE,
    RawProperty.HUMIDITY,
    RawProperty.FILTER_LIFE,
    RawProperty.FAVORITE_LEVEL,
    RawProperty.LED,
    RawProperty.CHILD_LOCK,
    RawProperty.VOLUME,
)


@dataclass(frozen=True)
class ModelSpec:
    """Everything that differs between supported models."""

    model: PurifierModel
    favorite_level_max: int
    led_control: LedControl

    @property
    def properties(self) -> tuple[str, ...]:
        """Raw properties fetched in one batched get_prop, in reply order."""
        return _PROPERTIES


MODEL_SPECS: dict[PurifierModel, ModelSpec] = {
    PurifierModel.AIR_PURIFIER_2: ModelSpec(
        model=PurifierModel.AIR_PURIFIER_2,
        favorite_level_max=16,
        led_control=LedControl.SWITCH,
    ),
    PurifierModel.AIR_PURIFIER_2S: ModelSpec(
        model=PurifierModel.AIR_PURIFIER_2S,
        favorite_level_max=14,
        led_control=LedControl.SWITCH,
    ),
    PurifierModel.AIR_PURIFIER_PRO: ModelSpec(
        model=PurifierModel.AIR_PURIFIER_PRO,
        favorite_level_max=16,
        led_control=LedControl.TRI_STATE,
    ),
}


def get_model_spec(model: PurifierModel | str) -> ModelSpec:
    """Look up the spec for a model.

    Raises:
        ValueError: If the model is not supported
    """
    return MODEL_SPECS[PurifierModel(model)]
