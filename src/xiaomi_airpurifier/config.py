"""Device configuration records.

The bridge layer hands us one record per configured purifier, e.g.:

    {
        "ip": "192.168.1.50",
        "token": "00112233445566778899aabbccddeeff",
        "name": "Bedroom Purifier",
        "type": "MiAirPurifier2S",
        "showLED": true,
        "names": {"air_quality": "Bedroom PM2.5"},
        "airQualityThresholds": [5, 15, 35, 55]
    }

Only what is needed to run a session is validated here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from .codec import DEFAULT_AQI_THRESHOLDS, validate_thresholds
from .exceptions import ValidationError
from .models import PurifierModel
from .protocol import token_to_bytes

_LOGGER = logging.getLogger(__name__)


class Feature(str, Enum):
    """Optional features the accessory layer may expose."""

    AIR_QUALITY = "air_quality"
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    LED = "led"
    BUZZER = "buzzer"


# Feature -> (config key, visible by default, default name suffix)
_FEATURE_OPTIONS: dict[Feature, tuple[str, bool, str]] = {
    Feature.AIR_QUALITY: ("showAirQuality", True, "Air Quality"),
    Feature.TEMPERATURE: ("showTemperature", True, "Temperature"),
    Feature.HUMIDITY: ("showHumidity", True, "Humidity"),
    Feature.LED: ("showLED", False, "LED"),
    Feature.BUZZER: ("showBuzzer", False, "Buzzer"),
}

_REQUIRED_KEYS = ("ip", "token", "name", "type")


def _default_visibility() -> Mapping[Feature, bool]:
    return MappingProxyType({f: opts[1] for f, opts in _FEATURE_OPTIONS.items()})


@dataclass(frozen=True)
class DeviceConfig:
    """Immutable configuration for one purifier."""

    address: str
    token: str
    model: PurifierModel
    name: str
    visibility: Mapping[Feature, bool] = field(default_factory=_default_visibility)
    names: Mapping[Feature, str] = field(default_factory=lambda: MappingProxyType({}))
    aqi_thresholds: tuple[float, float, float, float] = DEFAULT_AQI_THRESHOLDS

    @classmethod
    def from_dict(cls, record: Mapping[str, Any]) -> "DeviceConfig":
        """Build a config from a bridge configuration record.

        Raises:
            ValidationError: If a required key is missing, the token is
                malformed, or the model is not supported
        """
        missing = [key for key in _REQUIRED_KEYS if not record.get(key)]
        if missing:
            raise ValidationError(f"Device config is missing {', '.join(missing)}")

        token = str(record["token"])
        try:
            token_to_bytes(token)
        except ValueError as err:
            raise ValidationError(f"Invalid token for {record['name']}: {err}") from err

        try:
            model = PurifierModel(record["type"])
        except ValueError as err:
            raise ValidationError(
                f"Device type '{record['type']}' is not supported"
            ) from err

        visibility = {
            feature: bool(record.get(key, default))
            for feature, (key, default, _) in _FEATURE_OPTIONS.items()
        }

        names: dict[Feature, str] = {}
        raw_names = record.get("names") or {}
        if isinstance(raw_names, Mapping):
            for key, value in raw_names.items():
                try:
                    feature = Feature(key)
                except ValueError:
                    _LOGGER.warning("Ignoring name override for unknown feature %r", key)
                    continue
                if isinstance(value, str) and value.strip():
                    names[feature] = value.strip()

        return cls(
            address=str(record["ip"]),
            token=token,
            model=model,
            name=str(record["name"]),
            visibility=MappingProxyType(visibility),
            names=MappingProxyType(names),
            aqi_thresholds=validate_thresholds(record.get("airQualityThresholds")),
        )

    def is_visible(self, feature: Feature) -> bool:
        return self.visibility.get(feature, _FEATURE_OPTIONS[feature][1])

    def display_name(self, feature: Feature) -> str:
        """Name override for a feature, or "<device name> <feature label>"."""
        override = self.names.get(feature)
        if override:
            return override
        return f"{self.name} {_FEATURE_OPTIONS[feature][2]}"


def parse_device_configs(records: Iterable[Mapping[str, Any]]) -> list[DeviceConfig]:
    """Build configs for every valid record, skipping invalid ones.

    Args:
        records: Raw records from the bridge configuration

    Returns:
        One DeviceConfig per valid record, in input order
    """
    configs = []
    for record in records:
        try:
            configs.append(DeviceConfig.from_dict(record))
        except ValidationError as err:
            _LOGGER.warning("Skipping device %r: %s", record.get("name"), err)
    return configs
