"""Tests for device configuration records."""

import pytest

from xiaomi_airpurifier.codec import DEFAULT_AQI_THRESHOLDS
from xiaomi_airpurifier.config import DeviceConfig, Feature, parse_device_configs
from xiaomi_airpurifier.exceptions import ValidationError
from xiaomi_airpurifier.models import PurifierModel

from conftest import TOKEN


def _record(**overrides):
    record = {"ip": "192.168.1.50", "token": TOKEN, "name": "Bedroom", "type": "MiAirPurifier2S"}
    record.update(overrides)
    return record


class TestDeviceConfig:
    """Tests for DeviceConfig.from_dict."""

    def test_minimal_record(self):
        config = DeviceConfig.from_dict(_record())
        assert config.address == "192.168.1.50"
        assert config.token == TOKEN
        assert config.model is PurifierModel.AIR_PURIFIER_2S
        assert config.name == "Bedroom"
        assert config.aqi_thresholds == DEFAULT_AQI_THRESHOLDS

    def test_default_visibility(self):
        """Test sensors are shown and LED/buzzer switches hidden by default."""
        config = DeviceConfig.from_dict(_record())
        assert config.is_visible(Feature.AIR_QUALITY)
        assert config.is_visible(Feature.TEMPERATURE)
        assert config.is_visible(Feature.HUMIDITY)
        assert not config.is_visible(Feature.LED)
        assert not config.is_visible(Feature.BUZZER)

    def test_visibility_flags(self):
        config = DeviceConfig.from_dict(_record(showHumidity=False, showLED=True))
        assert not config.is_visible(Feature.HUMIDITY)
        assert config.is_visible(Feature.LED)

    def test_display_names(self):
        config = DeviceConfig.from_dict(
            _record(names={"air_quality": " Bedroom PM2.5 ", "led": "", "pm10": "x"})
        )
        assert config.display_name(Feature.AIR_QUALITY) == "Bedroom PM2.5"
        assert config.display_name(Feature.LED) == "Bedroom LED"
        assert config.display_name(Feature.TEMPERATURE) == "Bedroom Temperature"

    def test_thresholds(self):
        config = DeviceConfig.from_dict(_record(airQualityThresholds=[10, 20, 30, 40]))
        assert config.aqi_thresholds == (10, 20, 30, 40)

    def test_bad_thresholds_fall_back(self):
        config = DeviceConfig.from_dict(_record(airQualityThresholds=[40, 30]))
        assert config.aqi_thresholds == DEFAULT_AQI_THRESHOLDS

    @pytest.mark.parametrize("key", ["ip", "token", "name", "type"])
    def test_missing_key(self, key):
        record = _record()
        del record[key]
        with pytest.raises(ValidationError, match=key):
            DeviceConfig.from_dict(record)

    def test_bad_token(self):
        with pytest.raises(ValidationError, match="Invalid token"):
            DeviceConfig.from_dict(_record(token="abc"))

    def test_unsupported_model(self):
        with pytest.raises(ValidationError, match="not supported"):
            DeviceConfig.from_dict(_record(type="MiAirPurifier3H"))

    def test_frozen(self):
        config = DeviceConfig.from_dict(_record())
        with pytest.raises(AttributeError):
            config.name = "Kitchen"


class TestParseDeviceConfigs:
    """Tests for parsing the full device list."""

    def test_skips_invalid_records(self, caplog):
        records = [
            _record(name="Bedroom"),
            _record(name="Attic", type="MiAirPurifier3H"),
            _record(name="Office", type="MiAirPurifierPro"),
        ]

        configs = parse_device_configs(records)

        assert [c.name for c in configs] == ["Bedroom", "Office"]
        assert "Skipping device 'Attic'" in caplog.text

    def test_empty(self):
        assert parse_device_configs([]) == []
