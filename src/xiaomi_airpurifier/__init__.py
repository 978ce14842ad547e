"""xiaomi-airpurifier - Local control of Xiaomi Mi Air Purifiers.

This library keeps a home-automation bridge in sync with Xiaomi air
purifiers on the local network, speaking the miIO protocol directly
(no cloud account needed, only the device token).

Supported devices:
- Mi Air Purifier 2 (MiAirPurifier2)
- Mi Air Purifier 2S (MiAirPurifier2S)
- Mi Air Purifier Pro (MiAirPurifierPro)

Disclaimer: This project is not affiliated with, endorsed by, or connected to
Xiaomi. All trademarks are the property of their respective owners.

Basic Usage:
    from xiaomi_airpurifier import AirPurifierClient, DeviceConfig

    config = DeviceConfig.from_dict({
        "ip": "192.168.1.50",
        "token": "00112233445566778899aabbccddeeff",
        "name": "Bedroom",
        "type": "MiAirPurifier2S",
    })
    async with AirPurifierClient(config) as purifier:
        purifier.subscribe(lambda snapshot: print(snapshot.values))
        await purifier.write("power", True)
        await purifier.write("rotation_speed", 50)
        print(purifier.read("air_quality"))

Bridge Integration:
    from xiaomi_airpurifier import AirPurifierClient, parse_device_configs

    # One client per valid record; invalid records are skipped with a warning
    clients = [AirPurifierClient(c) for c in parse_device_configs(records)]
    for client in clients:
        client.subscribe(accessory_for(client).update)
        await client.start()

Raw protocol access:
    from xiaomi_airpurifier.connect import open_transport

    async with open_transport("192.168.1.50", token) as transport:
        reply = await transport.send("get_prop", ["power", "aqi"])
"""

from __future__ import annotations

from .client import AirPurifierClient, DeviceRuntime
from .codec import (
    DEFAULT_AQI_THRESHOLDS,
    AirQuality,
    classify_air_quality,
    decode_properties,
    level_to_percent,
    percent_to_level,
    validate_thresholds,
)
from .commands import (
    CommandCandidate,
    ControlIntent,
    Decision,
    FallbackChain,
    IntentName,
    build_intent,
    resolve,
)
from .config import DeviceConfig, Feature, parse_device_configs
from .exceptions import (
    CommandRejectedError,
    NotConnectedError,
    PurifierError,
    RemoteError,
    TransportError,
    UnsupportedCommandError,
    ValidationError,
)
from .manager import ConnectionManager, ConnectionState
from .models import (
    LedBrightness,
    LedControl,
    ModelSpec,
    OperatingMode,
    PurifierModel,
    StateKey,
    get_model_spec,
)
from .poller import PollLoop
from .session import CallResult, CallStatus, DeviceSession
from .state import StateCache, StateSnapshot

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Primary interface
    "AirPurifierClient",
    "DeviceRuntime",
    "DeviceConfig",
    "Feature",
    "parse_device_configs",
    # Models
    "PurifierModel",
    "ModelSpec",
    "OperatingMode",
    "LedControl",
    "LedBrightness",
    "StateKey",
    "get_model_spec",
    # Engine
    "ConnectionManager",
    "ConnectionState",
    "DeviceSession",
    "CallResult",
    "CallStatus",
    "PollLoop",
    "StateCache",
    "StateSnapshot",
    # Commands
    "IntentName",
    "ControlIntent",
    "CommandCandidate",
    "FallbackChain",
    "Decision",
    "build_intent",
    "resolve",
    # Codec
    "AirQuality",
    "DEFAULT_AQI_THRESHOLDS",
    "classify_air_quality",
    "decode_properties",
    "level_to_percent",
    "percent_to_level",
    "validate_thresholds",
    # Errors
    "PurifierError",
    "TransportError",
    "RemoteError",
    "UnsupportedCommandError",
    "CommandRejectedError",
    "ValidationError",
    "NotConnectedError",
]
