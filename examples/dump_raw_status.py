#!/usr/bin/env python3
"""Dump the raw get_prop reply of a Xiaomi air purifier.

This diagnostic script shows the handshake header and the undecoded
property values received from the device, useful for debugging firmware
differences (e.g. which properties a model reports as null).

Usage:
    python dump_raw_status.py <IP_ADDRESS> <TOKEN> [MODEL]
    # or
    MIIO_IP=192.168.1.50 MIIO_TOKEN=0011... python dump_raw_status.py
"""

import asyncio
import os
import sys

from xiaomi_airpurifier.connect import open_transport
from xiaomi_airpurifier.exceptions import TransportError
from xiaomi_airpurifier.models import get_model_spec

# Everything a purifier of this family might report, including properties
# the library does not use
EXTRA_PROPERTIES = [
    "average_aqi", "motor1_speed", "use_time", "purify_volume", "bright", "buzzer",
]


async def main(address: str, token: str, model: str) -> None:
    spec = get_model_spec(model)
    properties = list(spec.properties) + [
        p for p in EXTRA_PROPERTIES if p not in spec.properties
    ]

    print(f"Connecting to {address}...")
    try:
        async with open_transport(address, token) as transport:
            print(f"Connected! Device id: {transport.device_id:08x}")

            print("\n--- Sending get_prop ---")
            print(f"Properties: {properties}")
            reply = await transport.send("get_prop", properties)

            info = await transport.send("miIO.info", [])
    except TransportError as err:
        print(f"ERROR: {err}")
        return

    if "error" in reply:
        print(f"ERROR: {reply['error']}")
        return

    print(f"\n--- Raw Reply ({len(reply['result'])} values) ---")
    for name, value in zip(properties, reply["result"]):
        marker = "" if name in spec.properties else "  (unused)"
        print(f"  {name:16} {value!r}{marker}")

    print("\n--- miIO.info ---")
    result = info.get("result") or {}
    if isinstance(result, dict):
        for key in ("model", "fw_ver", "hw_ver"):
            print(f"  {key:16} {result.get(key)!r}")
    else:
        print(f"  {info}")


if __name__ == "__main__":
    address = sys.argv[1] if len(sys.argv) > 1 else os.environ.get("MIIO_IP")
    token = sys.argv[2] if len(sys.argv) > 2 else os.environ.get("MIIO_TOKEN")
    model = sys.argv[3] if len(sys.argv) > 3 else os.environ.get("MIIO_MODEL", "MiAirPurifier2S")
    if not address or not token:
        print("Usage: python dump_raw_status.py <IP_ADDRESS> <TOKEN> [MODEL]")
        print("   or: MIIO_IP=192.168.1.50 MIIO_TOKEN=0011... python dump_raw_status.py")
        sys.exit(1)
    asyncio.run(main(address, token, model))
