#!/usr/bin/env python3
"""Basic usage example for xiaomi-airpurifier.

This example shows how to:
1. Discover miIO devices on the LAN
2. Connect and wait for the first poll
3. Display the normalized state
4. Change fan speed (commented out)

Requirements:
    pip install xiaomi-airpurifier

Usage:
    python basic_usage.py <TOKEN> [IP_ADDRESS] [MODEL]

If no IP address is provided, discovers devices first and uses the first one.
"""

import asyncio
import logging
import sys

from xiaomi_airpurifier import AirPurifierClient, DeviceConfig, StateKey
from xiaomi_airpurifier.connect import discover


async def main(token: str, address: str | None = None, model: str = "MiAirPurifier2S"):
    # Discover if no address provided
    if not address:
        print("Discovering miIO devices...")
        devices = await discover(timeout=5.0)

        if not devices:
            print("No devices found. Make sure:")
            print("  - Device is powered on and joined to Wi-Fi")
            print("  - This machine is on the same network segment")
            print("  - UDP port 54321 is not blocked")
            return

        print(f"Found {len(devices)} device(s):")
        for addr, device_id in devices:
            print(f"  {addr} - device id {device_id:08x}")

        address = devices[0][0]
        print(f"\nConnecting to {address}...")

    config = DeviceConfig.from_dict(
        {"ip": address, "token": token, "name": "Purifier", "type": model}
    )

    async with AirPurifierClient(config) as purifier:
        if not purifier.snapshot.values:
            print("Device did not answer; a reconnect has been scheduled")
            return

        print(f"\n--- {purifier.name} ({model}) ---")
        for key in StateKey.ALL:
            print(f"  {key:15} {purifier.read(key)!r}")

        # Example: Change fan speed (commented out for safety)
        # await purifier.write("rotation_speed", 50)
        # await purifier.refresh()
        # print(f"\nNew speed: {purifier.read('rotation_speed')}%")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    if len(sys.argv) < 2:
        print("Usage: python basic_usage.py <TOKEN> [IP_ADDRESS] [MODEL]")
        sys.exit(1)
    asyncio.run(main(*sys.argv[1:4]))
