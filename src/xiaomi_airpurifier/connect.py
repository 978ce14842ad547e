"""UDP transport and LAN discovery for miIO devices.

MiioTransport owns one datagram endpoint to one device. It is the only
thing in the library that touches the network; the session and connection
manager treat it as an opaque handle to open, use and discard.

Example:
    from xiaomi_airpurifier.connect import open_transport

    async with open_transport("192.168.1.50", token) as transport:
        reply = await transport.send("get_prop", ["power", "aqi"])
        print(reply["result"])
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from .exceptions import TransportError
from .protocol import (
    MIIO_PORT,
    build_hello,
    build_packet,
    build_request_payload,
    is_hello_reply,
    parse_header,
    parse_payload,
    token_to_bytes,
)

_LOGGER = logging.getLogger(__name__)

_BROADCAST_ADDRESS = "255.255.255.255"


class _DatagramQueue(asyncio.DatagramProtocol):
    """Pushes every received datagram into a queue."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue[bytes] = asyncio.Queue()
        self.error: Exception | None = None

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self.queue.put_nowait(data)

    def error_received(self, exc: Exception) -> None:
        _LOGGER.debug("Datagram error: %s", exc)
        self.error = exc

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            self.error = exc


class MiioTransport:
    """Request/response channel to one miIO device.

    Not safe for concurrent send() calls: replies are matched by id, but the
    caller (DeviceSession) is expected to serialize requests.

    Args:
        address: Device IP address or hostname
        token: 32 hex character device token
        port: Device UDP port
        timeout: Seconds to wait for each reply
    """

    def __init__(
        self,
        address: str,
        token: str | bytes,
        *,
        port: int = MIIO_PORT,
        timeout: float = 5.0,
    ) -> None:
        self.address = address
        self.port = port
        self.timeout = timeout
        self._token = token_to_bytes(token)
        self._transport: asyncio.DatagramTransport | None = None
        self._protocol: _DatagramQueue | None = None
        self._device_id: int | None = None
        self._device_stamp = 0
        self._stamp_origin = 0.0
        self._msg_id = 0

    @property
    def is_connected(self) -> bool:
        return self._transport is not None and self._device_id is not None

    @property
    def device_id(self) -> int | None:
        return self._device_id

    async def open(self) -> None:
        """Create the endpoint and perform the hello handshake.

        Raises:
            TransportError: If the socket cannot be created or the device
                does not answer the hello
        """
        if self.is_connected:
            return

        loop = asyncio.get_running_loop()
        try:
            transport, protocol = await loop.create_datagram_endpoint(
                _DatagramQueue, remote_addr=(self.address, self.port)
            )
        except (OSError, UnicodeError) as err:
            raise TransportError(f"Cannot open socket to {self.address}: {err}") from err

        self._transport = transport
        self._protocol = protocol
        try:
            await self._handshake()
        except BaseException:
            self.close()
            raise

    async def _handshake(self) -> None:
        self._sendto(build_hello())
        deadline = time.monotonic() + self.timeout
        while True:
            data = await self._receive(deadline)
            header = parse_header(data) if is_hello_reply(data) else None
            if header is None:
                continue
            self._device_id = header.device_id
            self._device_stamp = header.stamp
            self._stamp_origin = time.monotonic()
            _LOGGER.debug(
                "Handshake with %s: device id %08x, stamp %d",
                self.address, header.device_id, header.stamp,
            )
            return

    async def send(self, method: str, params: list[Any] | None = None) -> dict[str, Any]:
        """Send one command and wait for its reply.

        Args:
            method: RPC method name
            params: Positional argument list

        Returns:
            Decoded reply object (contains "result" or "error")

        Raises:
            TransportError: On timeout, socket error, or if not opened
        """
        device_id = self._device_id
        if self._transport is None or device_id is None:
            raise TransportError(f"Transport to {self.address} is not open")

        self._msg_id += 1
        msg_id = self._msg_id
        stamp = self._device_stamp + int(time.monotonic() - self._stamp_origin) + 1
        packet = build_packet(
            self._token,
            device_id,
            stamp & 0xFFFFFFFF,
            build_request_payload(msg_id, method, params),
        )
        _LOGGER.debug("%s >> %s(id=%d) %s", self.address, method, msg_id, params)
        self._sendto(packet)

        deadline = time.monotonic() + self.timeout
        while True:
            data = await self._receive(deadline)
            message = parse_payload(data, self._token)
            if message is None:
                _LOGGER.debug("%s: ignoring undecodable datagram (%d bytes)", self.address, len(data))
                continue
            if message.get("id") != msg_id:
                _LOGGER.debug("%s: ignoring stale reply id=%s", self.address, message.get("id"))
                continue
            header = parse_header(data)
            if header is not None:
                self._device_stamp = header.stamp
                self._stamp_origin = time.monotonic()
            _LOGGER.debug("%s << %s", self.address, message)
            return message

    def close(self) -> None:
        """Close the endpoint. Safe to call more than once."""
        if self._transport is not None:
            self._transport.close()
        self._transport = None
        self._protocol = None
        self._device_id = None

    def _sendto(self, data: bytes) -> None:
        transport = self._transport
        if transport is None:
            raise TransportError(f"Transport to {self.address} is closed")
        try:
            transport.sendto(data)
        except OSError as err:
            raise TransportError(f"Send to {self.address} failed: {err}") from err

    async def _receive(self, deadline: float) -> bytes:
        protocol = self._protocol
        if protocol is None:
            raise TransportError(f"Transport to {self.address} is closed")
        if protocol.error is not None:
            error, protocol.error = protocol.error, None
            raise TransportError(f"Socket error from {self.address}: {error}")
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TransportError(f"No reply from {self.address} within {self.timeout}s")
        try:
            return await asyncio.wait_for(protocol.queue.get(), timeout=remaining)
        except asyncio.TimeoutError as err:
            raise TransportError(f"No reply from {self.address} within {self.timeout}s") from err


async def connect(
    address: str,
    token: str | bytes,
    *,
    port: int = MIIO_PORT,
    timeout: float = 5.0,
) -> MiioTransport:
    """Open a transport to a device and complete the handshake.

    Raises:
        TransportError: If the device cannot be reached
    """
    transport = MiioTransport(address, token, port=port, timeout=timeout)
    await transport.open()
    return transport


@asynccontextmanager
async def open_transport(
    address: str,
    token: str | bytes,
    *,
    port: int = MIIO_PORT,
    timeout: float = 5.0,
) -> AsyncIterator[MiioTransport]:
    """Connect to a device for the duration of a block.

    Use this outside of a long-running bridge, e.g. in scripts.

    Args:
        address: Device IP address
        token: 32 hex character device token
        port: Device UDP port
        timeout: Seconds to wait for each reply

    Yields:
        Opened MiioTransport

    Example:
        async with open_transport("192.168.1.50", token) as transport:
            reply = await transport.send("get_prop", ["power"])
    """
    transport = await connect(address, token, port=port, timeout=timeout)
    try:
        yield transport
    finally:
        transport.close()


async def discover(
    timeout: float = 5.0,
    broadcast_address: str = _BROADCAST_ADDRESS,
    port: int = MIIO_PORT,
) -> list[tuple[str, int]]:
    """Scan the LAN for miIO devices by broadcasting a hello packet.

    Args:
        timeout: Scan duration in seconds
        broadcast_address: Address to send the hello to
        port: miIO UDP port

    Returns:
        List of (address, device_id) tuples for devices that answered
    """
    loop = asyncio.get_running_loop()
    found: dict[str, int] = {}

    class _Protocol(asyncio.DatagramProtocol):
        def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
            if not is_hello_reply(data):
                return
            header = parse_header(data)
            if header is not None and addr[0] not in found:
                found[addr[0]] = header.device_id

    transport, _ = await loop.create_datagram_endpoint(
        _Protocol, local_addr=("0.0.0.0", 0), allow_broadcast=True
    )
    try:
        transport.sendto(build_hello(), (broadcast_address, port))
        await asyncio.sleep(timeout)
    finally:
        transport.close()

    return list(found.items())
