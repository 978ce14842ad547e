"""miIO protocol - Packet building and parsing.

This module contains the wire format used by Xiaomi Wi-Fi appliances
(Mi Air Purifier 2, 2S, Pro) on the local network.

Protocol overview:
- UDP, device listens on port 54321
- Every packet starts with a 32-byte header, magic bytes 0x21 0x31
- Payloads are JSON, encrypted with AES-128-CBC (PKCS#7 padding)
- Key and IV are derived from the 16-byte device token:
  key = md5(token), iv = md5(key + token)
- Header bytes 16-31 carry md5(header[0:16] + token + encrypted payload)

Header layout:
- 0-1:   magic 0x2131
- 2-3:   total packet length (big-endian)
- 4-7:   unknown, 0x00000000 for commands (0xffffffff in hello)
- 8-11:  device id
- 12-15: stamp (seconds since device boot, echoed back incremented)
- 16-31: checksum (or 0xff filler in hello)

Session setup:
- The client sends a 32-byte "hello" packet (all 0xff after the length).
- The device answers with a bare header holding its device id and stamp.
- Every command afterwards carries that device id and a stamp derived from
  the device's clock.

Request payload: {"id": 1, "method": "get_prop", "params": ["power", "aqi"]}
Response payload: {"id": 1, "result": ["on", 12]}
Error payload: {"id": 1, "error": {"code": -32601, "message": "Method not found"}}
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

# =============================================================================
# Protocol Constants
# =============================================================================

MAGIC = b"\x21\x31"
HEADER_SIZE = 32
TOKEN_SIZE = 16
MIIO_PORT = 54321

# Hello: magic, length 0x0020, then 28 bytes of 0xff
HELLO_PACKET = MAGIC + b"\x00\x20" + b"\xff" * 28

# Error codes observed in device error replies
ERROR_METHOD_NOT_FOUND = -32601


class HeaderOffset:
    """Field offsets in the 32-byte packet header."""

    MAGIC = 0
    LENGTH = 2
    UNKNOWN = 4
    DEVICE_ID = 8
    STAMP = 12
    CHECKSUM = 16


@dataclass(frozen=True)
class Header:
    """Decoded packet header."""

    length: int
    unknown: int
    device_id: int
    stamp: int
    checksum: bytes

    @property
    def is_hello(self) -> bool:
        """True for a bare header with no payload (hello / hello reply)."""
        return self.length == HEADER_SIZE


# =============================================================================
# Crypto
# =============================================================================


def token_to_bytes(token: str | bytes) -> bytes:
    """Convert a device token to its 16 raw bytes.

    Args:
        token: 32-character hex string, or the raw 16 bytes

    Returns:
        16-byte token

    Raises:
        ValueError: If the token is not 16 bytes / 32 hex characters
    """
    if isinstance(token, bytes):
        raw = token
    else:
        try:
            raw = bytes.fromhex(token.strip())
        except ValueError as err:
            raise ValueError("Token must be a 32 character hex string") from err
    if len(raw) != TOKEN_SIZE:
        raise ValueError(f"Token must be {TOKEN_SIZE} bytes, got {len(raw)}")
    return raw


def derive_key_iv(token: bytes) -> tuple[bytes, bytes]:
    """Derive the AES key and IV from a device token."""
    key = hashlib.md5(token).digest()
    iv = hashlib.md5(key + token).digest()
    return key, iv


def encrypt(plaintext: bytes, token: bytes) -> bytes:
    """Encrypt a payload with AES-128-CBC and PKCS#7 padding."""
    key, iv = derive_key_iv(token)
    padder = padding.PKCS7(128).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def decrypt(ciphertext: bytes, token: bytes) -> bytes:
    """Decrypt a payload produced by encrypt().

    Raises:
        ValueError: If the ciphertext length or padding is invalid
    """
    if not ciphertext or len(ciphertext) % 16:
        raise ValueError(f"Ciphertext length must be a multiple of 16, got {len(ciphertext)}")
    key, iv = derive_key_iv(token)
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(128).unpadder()
    return unpadder.update(padded) + unpadder.finalize()


def calc_checksum(header: bytes, token: bytes, payload: bytes) -> bytes:
    """Calculate the md5 checksum stored in header bytes 16-31.

    Args:
        header: At least the first 16 header bytes
        token: 16-byte device token
        payload: Encrypted payload bytes (may be empty)

    Returns:
        16-byte digest
    """
    return hashlib.md5(header[:HeaderOffset.CHECKSUM] + token + payload).digest()


def verify_checksum(packet: bytes, token: bytes) -> bool:
    """Verify the checksum of a complete packet.

    Args:
        packet: Complete packet including header

    Returns:
        True if checksum is valid
    """
    if len(packet) < HEADER_SIZE or packet[:2] != MAGIC:
        return False
    expected = packet[HeaderOffset.CHECKSUM:HEADER_SIZE]
    return calc_checksum(packet, token, packet[HEADER_SIZE:]) == expected


# =============================================================================
# Packet building
# =============================================================================


def build_hello() -> bytes:
    """Build the handshake packet.

    Returns:
        32 bytes: 2131 0020 ffff...ff
    """
    return HELLO_PACKET


def build_request_payload(msg_id: int, method: str, params: list[Any] | None = None) -> bytes:
    """Build the JSON request body.

    Args:
        msg_id: Request id, echoed in the reply
        method: RPC method name (e.g. "get_prop", "set_power")
        params: Positional argument list

    Returns:
        Compact UTF-8 JSON bytes
    """
    if not method:
        raise ValueError("Method name must not be empty")
    body = {"id": msg_id, "method": method, "params": list(params or [])}
    return json.dumps(body, separators=(",", ":")).encode("utf-8")


def build_packet(token: bytes, device_id: int, stamp: int, payload: bytes) -> bytes:
    """Build an encrypted command packet.

    Args:
        token: 16-byte device token
        device_id: Device id from the hello reply
        stamp: Device stamp (from hello reply plus elapsed seconds)
        payload: Plaintext JSON payload

    Returns:
        Complete packet bytes with checksum
    """
    if not 0 <= device_id <= 0xFFFFFFFF:
        raise ValueError(f"device_id out of range: {device_id}")
    if not 0 <= stamp <= 0xFFFFFFFF:
        raise ValueError(f"stamp out of range: {stamp}")

    encrypted = encrypt(payload, token)
    header = bytearray(HEADER_SIZE)
    header[0:2] = MAGIC
    header[HeaderOffset.LENGTH:HeaderOffset.LENGTH + 2] = (HEADER_SIZE + len(encrypted)).to_bytes(2, "big")
    header[HeaderOffset.UNKNOWN:HeaderOffset.UNKNOWN + 4] = bytes(4)
    header[HeaderOffset.DEVICE_ID:HeaderOffset.DEVICE_ID + 4] = device_id.to_bytes(4, "big")
    header[HeaderOffset.STAMP:HeaderOffset.STAMP + 4] = stamp.to_bytes(4, "big")
    header[HeaderOffset.CHECKSUM:HEADER_SIZE] = calc_checksum(bytes(header), token, encrypted)
    return bytes(header) + encrypted


# =============================================================================
# Packet parsing
# =============================================================================


def parse_header(data: bytes) -> Header | None:
    """Parse the 32-byte header.

    Args:
        data: Raw datagram

    Returns:
        Header or None if the datagram is not a miIO packet
    """
    if len(data) < HEADER_SIZE or data[:2] != MAGIC:
        return None

    length = int.from_bytes(data[HeaderOffset.LENGTH:HeaderOffset.LENGTH + 2], "big")
    if length != len(data):
        return None

    return Header(
        length=length,
        unknown=int.from_bytes(data[HeaderOffset.UNKNOWN:HeaderOffset.UNKNOWN + 4], "big"),
        device_id=int.from_bytes(data[HeaderOffset.DEVICE_ID:HeaderOffset.DEVICE_ID + 4], "big"),
        stamp=int.from_bytes(data[HeaderOffset.STAMP:HeaderOffset.STAMP + 4], "big"),
        checksum=bytes(data[HeaderOffset.CHECKSUM:HEADER_SIZE]),
    )


def parse_payload(data: bytes, token: bytes) -> dict[str, Any] | None:
    """Decrypt and decode the JSON payload of a reply packet.

    Some firmware pads the JSON with NUL bytes; those are stripped.

    Args:
        data: Complete packet including header
        token: 16-byte device token

    Returns:
        Decoded JSON object, or None if the packet is a bare header, has a
        bad checksum, or does not decrypt to a JSON object
    """
    header = parse_header(data)
    if header is None or header.is_hello:
        return None
    if not verify_checksum(data, token):
        return None

    try:
        plaintext = decrypt(data[HEADER_SIZE:], token)
        message = json.loads(plaintext.rstrip(b"\x00").decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None

    if not isinstance(message, dict):
        return None
    return message


def is_hello_reply(data: bytes) -> bool:
    """Check if a datagram is a reply to the hello packet."""
    header = parse_header(data)
    return header is not None and header.is_hello and data != HELLO_PACKET
