"""Exceptions raised by the air purifier library.

Failure classes map directly onto what the caller should do next:

- TransportError: the session is gone. The connection manager reconnects.
- RemoteError: the device answered but refused. The session stays healthy.
  - UnsupportedCommandError: the firmware does not know the method, so the
    next fallback candidate may be tried.
  - CommandRejectedError: anything else, including ambiguous acks.
- ValidationError: the caller asked for something invalid. Nothing was sent.
- NotConnectedError: no session has ever been established for the device.
"""

from __future__ import annotations


class PurifierError(Exception):
    """Base class for all library errors."""


class TransportError(PurifierError):
    """Network or protocol level failure talking to the device."""


class RemoteError(PurifierError):
    """The device replied with an error instead of a result."""

    def __init__(
        self,
        message: str,
        *,
        command: str | None = None,
        code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.command = command
        self.code = code


class UnsupportedCommandError(RemoteError):
    """The device firmware does not implement the requested method."""


class CommandRejectedError(RemoteError):
    """The device rejected the command or did not acknowledge it."""


class ValidationError(PurifierError, ValueError):
    """Invalid configuration or control value, rejected before any I/O."""


class NotConnectedError(PurifierError):
    """No session to the device has ever succeeded."""
