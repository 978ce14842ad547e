"""Device session - one live transport handle to one purifier.

A session is never repaired. The first transport failure is reported to the
owner (the connection manager) through the failure callback, and the owner
replaces the whole session.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol

from .config import DeviceConfig
from .connect import connect
from .exceptions import (
    CommandRejectedError,
    PurifierError,
    TransportError,
    UnsupportedCommandError,
)
from .protocol import ERROR_METHOD_NOT_FOUND

_LOGGER = logging.getLogger(__name__)

UNSUPPORTED_CODES = frozenset({ERROR_METHOD_NOT_FOUND})

ACK_OK = "ok"


class Transport(Protocol):
    """What a session needs from its transport (see connect.MiioTransport)."""

    async def send(self, method: str, params: list[Any] | None = None) -> dict[str, Any]: ...

    def close(self) -> None: ...


class CallStatus(Enum):
    """Outcome of one device call."""

    OK = "ok"
    TRANSPORT_ERROR = "transport_error"
    UNSUPPORTED = "unsupported"
    REJECTED = "rejected"


@dataclass(frozen=True)
class CallResult:
    """Tagged result of a device call.

    value holds the reply's result list for OK, error holds the matching
    exception for every other status.
    """

    command: str
    args: tuple[Any, ...]
    status: CallStatus
    value: Any = None
    error: PurifierError | None = None

    @property
    def ok(self) -> bool:
        return self.status is CallStatus.OK

    def unwrap(self) -> Any:
        """Return value, or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.value


FailureCallback = Callable[["DeviceSession", TransportError], None]


def classify_reply(
    command: str,
    args: tuple[Any, ...],
    reply: Any,
    *,
    expect_ack: bool = False,
) -> CallResult:
    """Turn a decoded reply into a CallResult.

    Args:
        command: Method that was called
        args: Arguments that were sent
        reply: Decoded reply object from the transport
        expect_ack: If True, only a result starting with "ok" counts as
            success; any other result is an ambiguous acknowledgement

    Returns:
        CallResult with status OK, UNSUPPORTED or REJECTED
    """
    if not isinstance(reply, dict):
        return _rejected(command, args, f"Malformed reply to {command}: {reply!r}")

    if "error" in reply:
        error = reply["error"]
        code = error.get("code") if isinstance(error, dict) else None
        message = error.get("message", "") if isinstance(error, dict) else str(error)
        if code in UNSUPPORTED_CODES:
            return CallResult(
                command,
                args,
                CallStatus.UNSUPPORTED,
                error=UnsupportedCommandError(
                    f"{command} is not supported by the device: {message}",
                    command=command,
                    code=code,
                ),
            )
        return _rejected(command, args, f"Device rejected {command}: {message} ({code})", code)

    if "result" not in reply:
        return _rejected(command, args, f"Reply to {command} has no result: {reply!r}")

    result = reply["result"]
    if expect_ack:
        if not isinstance(result, list) or not result or result[0] != ACK_OK:
            return _rejected(command, args, f"Device did not acknowledge {command}: {result!r}")
    return CallResult(command, args, CallStatus.OK, value=result)


def _rejected(
    command: str, args: tuple[Any, ...], message: str, code: int | None = None
) -> CallResult:
    return CallResult(
        command,
        args,
        CallStatus.REJECTED,
        error=CommandRejectedError(message, command=command, code=code),
    )


class DeviceSession:
    """Serialized request/response access to one device.

    Args:
        transport: Opened transport, owned exclusively by this session
        name: Device name, for log messages
        on_transport_failure: Called once, on the first transport failure
    """

    def __init__(
        self,
        transport: Transport,
        *,
        name: str = "device",
        on_transport_failure: FailureCallback | None = None,
    ) -> None:
        self._transport = transport
        self.name = name
        self._on_transport_failure = on_transport_failure
        self._lock = asyncio.Lock()
        self._closed = False
        self._failed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def failed(self) -> bool:
        return self._failed

    async def request(
        self,
        command: str,
        args: list[Any] | tuple[Any, ...] = (),
        *,
        expect_ack: bool = False,
    ) -> CallResult:
        """Call a device method and return a tagged result.

        Never raises for transport or device failures; those are returned
        as TRANSPORT_ERROR / UNSUPPORTED / REJECTED results.
        """
        args = tuple(args)
        if self._closed or self._failed:
            return CallResult(
                command,
                args,
                CallStatus.TRANSPORT_ERROR,
                error=TransportError(f"Session to {self.name} is no longer usable"),
            )

        async with self._lock:
            try:
                reply = await self._transport.send(command, list(args))
            except TransportError as err:
                self._report_failure(err)
                return CallResult(command, args, CallStatus.TRANSPORT_ERROR, error=err)

        return classify_reply(command, args, reply, expect_ack=expect_ack)

    async def call(self, command: str, args: list[Any] | tuple[Any, ...] = ()) -> Any:
        """Call a device method and return its result.

        Raises:
            TransportError: On any network or protocol failure
            RemoteError: If the device replies with an error
        """
        return (await self.request(command, args)).unwrap()

    def close(self) -> None:
        """Release the transport. The session cannot be used afterwards."""
        if self._closed:
            return
        self._closed = True
        self._transport.close()

    def _report_failure(self, error: TransportError) -> None:
        if self._failed:
            return
        self._failed = True
        _LOGGER.debug("Session to %s failed: %s", self.name, error)
        if self._on_transport_failure is not None and not self._closed:
            self._on_transport_failure(self, error)


async def open_session(
    config: DeviceConfig,
    on_transport_failure: FailureCallback | None = None,
) -> DeviceSession:
    """Open a transport for a DeviceConfig and wrap it in a session.

    Raises:
        TransportError: If the device cannot be reached
    """
    transport = await connect(config.address, config.token)
    return DeviceSession(
        transport, name=config.name, on_transport_failure=on_transport_failure
    )

