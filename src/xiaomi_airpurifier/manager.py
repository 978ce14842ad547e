"""Connection manager - session lifecycle for one purifier.

State machine:

    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED (transport failure)
         ^              |                          |
         |              v                          v
         +------ reconnect after RECONNECT_DELAY --+

There is no terminal state: the manager keeps retrying with a fixed delay
until disconnect() is called.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

from .config import DeviceConfig
from .exceptions import TransportError
from .scheduler import ScheduledJob, Scheduler
from .session import DeviceSession, FailureCallback, open_session

if TYPE_CHECKING:
    from .poller import PollLoop

_LOGGER = logging.getLogger(__name__)

RECONNECT_DELAY = 30.0

SessionFactory = Callable[[DeviceConfig, FailureCallback], Awaitable[DeviceSession]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectionManager:
    """Owns the single DeviceSession of one configured device.

    Args:
        config: Device configuration
        scheduler: Used for the reconnect timer
        session_factory: Opens a session; raises TransportError on failure
        poller: Poll loop started on connect and stopped on failure
        reconnect_delay: Seconds between a failure and the next attempt
    """

    def __init__(
        self,
        config: DeviceConfig,
        scheduler: Scheduler,
        *,
        session_factory: SessionFactory = open_session,
        poller: PollLoop | None = None,
        reconnect_delay: float = RECONNECT_DELAY,
    ) -> None:
        self._config = config
        self._scheduler = scheduler
        self._session_factory = session_factory
        self.poller = poller
        self.reconnect_delay = reconnect_delay
        self._state = ConnectionState.DISCONNECTED
        self._session: DeviceSession | None = None
        self._reconnect: ScheduledJob | None = None
        self._ever_connected = False
        self._closed = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def session(self) -> DeviceSession | None:
        """The live session, or None while disconnected."""
        return self._session

    @property
    def ever_connected(self) -> bool:
        return self._ever_connected

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect is not None and self._reconnect.pending

    async def connect(self) -> bool:
        """Open a session unless one is open or being opened.

        On failure the attempt is logged and one reconnect is scheduled.

        Returns:
            True if a session is live when the call returns
        """
        if self._closed:
            return False
        if self._state is not ConnectionState.DISCONNECTED:
            return self._state is ConnectionState.CONNECTED

        name = self._config.name
        self._state = ConnectionState.CONNECTING
        _LOGGER.info("Connecting to %s at %s...", name, self._config.address)
        try:
            session = await self._session_factory(self._config, self._handle_transport_failure)
        except TransportError as err:
            self._state = ConnectionState.DISCONNECTED
            _LOGGER.error(
                "Failed to connect to %s. Retrying in %.0f seconds. Error: %s",
                name, self.reconnect_delay, err,
            )
            self._schedule_reconnect()
            return False
        except asyncio.CancelledError:
            self._state = ConnectionState.DISCONNECTED
            _LOGGER.warning("Connecting to %s was cancelled", name)
            self._schedule_reconnect()
            raise
        except Exception:
            self._state = ConnectionState.DISCONNECTED
            _LOGGER.exception(
                "Unexpected error connecting to %s. Retrying in %.0f seconds",
                name, self.reconnect_delay,
            )
            self._schedule_reconnect()
            return False

        if self._closed:
            session.close()
            self._state = ConnectionState.DISCONNECTED
            return False

        self._session = session
        self._state = ConnectionState.CONNECTED
        self._ever_connected = True
        self._cancel_reconnect()
        _LOGGER.info("Successfully connected to %s", name)

        if self.poller is not None:
            await self.poller.start()
        return self._state is ConnectionState.CONNECTED

    async def disconnect(self) -> None:
        """Stop polling, release the session and stop reconnecting."""
        self._closed = True
        self._cancel_reconnect()
        if self.poller is not None:
            self.poller.stop()
        session, self._session = self._session, None
        if session is not None:
            session.close()
        if self._state is not ConnectionState.DISCONNECTED:
            _LOGGER.info("Disconnected from %s", self._config.name)
        self._state = ConnectionState.DISCONNECTED

    def ensure_reconnect(self) -> None:
        """Schedule a reconnect if disconnected and none is pending."""
        if self._state is ConnectionState.DISCONNECTED:
            self._schedule_reconnect()

    def _handle_transport_failure(self, session: DeviceSession, error: TransportError) -> None:
        if session is not self._session:
            _LOGGER.debug("Ignoring failure of replaced session to %s", self._config.name)
            return

        _LOGGER.warning(
            "Lost connection to %s: %s. Reconnecting in %.0f seconds",
            self._config.name, error, self.reconnect_delay,
        )
        self._session = None
        self._state = ConnectionState.DISCONNECTED
        if self.poller is not None:
            self.poller.stop()
        session.close()
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._closed or self.reconnect_pending:
            return
        self._reconnect = self._scheduler.schedule(self.reconnect_delay, self._run_reconnect)

    def _cancel_reconnect(self) -> None:
        if self._reconnect is not None:
            self._reconnect.cancel()
            self._reconnect = None

    async def _run_reconnect(self) -> None:
        self._reconnect = None
        await self.connect()
