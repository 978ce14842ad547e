"""Air purifier client - single entry point for the accessory layer.

AirPurifierClient wraps one DeviceRuntime: the connection manager, its
session, the poll loop and the state cache of one configured purifier.

Example:
    config = DeviceConfig.from_dict(record)
    async with AirPurifierClient(config) as purifier:
        purifier.subscribe(lambda snapshot: print(snapshot.values))
        await purifier.write("rotation_speed", 50)
        print(purifier.read("air_quality"))
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from .commands import CommandCandidate, apply_intent, build_intent, resolve
from .config import DeviceConfig
from .exceptions import NotConnectedError, PurifierError, TransportError, ValidationError
from .manager import RECONNECT_DELAY, ConnectionManager, ConnectionState, SessionFactory
from .models import ModelSpec, StateKey, get_model_spec
from .poller import POLL_INTERVAL, REFRESH_DELAY, PollLoop
from .scheduler import LoopScheduler, Scheduler
from .session import DeviceSession, open_session
from .state import StateCache, StateSnapshot

_LOGGER = logging.getLogger(__name__)

UpdateListener = Callable[[StateSnapshot], None]


class DeviceRuntime:
    """Everything that belongs to one configured device.

    Built once per DeviceConfig and never shared between devices.
    """

    def __init__(
        self,
        config: DeviceConfig,
        *,
        scheduler: Scheduler | None = None,
        session_factory: SessionFactory = open_session,
        on_update: UpdateListener | None = None,
        poll_interval: float = POLL_INTERVAL,
        reconnect_delay: float = RECONNECT_DELAY,
    ) -> None:
        self.config = config
        self.spec: ModelSpec = get_model_spec(config.model)
        self.scheduler = scheduler or LoopScheduler()
        self.cache = StateCache()
        self.manager = ConnectionManager(
            config,
            self.scheduler,
            session_factory=session_factory,
            reconnect_delay=reconnect_delay,
        )
        self.poller = PollLoop(
            self.spec,
            self.cache,
            self.scheduler,
            self._current_session,
            thresholds=config.aqi_thresholds,
            interval=poll_interval,
            on_update=on_update,
            name=config.name,
        )
        self.manager.poller = self.poller

    def _current_session(self) -> DeviceSession | None:
        return self.manager.session


class AirPurifierClient:
    """Synchronization facade for one purifier.

    read() serves the cached snapshot, write() turns a control intent into
    device commands, and subscribe() delivers one notification per
    successful poll ("anything may have changed").

    Args:
        config: Device configuration
        scheduler: Timer source; defaults to the running event loop
        session_factory: Opens device sessions; override for testing
        poll_interval: Seconds between polls
        reconnect_delay: Seconds between reconnect attempts
        refresh_delay: Seconds between a successful write and the re-poll
    """

    def __init__(
        self,
        config: DeviceConfig,
        *,
        scheduler: Scheduler | None = None,
        session_factory: SessionFactory = open_session,
        poll_interval: float = POLL_INTERVAL,
        reconnect_delay: float = RECONNECT_DELAY,
        refresh_delay: float = REFRESH_DELAY,
    ) -> None:
        self._listeners: list[UpdateListener] = []
        self.refresh_delay = refresh_delay
        self.runtime = DeviceRuntime(
            config,
            scheduler=scheduler,
            session_factory=session_factory,
            on_update=self._emit,
            poll_interval=poll_interval,
            reconnect_delay=reconnect_delay,
        )

    async def __aenter__(self) -> "AirPurifierClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    @property
    def config(self) -> DeviceConfig:
        return self.runtime.config

    @property
    def name(self) -> str:
        return self.runtime.config.name

    @property
    def connection_state(self) -> ConnectionState:
        return self.runtime.manager.state

    @property
    def snapshot(self) -> StateSnapshot:
        return self.runtime.cache.snapshot

    async def start(self) -> bool:
        """Connect and start polling. Failures schedule a reconnect.

        Returns:
            True if the device was reached
        """
        return await self.runtime.manager.connect()

    async def stop(self) -> None:
        """Stop polling and release the session."""
        await self.runtime.manager.disconnect()

    def read(self, name: str) -> Any:
        """Return the cached value of a normalized property.

        Args:
            name: Snapshot key (see models.StateKey)

        Returns:
            Last polled value, or None if not known yet

        Raises:
            ValidationError: If name is not a known property
            NotConnectedError: If the device has never been reached
        """
        if name not in StateKey.ALL:
            raise ValidationError(f"Unknown property: {name!r}")
        if not self.runtime.manager.ever_connected:
            raise NotConnectedError(f"{self.name} has not been connected yet")
        return self.runtime.cache.get(name)

    async def write(self, name: str, value: Any) -> CommandCandidate:
        """Apply a control intent to the device.

        The value is validated before anything is sent. On success a
        re-poll is scheduled shortly after, so the cache reflects the
        device's real state.

        Args:
            name: Intent name (see commands.IntentName)
            value: Requested value

        Returns:
            The command candidate the device acknowledged

        Raises:
            ValidationError: If the intent or value is invalid, or the model
                does not support it
            NotConnectedError: If the device has never been reached
            TransportError: If the device is unreachable (a reconnect is
                scheduled before raising)
            RemoteError: If the device rejected or did not support the command
        """
        intent = build_intent(name, value)
        runtime = self.runtime
        # Raises for intents this model cannot carry out
        resolve(intent, runtime.spec)

        if not runtime.manager.ever_connected:
            raise NotConnectedError(f"{self.name} has not been connected yet")

        session = runtime.manager.session
        if session is None:
            runtime.manager.ensure_reconnect()
            raise TransportError(f"{self.name} is disconnected, reconnect pending")

        try:
            candidate = await apply_intent(session, intent, runtime.spec, runtime.cache.snapshot)
        except ValidationError:
            raise
        except PurifierError as err:
            _LOGGER.error(
                "Error setting %s=%r on %s: %s", intent.name.value, value, self.name, err
            )
            raise

        _LOGGER.debug(
            "%s: %s applied with %s %s",
            self.name, intent.name.value, candidate.command, list(candidate.args),
        )
        runtime.poller.refresh_soon(self.refresh_delay)
        return candidate

    async def refresh(self) -> bool:
        """Poll the device now instead of waiting for the next tick."""
        return await self.runtime.poller.refresh()

    def subscribe(self, listener: UpdateListener) -> Callable[[], None]:
        """Register a callback for cache updates.

        Returns:
            Function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, snapshot: StateSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                _LOGGER.exception("Error in update listener for %s", self.name)
