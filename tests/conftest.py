"""Pytest configuration for xiaomi-airpurifier tests."""

import os
from pathlib import Path
from typing import Any, Callable

import pytest

from xiaomi_airpurifier.config import DeviceConfig
from xiaomi_airpurifier.exceptions import TransportError
from xiaomi_airpurifier.scheduler import Job, ScheduledJob, Scheduler
from xiaomi_airpurifier.session import DeviceSession, FailureCallback

TOKEN = "00112233445566778899aabbccddeeff"


def _load_dotenv() -> None:
    """Load .env file if it exists."""
    env_path = Path(__file__).parent.parent / ".env"
    if env_path.exists():
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    os.environ.setdefault(key.strip(), value.strip())


# Load .env at import time
_load_dotenv()


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom command-line options for E2E tests."""
    parser.addoption(
        "--device-address",
        action="store",
        default=None,
        help="IP address of the purifier for E2E tests (e.g., 192.168.1.50)",
    )
    parser.addoption(
        "--device-token",
        action="store",
        default=None,
        help="32 hex character miIO token of the purifier",
    )
    parser.addoption(
        "--device-model",
        action="store",
        default=None,
        help="Purifier model (MiAirPurifier2, MiAirPurifier2S, MiAirPurifierPro)",
    )


@pytest.fixture
def device_address(request: pytest.FixtureRequest) -> str | None:
    """Fixture providing the device address from CLI or env."""
    return request.config.getoption("--device-address") or os.environ.get("DEVICE_ADDRESS")


@pytest.fixture
def device_token(request: pytest.FixtureRequest) -> str | None:
    """Fixture providing the device token from CLI or env."""
    return request.config.getoption("--device-token") or os.environ.get("DEVICE_TOKEN")


@pytest.fixture
def device_model(request: pytest.FixtureRequest) -> str:
    """Fixture providing the device model from CLI or env (default 2S)."""
    return (
        request.config.getoption("--device-model")
        or os.environ.get("DEVICE_MODEL")
        or "MiAirPurifier2S"
    )


# =============================================================================
# Test doubles
# =============================================================================


class ManualScheduler(Scheduler):
    """Scheduler driven by advance() instead of the event loop clock."""

    def __init__(self) -> None:
        self.now = 0.0
        self.jobs: list[ScheduledJob] = []

    def time(self) -> float:
        return self.now

    def schedule(self, delay: float, job: Job) -> ScheduledJob:
        handle = ScheduledJob(self.now + delay, job)
        self.jobs.append(handle)
        return handle

    def pending(self) -> list[ScheduledJob]:
        return [job for job in self.jobs if job.pending]

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, running every job that falls due."""
        target = self.now + seconds
        while True:
            due = sorted(
                (job for job in self.jobs if job.pending and job.when <= target),
                key=lambda job: job.when,
            )
            if not due:
                break
            job = due[0]
            self.now = max(self.now, job.when)
            await job.run()
        self.now = target
        self.jobs = [job for job in self.jobs if job.pending]


Reply = dict[str, Any] | Exception | Callable[[list[Any]], dict[str, Any]]


class FakeTransport:
    """Scripted stand-in for MiioTransport.

    Replies are queued per method. A method with an empty queue falls back
    to its default reply, set with on().
    """

    def __init__(self) -> None:
        self.sent: list[tuple[str, list[Any]]] = []
        self.closed = False
        self._queued: dict[str, list[Reply]] = {}
        self._defaults: dict[str, Reply] = {}

    def on(self, method: str, reply: Reply) -> "FakeTransport":
        self._defaults[method] = reply
        return self

    def queue(self, method: str, *replies: Reply) -> "FakeTransport":
        self._queued.setdefault(method, []).extend(replies)
        return self

    @property
    def methods(self) -> list[str]:
        return [method for method, _ in self.sent]

    async def send(self, method: str, params: list[Any] | None = None) -> dict[str, Any]:
        params = list(params or [])
        self.sent.append((method, params))
        queued = self._queued.get(method)
        if queued:
            reply = queued.pop(0)
        elif method in self._defaults:
            reply = self._defaults[method]
        else:
            reply = error_reply(-32601, "Method not found")
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(params)
        return reply

    def close(self) -> None:
        self.closed = True


class FakeSessionFactory:
    """Session factory that hands out FakeTransport-backed sessions.

    Each element of outcomes is either a FakeTransport (connect succeeds)
    or an exception (connect fails). Once exhausted, the last outcome is
    repeated.
    """

    def __init__(self, *outcomes: FakeTransport | Exception) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0
        self.sessions: list[DeviceSession] = []

    async def __call__(
        self, config: DeviceConfig, on_transport_failure: FailureCallback
    ) -> DeviceSession:
        index = min(self.calls, len(self.outcomes) - 1)
        self.calls += 1
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        session = DeviceSession(
            outcome, name=config.name, on_transport_failure=on_transport_failure
        )
        self.sessions.append(session)
        return session


def ok_reply(*result: Any) -> dict[str, Any]:
    return {"id": 1, "result": list(result)}


def error_reply(code: int, message: str = "error") -> dict[str, Any]:
    return {"id": 1, "error": {"code": code, "message": message}}


# get_prop replies in property order:
# power, mode, aqi, temp_dec, humidity, filter1_life, favorite_level, led,
# child_lock, volume
STATUS_2S = ["on", "auto", 12, 215, 48, 73, 7, "on", "off", 50]

STATUS_PRO = ["on", "favorite", 40, 198, 51, 3, 8, "off", "on", 50]


def connection_lost() -> TransportError:
    return TransportError("No reply from 192.168.1.50 within 5.0s")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def config_2s() -> DeviceConfig:
    return DeviceConfig.from_dict(
        {"ip": "192.168.1.50", "token": TOKEN, "name": "Bedroom", "type": "MiAirPurifier2S"}
    )


@pytest.fixture
def config_pro() -> DeviceConfig:
    return DeviceConfig.from_dict(
        {"ip": "192.168.1.51", "token": TOKEN, "name": "Office", "type": "MiAirPurifierPro"}
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport().on("get_prop", ok_reply(*STATUS_2S))
