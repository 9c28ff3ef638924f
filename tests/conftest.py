"""Shared test fixtures for the mailwatch test suite."""

from __future__ import annotations

import asyncio

import pytest

from mailwatch.config import ControlConfig, RetryConfig, RunConfig
from mailwatch.interface import Control, Watcher
from mailwatch.models import AccountDescriptor


@pytest.fixture
def account() -> AccountDescriptor:
    return AccountDescriptor(
        id="personal",
        host="imap.test.com",
        username="testuser",
        password="testpass",
    )


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        max_attempts=3,
        initial_wait_seconds=0.01,
        max_wait_seconds=0.05,
        multiplier=2.0,
    )


@pytest.fixture
def run_config(retry_config: RetryConfig) -> RunConfig:
    return RunConfig(
        notification_timeout=7.0,
        error_timeout=0.0,
        socket_timeout=5.0,
        poll_interval_seconds=0.01,
        control=ControlConfig(host="127.0.0.1", port=0, timeout_seconds=2.0),
        retry=retry_config,
    )


# ------------------------------------------------------------------
# Fakes for the supervisor tests
# ------------------------------------------------------------------


class FakeWatcher(Watcher):
    """Watcher that records every lifecycle call into a shared event log."""

    def __init__(self, watcher_id: str, events: list[tuple[str, str]]) -> None:
        super().__init__(watcher_id)
        self.events = events
        self.fail_on_start: str | None = None
        self._stopped = asyncio.Event()

    def start(self) -> None:
        self.events.append(("start", self.id))
        if self.fail_on_start is not None:
            self._emit_error(self.fail_on_start)

    def disconnect(self) -> None:
        self.events.append(("disconnect", self.id))
        self._stopped.set()

    async def join(self) -> None:
        self.events.append(("join", self.id))
        await self._stopped.wait()
        self.events.append(("joined", self.id))

    def abort(self) -> None:
        self.events.append(("abort", self.id))
        self._stopped.set()

    def fail(self, message: str) -> None:
        self._emit_error(message)


class FakeControl(Control):
    """Control endpoint that records lifecycle calls into the event log."""

    def __init__(self, events: list[tuple[str, str]]) -> None:
        super().__init__()
        self.events = events

    def start(self) -> None:
        self.events.append(("start", "control"))

    async def join(self) -> None:
        self.events.append(("join", "control"))

    def abort(self) -> None:
        self.events.append(("abort", "control"))

    def request_disconnect(self) -> None:
        self._emit_disconnect()


@pytest.fixture
def events() -> list[tuple[str, str]]:
    return []


@pytest.fixture
def control(events: list[tuple[str, str]]) -> FakeControl:
    return FakeControl(events)


@pytest.fixture
def watcher_factory(events: list[tuple[str, str]]):
    """Factory to create FakeWatcher instances sharing the event log."""

    def _make(*ids: str) -> list[FakeWatcher]:
        return [FakeWatcher(watcher_id, events) for watcher_id in ids]

    return _make


# ------------------------------------------------------------------
# Sample configuration text
# ------------------------------------------------------------------


SAMPLE_CONFIG = """\
# global defaults
notification_timeout 8

account personal
host imap.example.com
username alice
password hunter2

account office
host mail.corp.example
user alice@corp.example
pass s3cret
mailbox Work
no_ssl
work_account
socket_timeout = 30
"""


@pytest.fixture
def sample_config_text() -> str:
    return SAMPLE_CONFIG
