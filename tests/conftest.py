"""Shared test fixtures for ks-controlplane tests.

This module provides stand-ins for the real server binaries:
- FakeEngine: an in-memory role that runs until the lifecycle signal fires
- FakeStore: an in-memory etcd that is ready immediately
- EventLog: ordered record of what every fake did
- python_command / sleeper_command: argv for short Python child processes
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field

import pytest

from ks_controlplane.errors import RoleExitError

# =============================================================================
# Event log - shared ordering record
# =============================================================================


@dataclass
class EventLog:
    """Ordered (event, name) pairs recorded by the fakes."""

    events: list[tuple[str, str]] = field(default_factory=list)

    def record(self, event: str, name: str) -> None:
        self.events.append((event, name))

    def index(self, event: str, name: str) -> int:
        """Position of the first matching event."""
        return self.events.index((event, name))

    def has(self, event: str, name: str) -> bool:
        return (event, name) in self.events


# =============================================================================
# Fake engine - simulates one server role
# =============================================================================


class FakeEngine:
    """In-memory server role.

    Runs until the lifecycle signal fires, or raises RoleExitError after
    ``fail_after`` seconds.
    """

    def __init__(
        self,
        name: str,
        log: EventLog,
        fail_after: float | None = None,
        cancel_on_start: bool = False,
    ):
        self.name = name
        self.log = log
        self.fail_after = fail_after
        self.cancel_on_start = cancel_on_start
        self.args: list[str] | None = None
        self.runs = 0

    async def run(self, args: Sequence[str], stop) -> None:
        self.runs += 1
        self.args = list(args)
        self.log.record("start", self.name)

        if self.cancel_on_start:
            stop.cancel(f"{self.name} asked to stop")

        if self.fail_after is not None:
            await asyncio.sleep(self.fail_after)
            self.log.record("crash", self.name)
            raise RoleExitError(f"{self.name} crashed", role=self.name, returncode=1)

        await stop.wait()
        self.log.record("stop", self.name)


# =============================================================================
# Fake store - simulates etcd
# =============================================================================


class FakeStore:
    """In-memory store manager, ready as soon as it starts."""

    def __init__(self, log: EventLog):
        self.log = log
        self.on_exit = None
        self.started = False
        self.args: list[str] | None = None
        self.data_dir = None
        self.socket_path = None
        self.stop = None
        self.close_calls = 0

    async def start(self, data_dir, socket_path, args=None, stop=None):
        self.started = True
        self.stop = stop
        self.data_dir = data_dir
        self.socket_path = socket_path
        self.args = list(args or [])
        self.log.record("ready", "etcd")
        return self

    async def close(self) -> None:
        self.close_calls += 1
        self.log.record("closed", "etcd")

    def crash(self, returncode: int = 1) -> None:
        """Simulate etcd exiting on its own."""
        self.log.record("crash", "etcd")
        if self.on_exit:
            self.on_exit(returncode)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep KS_* variables from the developer's shell out of the tests."""
    import os

    for key in list(os.environ):
        if key.startswith("KS_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture
def fake_store(event_log) -> FakeStore:
    return FakeStore(event_log)


@pytest.fixture
def make_engine(event_log):
    """Build a FakeEngine sharing the test's event log."""

    def build(name: str, **kwargs) -> FakeEngine:
        return FakeEngine(name, event_log, **kwargs)

    return build


@pytest.fixture
def fake_engines(event_log):
    """One FakeEngine per supervised role."""
    from ks_controlplane.types import Role

    return {
        role: FakeEngine(role.value, event_log)
        for role in (Role.API_SERVER, Role.CONTROLLER_MANAGER, Role.SCHEDULER)
    }


@pytest.fixture
def scratch_config(tmp_path):
    """Config with only the directories set, like a scratch bootstrap."""
    from ks_controlplane.config import ControlPlaneConfig

    return ControlPlaneConfig(
        kubernetes_dir=str(tmp_path / "kubernetes"),
        etcd_data_dir=str(tmp_path / "etcd"),
        etcd_socket_path=str(tmp_path / "etcd" / "etcd.sock"),
    )


@pytest.fixture
def python_command():
    """Build argv running a Python snippet; extra arguments are ignored."""

    def build(code: str) -> list[str]:
        return [sys.executable, "-c", code]

    return build


@pytest.fixture
def sleeper_command(python_command) -> list[str]:
    """A child process that runs until it is signalled."""
    return python_command("import time; time.sleep(30)")
