"""Pytest configuration and shared fixtures."""

from pathlib import Path
from typing import Optional, Sequence

import pytest

from tsm.controller import LifecycleController
from tsm.daemon_handle import DaemonHandle
from tsm.errors import DriverError, RegistryIOError, TmuxSessionError
from tsm.registry import RegistryStore


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Reset logging state before each test."""
    from tsm.logging import reset_logging

    reset_logging()
    yield
    reset_logging()


class FakeTmux:
    """In-memory tmux server implementing the driver operations."""

    def __init__(self):
        self.tmux_path = "tmux"
        self.sessions: dict[str, dict] = {}
        self.current: Optional[str] = None
        self.messages: list[str] = []
        self.killed: list[str] = []
        self.created: list[str] = []
        # session name -> exception raised when its clients are queried
        self.failures: dict[str, Exception] = {}
        self.list_error: Optional[Exception] = None
        self.pane_command = "zsh"
        self.sent_keys: list[str] = []
        self.selected_panes: list[str] = []

    def add(self, name: str, clients: int = 0, **options: str) -> None:
        self.sessions[name] = {
            "clients": clients,
            "options": {f"@{k}": v for k, v in options.items()},
        }

    def set_clients(self, name: str, clients: int) -> None:
        self.sessions[name]["clients"] = clients

    def option(self, name: str, key: str) -> Optional[str]:
        return self.sessions[name]["options"].get(key)

    def command(self, *args: str) -> list[str]:
        return [self.tmux_path, *args]

    def _require(self, name: str) -> dict:
        if name not in self.sessions:
            raise TmuxSessionError(f"Session '{name}' not found")
        return self.sessions[name]

    async def list_sessions(self) -> list[str]:
        if self.list_error:
            raise self.list_error
        return list(self.sessions)

    async def session_exists(self, name: str) -> bool:
        return name in self.sessions

    async def attached_client_count(self, name: str) -> int:
        if name in self.failures:
            raise self.failures[name]
        return self._require(name)["clients"]

    async def kill_session(self, name: str) -> None:
        self._require(name)
        del self.sessions[name]
        self.killed.append(name)

    async def new_session(self, name: str, detached: bool = True) -> None:
        if name in self.sessions:
            raise DriverError(f"duplicate session: {name}")
        self.add(name)
        self.created.append(name)

    async def get_option(self, name: str, key: str) -> Optional[str]:
        return self._require(name)["options"].get(key)

    async def set_option(self, name: str, key: str, value: str) -> None:
        self._require(name)["options"][key] = value

    async def current_session_name(self) -> str:
        if self.current is None:
            raise DriverError("no current client")
        return self.current

    async def display_message(self, message: str) -> None:
        self.messages.append(message)

    async def current_pane_command(self) -> str:
        return self.pane_command

    async def send_keys(self, keys: str) -> None:
        self.sent_keys.append(keys)

    async def select_pane(self, direction: str) -> None:
        self.selected_panes.append(direction)


class InMemoryPins:
    """Pin store held in a list."""

    def __init__(self, names: Sequence[str] = ()):
        self._names: list[str] = list(names)
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise RegistryIOError("registry unavailable")

    def is_pinned(self, name: str) -> bool:
        self._check()
        return name in self._names

    def pin(self, name: str) -> None:
        self._check()
        if name not in self._names:
            self._names.append(name)

    def unpin(self, name: str) -> None:
        self._check()
        self._names = [n for n in self._names if n != name]

    def names(self) -> list[str]:
        self._check()
        return list(self._names)


class FakeSpawner:
    """Records spawns instead of forking."""

    def __init__(self, first_pid: int = 4000):
        self._next_pid = first_pid
        self.alive: set[int] = set()
        self.spawned: list[tuple[list[str], Path]] = []
        self.terminated: list[int] = []

    def spawn_detached(self, args: Sequence[str], log_file: Path) -> int:
        pid = self._next_pid
        self._next_pid += 1
        self.spawned.append((list(args), log_file))
        self.alive.add(pid)
        return pid

    def is_running(self, pid: int) -> bool:
        return pid in self.alive

    def terminate(self, pid: int) -> None:
        self.terminated.append(pid)
        self.alive.discard(pid)


class Clock:
    """Settable epoch clock."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_tmux():
    return FakeTmux()


@pytest.fixture
def pins():
    return InMemoryPins()


@pytest.fixture
def spawner():
    return FakeSpawner()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def daemon(tmp_path, spawner):
    return DaemonHandle(tmp_path / "cleanup-loop.pid", spawner=spawner)


@pytest.fixture
def controller(fake_tmux, pins, daemon, clock, tmp_path):
    """Controller wired to fakes, with a 2 second grace period."""
    return LifecycleController(
        driver=fake_tmux,
        registry=RegistryStore(pins, fake_tmux),
        daemon=daemon,
        grace_period=2,
        log_file=tmp_path / "cleanup.log",
        loop_args=lambda period: ["tsm", "run-loop", "--grace-period", str(period)],
        clock=clock,
    )
