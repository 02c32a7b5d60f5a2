"""Protocols and data classes for tsm."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence


# ============================================================================
# tmux Protocols
# ============================================================================


class CommandExecutorProtocol(Protocol):
    """Protocol for executing shell commands (DI for testing)."""

    async def run(
        self, *args: str, check: bool = True
    ) -> tuple[bytes, bytes, int]:
        """Run command and return (stdout, stderr, returncode)."""
        ...


class SessionDriverProtocol(Protocol):
    """Operations the lifecycle controller needs from the multiplexer."""

    async def list_sessions(self) -> list[str]:
        ...

    async def session_exists(self, name: str) -> bool:
        ...

    async def attached_client_count(self, name: str) -> int:
        ...

    async def kill_session(self, name: str) -> None:
        ...

    async def new_session(self, name: str, detached: bool = True) -> None:
        ...

    async def get_option(self, name: str, key: str) -> Optional[str]:
        ...

    async def set_option(self, name: str, key: str, value: str) -> None:
        ...

    async def current_session_name(self) -> str:
        ...

    async def display_message(self, message: str) -> None:
        ...


# ============================================================================
# Persistence / Process Protocols
# ============================================================================


class PinStoreProtocol(Protocol):
    """Protocol for the set of pinned session names.

    Implementations must make pin/unpin atomic from a concurrent reader's
    point of view.
    """

    def is_pinned(self, name: str) -> bool:
        ...

    def pin(self, name: str) -> None:
        ...

    def unpin(self, name: str) -> None:
        ...

    def names(self) -> list[str]:
        ...


class ProcessSpawnerProtocol(Protocol):
    """Protocol for spawning and signalling detached processes (DI for testing)."""

    def spawn_detached(self, args: Sequence[str], log_file: Path) -> int:
        """Spawn args detached from the caller, output appended to log_file.

        Returns:
            PID of the spawned process.
        """
        ...

    def is_running(self, pid: int) -> bool:
        """Check whether a process with this PID is alive."""
        ...

    def terminate(self, pid: int) -> None:
        """Terminate the process. No-op if it has already exited."""
        ...


# ============================================================================
# Data Classes
# ============================================================================


@dataclass(frozen=True)
class LoopStatus:
    """State of the background cleanup loop."""

    running: bool
    pid: Optional[int] = None
    started: bool = False  # True if this call spawned the loop

    def describe(self) -> str:
        if self.started:
            return f"Periodic cleanup loop started with PID: {self.pid}"
        if self.running:
            return f"Periodic cleanup loop is running with PID: {self.pid}"
        return "No periodic cleanup loop is running"
