"""tmux driver for executing tmux commands."""

import asyncio
import logging
import re
from typing import Optional

from .errors import DriverError, TmuxNotFoundError, TmuxSessionError, TmuxVersionError
from .protocols import CommandExecutorProtocol

logger = logging.getLogger(__name__)

# stderr fragments meaning "there is nothing to list"
_NO_SERVER_MESSAGES = ("no server", "no sessions", "error connecting")

# stderr fragments meaning "the target session is gone"
_MISSING_SESSION_MESSAGES = (
    "can't find session",
    "session not found",
    "no such session",
    "no server",
)


class AsyncCommandExecutor:
    """Execute shell commands asynchronously."""

    async def run(
        self, *args: str, check: bool = True
    ) -> tuple[bytes, bytes, int]:
        """Run command and return (stdout, stderr, returncode).

        Args:
            *args: Command and arguments to run.
            check: If True, raise DriverError on non-zero exit.

        Returns:
            Tuple of (stdout, stderr, returncode).

        Raises:
            TmuxNotFoundError: If the binary does not exist.
            DriverError: If check=True and command fails.
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise TmuxNotFoundError(f"{args[0]} not found") from e
        except PermissionError as e:
            raise DriverError(f"Cannot execute {args[0]}: {e}") from e

        stdout, stderr = await proc.communicate()
        returncode = proc.returncode or 0

        if check and returncode != 0:
            raise DriverError(f"Command failed: {stderr.decode().strip()}")

        return stdout, stderr, returncode


def _target(name: str) -> str:
    """Exact-match session target, so "session-1" never matches "session-10"."""
    return f"={name}"


def _session_target(name: str) -> str:
    """Exact-match target for commands whose -t names a pane (options).

    The trailing colon makes tmux resolve "=name" as a session rather than
    a pane.
    """
    return f"={name}:"


def _option(key: str) -> str:
    """tmux user options are prefixed with "@"."""
    return key if key.startswith("@") else f"@{key}"


class TmuxDriver:
    """Driver for the tmux commands the session lifecycle needs.

    This is a stateless wrapper around the tmux CLI. Every failure is raised
    as a DriverError subclass so callers never deal with subprocess details.
    Use dependency injection for the command executor to enable testing.
    """

    # Minimum supported tmux version
    MIN_VERSION = (2, 1)

    def __init__(
        self,
        executor: Optional[CommandExecutorProtocol] = None,
        tmux_path: str = "tmux",
        socket_path: Optional[str] = None,
    ):
        """Initialize TmuxDriver.

        Args:
            executor: Command executor for running tmux. Defaults to
                AsyncCommandExecutor.
            tmux_path: Path to tmux binary. Defaults to "tmux".
            socket_path: Path to tmux socket for isolated server.
                If None, uses default tmux socket.
        """
        self._executor = executor or AsyncCommandExecutor()
        self._tmux_path = tmux_path
        self._socket_path = socket_path
        self._verified = False

    @property
    def tmux_path(self) -> str:
        return self._tmux_path

    def command(self, *args: str) -> list[str]:
        """Build a full tmux argv, including the socket option if set."""
        if self._socket_path:
            return [self._tmux_path, "-S", self._socket_path, *args]
        return [self._tmux_path, *args]

    async def _run(
        self, *args: str, check: bool = True
    ) -> tuple[bytes, bytes, int]:
        """Run tmux command.

        Args:
            *args: tmux subcommand and arguments.
            check: If True, raise on non-zero exit.

        Returns:
            Tuple of (stdout, stderr, returncode).
        """
        return await self._executor.run(*self.command(*args), check=check)

    async def _run_on_session(
        self, name: str, *args: str
    ) -> tuple[bytes, bytes, int]:
        """Run a command targeting a session, mapping "not found" errors.

        Raises:
            TmuxSessionError: If the session no longer exists.
            DriverError: On any other failure.
        """
        stdout, stderr, returncode = await self._run(*args, check=False)
        if returncode != 0:
            stderr_str = stderr.decode().strip()
            if any(msg in stderr_str for msg in _MISSING_SESSION_MESSAGES):
                raise TmuxSessionError(f"Session '{name}' not found: {stderr_str}")
            raise DriverError(f"{args[0]} failed for '{name}': {stderr_str}")
        return stdout, stderr, returncode

    async def verify(self) -> None:
        """Verify tmux is available and version is sufficient.

        Raises:
            TmuxNotFoundError: If tmux is not installed.
            DriverError: If version cannot be parsed.
            TmuxVersionError: If version is too old.
        """
        if self._verified:
            return

        stdout, _, _ = await self._executor.run(self._tmux_path, "-V")
        version_str = stdout.decode().strip()

        # Parse version from strings like "tmux 3.4" or "tmux next-3.5"
        match = re.search(r"(\d+)\.(\d+)", version_str)
        if not match:
            raise DriverError(f"Could not parse tmux version from: {version_str}")

        major = int(match.group(1))
        minor = int(match.group(2))

        if (major, minor) < self.MIN_VERSION:
            raise TmuxVersionError(
                f"tmux {major}.{minor} is too old. "
                f"Minimum required: {self.MIN_VERSION[0]}.{self.MIN_VERSION[1]}"
            )

        self._verified = True

    async def list_sessions(self) -> list[str]:
        """List all tmux session names.

        Returns:
            Session names; empty if no server is running.
        """
        await self.verify()

        stdout, stderr, returncode = await self._run(
            "list-sessions", "-F", "#{session_name}", check=False
        )

        # No server or no sessions is not an error
        if returncode != 0:
            stderr_str = stderr.decode()
            if any(msg in stderr_str for msg in _NO_SERVER_MESSAGES):
                return []
            raise DriverError(f"list-sessions failed: {stderr_str.strip()}")

        return [line for line in stdout.decode().splitlines() if line]

    async def session_exists(self, name: str) -> bool:
        """Check whether a session exists.

        Args:
            name: Session name.
        """
        await self.verify()

        _, _, returncode = await self._run(
            "has-session", "-t", _target(name), check=False
        )
        return returncode == 0

    async def attached_client_count(self, name: str) -> int:
        """Count clients attached to a session. Queried live, never cached.

        Args:
            name: Session name.

        Raises:
            TmuxSessionError: If the session no longer exists.
        """
        await self.verify()

        stdout, _, _ = await self._run_on_session(
            name, "list-clients", "-t", _target(name), "-F", "#{client_tty}"
        )
        return sum(1 for line in stdout.decode().splitlines() if line.strip())

    async def kill_session(self, name: str) -> None:
        """Kill a tmux session.

        Args:
            name: Session name.

        Raises:
            TmuxSessionError: If the session vanished before the kill.
        """
        await self.verify()

        await self._run_on_session(name, "kill-session", "-t", _target(name))

    async def new_session(self, name: str, detached: bool = True) -> None:
        """Create a new tmux session.

        Args:
            name: Session name.
            detached: If True, create detached (default).
        """
        await self.verify()

        args = ["new-session", "-s", name]
        if detached:
            args.insert(1, "-d")

        await self._run(*args)

    async def get_option(self, name: str, key: str) -> Optional[str]:
        """Read a per-session user option.

        Args:
            name: Session name.
            key: Option name, with or without the leading "@".

        Returns:
            The value, or None if the option is unset.
        """
        await self.verify()

        stdout, _, _ = await self._run_on_session(
            name, "show-options", "-qv", "-t", _session_target(name), _option(key)
        )
        value = stdout.decode().strip()
        return value or None

    async def set_option(self, name: str, key: str, value: str) -> None:
        """Write a per-session user option.

        The option lives and dies with the session.

        Args:
            name: Session name.
            key: Option name, with or without the leading "@".
            value: Option value.
        """
        await self.verify()

        await self._run_on_session(
            name, "set-option", "-t", _session_target(name), _option(key), str(value)
        )

    async def kill_server(self) -> None:
        """Kill the tmux server and every session on it."""
        await self._run("kill-server", check=False)

    async def current_session_name(self) -> str:
        """Name of the session the calling client is attached to."""
        await self.verify()

        stdout, _, _ = await self._run("display-message", "-p", "#S")
        return stdout.decode().strip()

    async def display_message(self, message: str) -> None:
        """Show a message on the current client's status line."""
        await self.verify()

        await self._run("display-message", message)

    async def current_pane_command(self) -> str:
        """Command running in the current pane (e.g. "nvim")."""
        await self.verify()

        stdout, _, _ = await self._run(
            "display-message", "-p", "#{pane_current_command}"
        )
        return stdout.decode().strip()

    async def send_keys(self, keys: str) -> None:
        """Send a key (e.g. "C-h") to the current pane."""
        await self.verify()

        await self._run("send-keys", keys)

    async def select_pane(self, direction: str) -> None:
        """Select the pane in a direction.

        Args:
            direction: One of "L", "R", "U", "D".
        """
        await self.verify()

        await self._run("select-pane", f"-{direction}")
