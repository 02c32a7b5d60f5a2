"""Ownership of the background cleanup loop process.

The PID file is the single source of truth for "is a loop running". It is
always validated against the process table: a file naming a dead process,
or one that cannot be parsed, means "not running" and is deleted on sight.

Check-and-spawn runs under an exclusive fcntl lock on a sibling lock file,
so two shells opening sessions at the same moment start a single loop.
"""

import fcntl
import logging
import os
import signal
import subprocess
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence

from tsm.errors import DaemonStateError
from tsm.protocols import LoopStatus, ProcessSpawnerProtocol

logger = logging.getLogger(__name__)


class DetachedProcessSpawner:
    """Spawn processes that outlive the invoking shell."""

    def spawn_detached(self, args: Sequence[str], log_file: Path) -> int:
        """Start args in a new session with output appended to log_file.

        Args:
            args: Command line.
            log_file: Receives stdout and stderr of the child.

        Returns:
            PID of the child.
        """
        log_file.parent.mkdir(parents=True, exist_ok=True)
        with open(log_file, "ab") as log:
            proc = subprocess.Popen(
                list(args),
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=subprocess.STDOUT,
                start_new_session=True,
                close_fds=True,
            )
        return proc.pid

    def is_running(self, pid: int) -> bool:
        """Check if a process with the given PID is running.

        Args:
            pid: Process ID to check.

        Returns:
            True if process is running, False otherwise.
        """
        if pid <= 0:
            return False
        try:
            # Signal 0 doesn't kill, just checks if process exists
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists, owned by someone else
            return True
        return True

    def terminate(self, pid: int) -> None:
        """Send SIGTERM. The loop installs no handler, so this is a hard stop."""
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            pass  # Already gone


class DaemonHandle:
    """Start, stop and inspect the single background cleanup loop.

    Usage:
        handle = DaemonHandle(Path("~/.local/share/tmux/cleanup-loop.pid"))

        status = handle.start(["python", "-m", "tsm", "run-loop"], log_file)
        handle.status()   # LoopStatus(running=True, pid=...)
        handle.stop()
    """

    def __init__(
        self,
        pid_file: Path | str,
        spawner: Optional[ProcessSpawnerProtocol] = None,
    ):
        """Initialize daemon handle.

        Args:
            pid_file: Path to the PID file.
            spawner: Process spawner. Defaults to DetachedProcessSpawner.
        """
        self._pid_file = Path(pid_file).expanduser()
        self._lock_file = self._pid_file.with_name(self._pid_file.name + ".lock")
        self._spawner = spawner or DetachedProcessSpawner()

    @property
    def pid_file(self) -> Path:
        return self._pid_file

    def read_pid(self) -> Optional[int]:
        """Read PID from the PID file.

        Returns:
            PID, or None if the file doesn't exist.

        Raises:
            DaemonStateError: If the file is unreadable or corrupt.
        """
        try:
            content = self._pid_file.read_text().strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise DaemonStateError(f"Could not read {self._pid_file}: {e}") from e

        try:
            pid = int(content)
        except ValueError:
            raise DaemonStateError(
                f"Corrupt PID file {self._pid_file}: {content!r}"
            ) from None
        if pid <= 0:
            raise DaemonStateError(f"Corrupt PID file {self._pid_file}: {pid}")
        return pid

    def running_pid(self) -> Optional[int]:
        """PID of the live loop, or None.

        A stale or corrupt PID file is deleted.
        """
        try:
            pid = self.read_pid()
        except DaemonStateError as e:
            logger.warning(f"{e}; treating cleanup loop as not running")
            self._remove_pid_file()
            return None

        if pid is None:
            return None

        if self._spawner.is_running(pid):
            return pid

        logger.debug(f"Removing stale PID file for dead process {pid}")
        self._remove_pid_file()
        return None

    def status(self) -> LoopStatus:
        """Report whether the loop is running."""
        pid = self.running_pid()
        if pid is None:
            return LoopStatus(running=False)
        return LoopStatus(running=True, pid=pid)

    def start(self, args: Sequence[str], log_file: Path) -> LoopStatus:
        """Start the loop unless a live one is recorded.

        Args:
            args: Command line of the loop process.
            log_file: Loop output destination.

        Returns:
            Status naming the running loop (existing or new).
        """
        with self._exclusive():
            pid = self.running_pid()
            if pid is not None:
                logger.debug(f"Cleanup loop already running with PID {pid}")
                return LoopStatus(running=True, pid=pid)

            pid = self._spawner.spawn_detached(args, log_file)
            self._write_pid(pid)

        logger.debug(f"Periodic cleanup loop started with PID {pid}")
        return LoopStatus(running=True, pid=pid, started=True)

    def stop(self) -> Optional[int]:
        """Terminate the loop if alive, then remove the PID file.

        Safe to call when nothing is running.

        Returns:
            PID that was terminated, or None.
        """
        with self._exclusive():
            try:
                pid = self.read_pid()
            except DaemonStateError as e:
                logger.warning(f"{e}; removing it")
                pid = None

            stopped = None
            if pid is not None and self._spawner.is_running(pid):
                self._spawner.terminate(pid)
                stopped = pid
                logger.debug(f"Stopped periodic cleanup loop with PID {pid}")
            elif pid is None:
                logger.debug("No cleanup loop is running")

            self._remove_pid_file()
        return stopped

    def _write_pid(self, pid: int) -> None:
        """Write PID via temp file and rename."""
        self._pid_file.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._pid_file.with_suffix(".tmp")
        temp_path.write_text(f"{pid}\n")
        os.replace(temp_path, self._pid_file)

    def _remove_pid_file(self) -> None:
        try:
            self._pid_file.unlink()
        except FileNotFoundError:
            pass  # Already gone

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Hold an exclusive lock on the sibling lock file."""
        self._lock_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self._lock_file), os.O_RDWR | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            yield
        finally:
            try:
                fcntl.flock(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)
