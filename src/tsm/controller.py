"""Session lifecycle policy: pinning, sweeping and the cleanup loop.

Every sweep pass evaluates each session from live data:

    exists? --no--> MISSING
    generated? --no--> SAFE_CUSTOM
    pinned? --yes--> SAFE_PINNED
    attached clients > 0? --yes--> SAFE_ATTACHED (detach time reset to 0)
    detach time unset? --yes--> MARKED (detach time set to now)
    detached longer than the grace period? --yes--> EVICTED
    otherwise WAITING

The only state carried between passes is the @detached_time option stored
on the session itself, so an interrupted pass loses nothing.
"""

import asyncio
import logging
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

from tsm.config import DEFAULT_GRACE_PERIOD, LOG_FILE_NAME, validate_grace_period
from tsm.daemon_handle import DaemonHandle
from tsm.errors import DriverError, NotGeneratedError, TmuxSessionError
from tsm.naming import is_generated_session
from tsm.protocols import LoopStatus, SessionDriverProtocol
from tsm.registry import RegistryStore

logger = logging.getLogger(__name__)

# Session option holding the epoch second the session was first seen detached.
# "0" means "attached, not yet eligible".
DETACHED_TIME_KEY = "@detached_time"


class SweepAction(Enum):
    """Outcome of evaluating one session."""

    MISSING = "missing"
    SAFE_CUSTOM = "custom"
    SAFE_PINNED = "pinned"
    SAFE_ATTACHED = "attached"
    MARKED = "marked"
    WAITING = "waiting"
    EVICTED = "evicted"


@dataclass
class SweepReport:
    """Result of one sweep pass."""

    actions: list[tuple[str, SweepAction]] = field(default_factory=list)
    errors: list[tuple[str, str]] = field(default_factory=list)

    @property
    def evicted(self) -> list[str]:
        return [name for name, action in self.actions if action is SweepAction.EVICTED]

    def summary(self) -> str:
        evicted = self.evicted
        if evicted:
            text = f"Cleaned up {len(evicted)} session(s): {', '.join(evicted)}"
        else:
            text = "No sessions cleaned up"
        if self.errors:
            text += f" ({len(self.errors)} error(s), see log)"
        return text


def _parse_detached_time(value: Optional[str]) -> Optional[int]:
    """Parse a stored detach time. None, "0" and garbage mean unset."""
    if value is None:
        return None
    try:
        parsed = int(value.strip())
    except ValueError:
        logger.warning(f"Ignoring unparseable {DETACHED_TIME_KEY} value {value!r}")
        return None
    return parsed if parsed > 0 else None


def loop_command(grace_period: int, config_path: Optional[Path] = None) -> list[str]:
    """Command line of the detached cleanup loop process."""
    args = [sys.executable, "-m", "tsm"]
    if config_path is not None:
        args.extend(["--config", str(config_path)])
    args.extend(["run-loop", "--grace-period", str(grace_period)])
    return args


class LifecycleController:
    """Policy for ephemeral session cleanup.

    Collaborators are injected so tests can substitute in-memory fakes:

        controller = LifecycleController(
            driver=TmuxDriver(),
            registry=RegistryStore(PinRegistry(path), driver),
            daemon=DaemonHandle(pid_file),
            log_file=log_file,
        )
        await controller.sweep_once()
    """

    def __init__(
        self,
        driver: SessionDriverProtocol,
        registry: RegistryStore,
        daemon: DaemonHandle,
        grace_period: int = DEFAULT_GRACE_PERIOD,
        log_file: Optional[Path] = None,
        loop_args: Optional[Callable[[int], Sequence[str]]] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the controller.

        Args:
            driver: tmux driver.
            registry: Pin and metadata store.
            daemon: Handle on the background loop's PID file.
            grace_period: Seconds a generated session may stay detached.
            log_file: Output file of the background loop.
            loop_args: Builds the loop command line for a grace period.
                Defaults to ``python -m tsm run-loop``.
            clock: Epoch-seconds clock.
            sleep: Async sleep used between loop passes.
        """
        self._driver = driver
        self._registry = registry
        self._daemon = daemon
        self._grace_period = validate_grace_period(grace_period)
        self._log_file = log_file or daemon.pid_file.with_name(LOG_FILE_NAME)
        self._loop_args = loop_args or loop_command
        self._clock = clock
        self._sleep = sleep

    @property
    def grace_period(self) -> int:
        return self._grace_period

    # ------------------------------------------------------------------
    # Pinning
    # ------------------------------------------------------------------

    async def toggle(self, session_name: Optional[str] = None) -> bool:
        """Flip the pinned state of a generated session.

        Args:
            session_name: Session to toggle. Defaults to the current one.

        Returns:
            True if the session is now pinned.

        Raises:
            NotGeneratedError: If the session has a custom name.
            RegistryIOError: If the pin registry cannot be updated.
        """
        name = session_name or await self._driver.current_session_name()

        if not is_generated_session(name):
            await self._notify("Cannot toggle persistence for custom-named sessions")
            raise NotGeneratedError(name)

        if self._registry.is_pinned(name):
            self._registry.unpin(name)
            await self._restart_detach_clock(name)
            await self._notify("Session marked as temporary")
            logger.info(f"Session {name} marked as temporary")
            return False

        self._registry.pin(name)
        await self._notify("Session marked as persistent")
        logger.info(f"Session {name} marked as persistent")
        return True

    async def _restart_detach_clock(self, name: str) -> None:
        """Give a freshly unpinned session a full grace period."""
        try:
            await self._registry.set_metadata(name, DETACHED_TIME_KEY, "0")
        except DriverError as e:
            logger.debug(f"Could not reset {DETACHED_TIME_KEY} on {name}: {e}")

    async def _notify(self, message: str) -> None:
        """Show a confirmation on the tmux status line, if there is one."""
        try:
            await self._driver.display_message(message)
        except DriverError as e:
            logger.debug(f"Could not display message: {e}")

    # ------------------------------------------------------------------
    # Sweeping
    # ------------------------------------------------------------------

    async def evaluate(self, name: str, force: bool = False) -> SweepAction:
        """Run the state machine for one session, killing it if eligible.

        Args:
            name: Session name.
            force: Skip the age check (evict any idle generated session).

        Raises:
            DriverError: If a tmux call fails.
            RegistryIOError: If the pin registry cannot be read.
        """
        if not await self._driver.session_exists(name):
            return SweepAction.MISSING

        if not is_generated_session(name):
            logger.debug(f"Skipping session {name} (not generated)")
            return SweepAction.SAFE_CUSTOM

        if self._registry.is_pinned(name):
            logger.debug(f"Skipping session {name} (persistent)")
            return SweepAction.SAFE_PINNED

        if await self._driver.attached_client_count(name) > 0:
            if not force:
                stored = await self._registry.get_metadata(name, DETACHED_TIME_KEY)
                if _parse_detached_time(stored) is not None:
                    await self._registry.set_metadata(name, DETACHED_TIME_KEY, "0")
                    logger.debug(f"Session {name} reattached, detach time cleared")
            return SweepAction.SAFE_ATTACHED

        if force:
            await self._driver.kill_session(name)
            logger.info(f"Force cleaned session: {name}")
            return SweepAction.EVICTED

        now = int(self._clock())
        stored = await self._registry.get_metadata(name, DETACHED_TIME_KEY)
        detached_time = _parse_detached_time(stored)
        if detached_time is None:
            await self._registry.set_metadata(name, DETACHED_TIME_KEY, str(now))
            logger.debug(f"Updated detach time for session {name}")
            return SweepAction.MARKED

        detached_duration = now - detached_time
        logger.debug(f"Session {name} detached for {detached_duration}s")

        if detached_duration > self._grace_period:
            await self._driver.kill_session(name)
            logger.info(
                f"Cleaned up session {name} (detached for {detached_duration}s)"
            )
            return SweepAction.EVICTED

        return SweepAction.WAITING

    async def sweep_once(self) -> SweepReport:
        """Evaluate every session once, evicting expired ones.

        A tmux failure on one session is logged and the pass moves on.

        Raises:
            DriverError: If the session list itself cannot be read.
            RegistryIOError: If the pin registry is unreadable. The pass
                stops rather than risk evicting a pinned session.
        """
        logger.debug("Starting cleanup check")
        return await self._sweep(force=False)

    async def force_sweep_all(self) -> SweepReport:
        """Evict every idle, unpinned, generated session regardless of age."""
        logger.debug("Starting force cleanup of all generated sessions")
        return await self._sweep(force=True)

    async def _sweep(self, force: bool) -> SweepReport:
        report = SweepReport()
        for name in await self._driver.list_sessions():
            try:
                action = await self.evaluate(name, force=force)
            except TmuxSessionError as e:
                # Vanished between list and evaluation
                logger.debug(f"Session {name} disappeared during sweep: {e}")
                report.actions.append((name, SweepAction.MISSING))
                continue
            except DriverError as e:
                logger.error(f"Failed to evaluate session {name}: {e}")
                report.errors.append((name, str(e)))
                continue
            report.actions.append((name, action))
        return report

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    def start_loop(self, grace_period: Optional[int] = None) -> LoopStatus:
        """Start the detached cleanup loop. No-op if one is already running.

        Args:
            grace_period: Grace period and sleep interval for the loop.
                Defaults to the controller's grace period.
        """
        period = (
            self._grace_period
            if grace_period is None
            else validate_grace_period(grace_period)
        )
        return self._daemon.start(self._loop_args(period), self._log_file)

    def stop_loop(self) -> Optional[int]:
        """Stop the cleanup loop if running. Always removes the PID file."""
        return self._daemon.stop()

    def status(self) -> LoopStatus:
        """Report the loop state, deleting a stale PID file."""
        return self._daemon.status()

    def ensure_loop(self) -> LoopStatus:
        """Start the loop if status() reports it is not running."""
        status = self.status()
        if status.running:
            return status
        return self.start_loop()

    async def run_loop(self, iterations: Optional[int] = None) -> None:
        """Body of the cleanup loop process: sweep, sleep, repeat.

        Args:
            iterations: Number of passes, or None to run forever.
        """
        logger.info(
            f"Cleanup process started (grace period {self._grace_period}s)"
        )
        count = 0
        while iterations is None or count < iterations:
            logger.info("Running cleanup check")
            try:
                report = await self.sweep_once()
                if report.errors:
                    logger.warning(report.summary())
            except Exception as e:
                logger.error(f"Cleanup pass failed: {e}")
            count += 1
            if iterations is None or count < iterations:
                await self._sleep(self._grace_period)
