"""Command front-end for the ``tmux`` shell function.

A bare ``tmux`` outside of tmux opens an auto-named ephemeral session and
makes sure the cleanup loop is running. Every other invocation is handed to
the real tmux binary untouched.
"""

import logging
import os
from typing import Callable, Mapping, Optional, Sequence

from tsm.controller import DETACHED_TIME_KEY, LifecycleController
from tsm.errors import TsmError
from tsm.naming import generate_session_name
from tsm.tmux import TmuxDriver

logger = logging.getLogger(__name__)

ExecFunction = Callable[[str, list[str]], None]


class FrontEnd:
    """Intercepts the zero-argument "open a session" call."""

    def __init__(
        self,
        driver: TmuxDriver,
        controller: LifecycleController,
        environ: Optional[Mapping[str, str]] = None,
        exec_fn: ExecFunction = os.execvp,
        name_factory: Callable[[], str] = generate_session_name,
    ):
        """Initialize the front-end.

        Args:
            driver: tmux driver, also used to build passthrough command lines.
            controller: Lifecycle controller, for starting the cleanup loop.
            environ: Environment mapping. Defaults to os.environ.
            exec_fn: Replaces the current process (os.execvp signature).
            name_factory: Produces the name of a new session.
        """
        self._driver = driver
        self._controller = controller
        self._environ = os.environ if environ is None else environ
        self._exec = exec_fn
        self._name_factory = name_factory

    def inside_tmux(self) -> bool:
        return bool(self._environ.get("TMUX"))

    async def run(self, argv: Sequence[str]) -> Optional[list[str]]:
        """Handle one ``tmux`` invocation.

        Args:
            argv: Arguments after ``tmux``.

        Returns:
            Control verb arguments when invoked as ``tmux cmd ...`` inside a
            session; None otherwise (the process has been replaced unless
            exec_fn returns).
        """
        argv = list(argv)
        if self.inside_tmux():
            if argv and argv[0] == "cmd":
                return argv[1:]
            self.passthrough(argv)
            return None

        if argv:
            self.passthrough(argv)
            return None

        await self.open_session()
        return None

    def passthrough(self, argv: Sequence[str]) -> None:
        """Exec the real tmux, on the configured socket, with argv verbatim."""
        command = self._driver.command(*argv)
        logger.debug(f"Passing through to: {' '.join(command)}")
        self._exec(command[0], command)

    async def open_session(self) -> str:
        """Create an auto-named session, ensure the loop, and attach to it.

        Returns:
            Name of the new session.

        Raises:
            DriverError: If the session cannot be created.
        """
        name = self._name_factory()

        await self._driver.new_session(name, detached=True)
        await self._driver.set_option(name, DETACHED_TIME_KEY, "0")
        logger.debug(f"Created session {name}")

        try:
            status = self._controller.ensure_loop()
            logger.debug(status.describe())
        except (TsmError, OSError) as e:
            logger.warning(f"Could not start cleanup loop: {e}")

        command = self._driver.command("attach-session", "-t", f"={name}")
        self._exec(command[0], command)
        return name
