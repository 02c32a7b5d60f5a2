"""Session naming utilities."""

import os
import re
import time
from typing import Optional

GENERATED_PREFIX = "session"

# session-<epoch> or session-<epoch>-<pid>
GENERATED_NAME_PATTERN = re.compile(r"^session-[0-9]+(-[0-9]+)?$")


def is_generated_session(name: str) -> bool:
    """Check whether a session name was produced by the name generator.

    Only generated sessions are ever eligible for automatic eviction.

    Args:
        name: tmux session name.

    Returns:
        True if name is ``session-<digits>`` or ``session-<digits>-<digits>``.
    """
    # fullmatch: "$" alone would accept a trailing newline
    return GENERATED_NAME_PATTERN.fullmatch(name) is not None


def generate_session_name(
    now: Optional[float] = None, pid: Optional[int] = None
) -> str:
    """Generate a name for a new ephemeral session.

    Format: session-<epoch seconds>-<pid>. The PID suffix keeps two
    invocations within the same second apart.

    Args:
        now: Epoch seconds. Defaults to the current time.
        pid: Process ID. Defaults to the current process.

    Returns:
        Session name.
    """
    if now is None:
        now = time.time()
    if pid is None:
        pid = os.getpid()
    return f"{GENERATED_PREFIX}-{int(now)}-{pid}"
