"""Vim-aware pane navigation for tmux key bindings.

Bound as e.g. ``bind -n C-h run-shell "tsm nav h"``: when the pane runs an
editor the key is forwarded to it, otherwise the neighbouring pane is
selected.
"""

import logging
import re

from tsm.tmux import TmuxDriver

logger = logging.getLogger(__name__)

EDITOR_PATTERN = re.compile(r"^(g?view|n?vim?x?)(diff)?$")
FZF_PATTERN = re.compile(r"^fzf$")

# key -> (pane direction, forwarded to fzf too)
KEY_ACTIONS = {
    "h": ("L", False),
    "j": ("D", True),
    "k": ("U", True),
    "l": ("R", False),
    "\\": ("L", False),
}


async def navigate(driver: TmuxDriver, key: str) -> str:
    """Forward a navigation key to an editor or move between panes.

    Args:
        driver: tmux driver.
        key: One of h, j, k, l or backslash.

    Returns:
        Description of the action taken.

    Raises:
        ValueError: If key is not a navigation key.
    """
    if key not in KEY_ACTIONS:
        raise ValueError(f"Invalid key action: {key}")

    direction, forward_to_fzf = KEY_ACTIONS[key]
    current_command = await driver.current_pane_command()
    logger.debug(f"Key {key!r} pressed in pane running {current_command!r}")

    if EDITOR_PATTERN.match(current_command) or (
        forward_to_fzf and FZF_PATTERN.match(current_command)
    ):
        keys = f"C-{key}"
        await driver.send_keys(keys)
        action = f"send-keys {keys}"
    else:
        await driver.select_pane(direction)
        action = f"select-pane -{direction}"

    logger.debug(f"Action: {action}")
    return action
