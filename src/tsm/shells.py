"""Shell integration snippets.

``eval "$(tsm shell-init bash)"`` defines a ``tmux`` function that routes
through the front-end, and ``tmux_cmd`` for the control verbs.
"""

BASH_INIT = """\
# tsm: tmux session lifecycle manager
tmux() {
    tsm tmux "$@"
}

tmux_cmd() {
    tsm "$@"
}
"""

ZSH_INIT = """\
# tsm: tmux session lifecycle manager
function tmux() {
    tsm tmux "$@"
}

function tmux_cmd() {
    tsm "$@"
}

# Start the cleanup loop when an interactive shell opens outside tmux
if [[ -o interactive ]] && [[ -z "$TMUX" ]]; then
    tsm check-cleanup >/dev/null 2>&1 || tsm start-cleanup >/dev/null 2>&1
fi
"""

SHELL_SNIPPETS = {
    "bash": BASH_INIT,
    "zsh": ZSH_INIT,
}


def shell_init(shell: str) -> str:
    """Return the integration snippet for a shell.

    Raises:
        ValueError: If the shell is not supported.
    """
    try:
        return SHELL_SNIPPETS[shell]
    except KeyError:
        supported = ", ".join(sorted(SHELL_SNIPPETS))
        raise ValueError(f"Unsupported shell '{shell}' (supported: {supported})") from None
