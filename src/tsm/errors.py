"""Base exceptions for tsm."""


class TsmError(Exception):
    """Base exception for all tsm errors."""

    pass


class ConfigError(TsmError):
    """Invalid configuration value."""

    pass


class DriverError(TsmError):
    """tmux operation error."""

    pass


class TmuxNotFoundError(DriverError):
    """tmux not installed."""

    pass


class TmuxVersionError(DriverError):
    """tmux version too old."""

    pass


class TmuxSessionError(DriverError):
    """tmux session error (not found, vanished between query and kill)."""

    pass


class RegistryIOError(TsmError):
    """Pin registry file could not be read or written."""

    pass


class DaemonStateError(TsmError):
    """PID file unreadable or corrupt."""

    pass


class NotGeneratedError(TsmError):
    """Persistence toggled on a custom-named session."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Cannot toggle persistence for custom-named session '{name}'"
        )
