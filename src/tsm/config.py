"""Configuration management for tsm."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

from tsm.errors import ConfigError

DEFAULT_GRACE_PERIOD = 300  # seconds

PERSIST_FILE_NAME = "persistent-sessions"
PID_FILE_NAME = "cleanup-loop.pid"
LOG_FILE_NAME = "cleanup.log"

_TRUTHY = {"1", "true", "yes", "on"}


def default_data_dir(environ: Mapping[str, str] | None = None) -> Path:
    """Return the tmux data directory under XDG_DATA_HOME.

    Args:
        environ: Environment mapping. Defaults to os.environ.

    Returns:
        ``$XDG_DATA_HOME/tmux``, or ``~/.local/share/tmux`` when unset.
    """
    env = os.environ if environ is None else environ
    xdg_data_home = env.get("XDG_DATA_HOME")
    if xdg_data_home:
        return Path(xdg_data_home) / "tmux"
    return Path.home() / ".local" / "share" / "tmux"


@dataclass
class Config:
    """tsm configuration."""

    grace_period: int = DEFAULT_GRACE_PERIOD
    data_dir: str | None = None  # None means $XDG_DATA_HOME/tmux
    log_dir: str | None = None  # None means data_dir
    log_level: str = "INFO"
    debug: bool = False
    tmux_path: str = "tmux"
    socket_path: str | None = None

    def __post_init__(self):
        self.grace_period = validate_grace_period(self.grace_period)

    @property
    def data_path(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir).expanduser()
        return default_data_dir()

    @property
    def log_path(self) -> Path:
        if self.log_dir:
            return Path(self.log_dir).expanduser()
        return self.data_path

    @property
    def persist_file(self) -> Path:
        return self.data_path / PERSIST_FILE_NAME

    @property
    def pid_file(self) -> Path:
        return self.data_path / PID_FILE_NAME

    @property
    def log_file(self) -> Path:
        return self.log_path / LOG_FILE_NAME

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level


def validate_grace_period(value: Any) -> int:
    """Validate a grace period.

    Args:
        value: Raw value from config file, environment or CLI.

    Returns:
        Grace period in seconds.

    Raises:
        ConfigError: If value is not a positive integer.
    """
    if isinstance(value, bool):
        raise ConfigError(f"grace_period must be a positive integer, got {value!r}")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ConfigError(
                f"grace_period must be a positive integer, got {value!r}"
            ) from None
    if not isinstance(value, int) or value < 1:
        raise ConfigError(f"grace_period must be a positive integer, got {value!r}")
    return value


def _parse_bool(value: Any) -> bool:
    """Interpret a YAML or environment flag ("false" and "0" are false)."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def get_config_path(custom_path: Path | None = None) -> Path:
    """Get the configuration file path.

    Args:
        custom_path: Override path. If None, returns default.

    Returns:
        Path to config file.
    """
    if custom_path is not None:
        return custom_path
    return Path.home() / ".config" / "tsm" / "config.yaml"


def _default_file_reader(path: Path) -> dict[str, Any] | None:
    """Default file reader that loads YAML from disk."""
    if not path.exists():
        return None
    try:
        content = path.read_text()
        if not content.strip():
            return None
        data = yaml.safe_load(content)
    except yaml.YAMLError:
        return None
    return data if isinstance(data, dict) else None


def load_config(
    path: Path | None = None,
    file_reader: Callable[[Path], dict[str, Any] | None] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """Load configuration from file, then apply environment overrides.

    Recognised environment variables: TMUX_GRACE_PERIOD, TSM_DATA_DIR,
    TSM_LOG_DIR and TSM_DEBUG.

    Args:
        path: Path to config file. If None, uses default path.
        file_reader: Injectable file reader for testing.
        environ: Environment mapping. Defaults to os.environ.

    Returns:
        Config object with values from file, environment or defaults.

    Raises:
        ConfigError: If the grace period is not a positive integer.
    """
    config_path = get_config_path(path)
    reader = file_reader or _default_file_reader
    env = os.environ if environ is None else environ

    data = reader(config_path) or {}

    values: dict[str, Any] = {
        "grace_period": data.get("grace_period", Config.grace_period),
        "data_dir": data.get("data_dir", Config.data_dir),
        "log_dir": data.get("log_dir", Config.log_dir),
        "log_level": data.get("log_level", Config.log_level),
        "debug": _parse_bool(data.get("debug", Config.debug)),
        "tmux_path": data.get("tmux_path", Config.tmux_path),
        "socket_path": data.get("socket_path", Config.socket_path),
    }

    if env.get("TMUX_GRACE_PERIOD"):
        values["grace_period"] = env["TMUX_GRACE_PERIOD"]
    if env.get("TSM_DATA_DIR"):
        values["data_dir"] = env["TSM_DATA_DIR"]
    if env.get("TSM_LOG_DIR"):
        values["log_dir"] = env["TSM_LOG_DIR"]
    if env.get("TSM_DEBUG"):
        values["debug"] = _parse_bool(env["TSM_DEBUG"])

    # Resolve the XDG default now so later environment changes don't move it
    if not values["data_dir"]:
        values["data_dir"] = str(default_data_dir(env))

    return Config(**values)
