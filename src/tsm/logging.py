"""Logging configuration for tsm."""

import logging
from pathlib import Path

from tsm.config import Config

# Module-level logger cache
_logger: logging.Logger | None = None


def setup_logging(
    config: Config,
    console: bool = True,
    log_file: Path | None = None,
) -> logging.Logger:
    """Set up logging based on configuration.

    Interactive commands log to the console. The detached cleanup loop
    passes ``console=False`` and a log file, since no terminal is attached
    to it.

    Args:
        config: Configuration object with log settings.
        console: Attach a stderr handler.
        log_file: Append log records to this file.

    Returns:
        Configured logger instance.
    """
    global _logger

    # Return existing logger if already set up (idempotent)
    if _logger is not None:
        return _logger

    logger = logging.getLogger("tsm")
    logger.setLevel(
        getattr(logging, config.effective_log_level.upper(), logging.INFO)
    )

    # Clear any existing handlers
    logger.handlers.clear()

    # Log format: 2025-01-27 10:30:45 [INFO] message
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    formatter.datefmt = "%Y-%m-%d %H:%M:%S"

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    # Prevent propagation to root logger
    logger.propagate = False

    _logger = logger
    return logger


def set_debug(enabled: bool) -> None:
    """Switch the tsm logger between DEBUG and INFO for this process."""
    logging.getLogger("tsm").setLevel(logging.DEBUG if enabled else logging.INFO)


def is_debug() -> bool:
    """Return True if the tsm logger emits DEBUG records."""
    return logging.getLogger("tsm").isEnabledFor(logging.DEBUG)


def reset_logging() -> None:
    """Reset logging state. Used for testing."""
    global _logger
    if _logger is not None:
        _logger.handlers.clear()
        _logger = None
