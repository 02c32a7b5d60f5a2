"""Wiring of the driver, stores and controller from configuration.

All construction happens here so the CLI stays thin and tests can build
the same graph around fakes.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from tsm.config import Config
from tsm.controller import LifecycleController, loop_command
from tsm.daemon_handle import DaemonHandle
from tsm.frontend import FrontEnd
from tsm.registry import PinRegistry, RegistryStore
from tsm.tmux import TmuxDriver


@dataclass
class Components:
    """Container for the wired instances."""

    driver: TmuxDriver
    pins: PinRegistry
    registry: RegistryStore
    daemon: DaemonHandle
    controller: LifecycleController

    def front_end(self) -> FrontEnd:
        return FrontEnd(driver=self.driver, controller=self.controller)


def build_components(
    config: Config, config_path: Optional[Path] = None
) -> Components:
    """Create all components from configuration.

    Args:
        config: Loaded configuration.
        config_path: Config file passed on to the spawned cleanup loop.

    Returns:
        Components container.
    """
    driver = TmuxDriver(tmux_path=config.tmux_path, socket_path=config.socket_path)
    pins = PinRegistry(config.persist_file)
    registry = RegistryStore(pins, driver)
    daemon = DaemonHandle(config.pid_file)
    controller = LifecycleController(
        driver=driver,
        registry=registry,
        daemon=daemon,
        grace_period=config.grace_period,
        log_file=config.log_file,
        loop_args=lambda period: loop_command(period, config_path),
    )
    return Components(
        driver=driver,
        pins=pins,
        registry=registry,
        daemon=daemon,
        controller=controller,
    )
