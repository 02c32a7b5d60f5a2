"""CLI entry point for tsm."""

import asyncio
import os
import time
from enum import Enum
from pathlib import Path
from typing import Sequence

import click

from tsm import __version__
from tsm.config import load_config, validate_grace_period
from tsm.errors import ConfigError, TsmError
from tsm.factory import Components, build_components
from tsm.logging import is_debug, set_debug, setup_logging


class Verb(Enum):
    """Session lifecycle control verbs (``tmux_cmd <verb>``)."""

    TOGGLE = "toggle"
    CLEANUP_OLD = "cleanup-old"
    FORCE_CLEANUP = "force-cleanup"
    START_CLEANUP = "start-cleanup"
    STOP_CLEANUP = "stop-cleanup"
    CHECK_CLEANUP = "check-cleanup"
    DEBUG = "debug"


VERB_USAGE = "Usage: tmux_cmd {" + "|".join(v.value for v in Verb) + "}"


def _components(ctx: click.Context) -> Components:
    """Build components once per invocation (tests may inject their own)."""
    obj = ctx.find_object(dict)
    if obj.get("components") is None:
        obj["components"] = build_components(obj["config"], obj.get("config_path"))
    return obj["components"]


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    raise SystemExit(1)


def _invoke_verb(ctx: click.Context, args: Sequence[str]) -> None:
    """Run a control verb given as plain arguments."""
    if not args:
        click.echo(VERB_USAGE, err=True)
        raise SystemExit(1)

    name = args[0]
    try:
        Verb(name)
    except ValueError:
        click.echo(VERB_USAGE, err=True)
        raise SystemExit(1)

    root = ctx.find_root()
    command = main.get_command(root, name)
    with command.make_context(name, list(args[1:]), parent=root) as sub_ctx:
        command.invoke(sub_ctx)


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file.",
)
@click.option("--debug", is_flag=True, help="Enable debug output.")
@click.version_option(__version__, prog_name="tsm")
@click.pass_context
def main(ctx: click.Context, config: Path | None, debug: bool) -> None:
    """tsm - auto-named tmux sessions with idle cleanup."""
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config)
    except ConfigError as e:
        _fail(str(e))
    ctx.obj["config_path"] = config
    if debug:
        ctx.obj["config"].debug = True

    # The cleanup loop configures its own file-only logging
    if ctx.invoked_subcommand != "run-loop":
        ctx.obj["logger"] = setup_logging(ctx.obj["config"])


@main.command(Verb.TOGGLE.value)
@click.argument("session", required=False)
@click.pass_context
def toggle(ctx: click.Context, session: str | None) -> None:
    """Mark the current (or named) session persistent or temporary."""
    if session is None and not os.environ.get("TMUX"):
        _fail("Not inside a tmux session (pass a session name)")

    controller = _components(ctx).controller
    try:
        pinned = asyncio.run(controller.toggle(session))
    except TsmError as e:
        _fail(str(e))

    if pinned:
        click.echo("Session marked as persistent")
    else:
        click.echo("Session marked as temporary")


@main.command(Verb.CLEANUP_OLD.value)
@click.pass_context
def cleanup_old(ctx: click.Context) -> None:
    """Kill generated sessions detached longer than the grace period."""
    controller = _components(ctx).controller
    try:
        report = asyncio.run(controller.sweep_once())
    except TsmError as e:
        _fail(str(e))
    click.echo(report.summary())


@main.command(Verb.FORCE_CLEANUP.value)
@click.pass_context
def force_cleanup(ctx: click.Context) -> None:
    """Kill every idle, unpinned generated session now."""
    controller = _components(ctx).controller
    try:
        report = asyncio.run(controller.force_sweep_all())
    except TsmError as e:
        _fail(str(e))
    click.echo(report.summary())


@main.command(Verb.START_CLEANUP.value)
@click.option(
    "--grace-period",
    "-g",
    type=int,
    default=None,
    help="Seconds a detached session is kept (default from config).",
)
@click.pass_context
def start_cleanup(ctx: click.Context, grace_period: int | None) -> None:
    """Start the background cleanup loop (no-op if running)."""
    controller = _components(ctx).controller
    try:
        status = controller.start_loop(grace_period)
    except (TsmError, OSError) as e:
        _fail(str(e))
    click.echo(status.describe())


@main.command(Verb.STOP_CLEANUP.value)
@click.pass_context
def stop_cleanup(ctx: click.Context) -> None:
    """Stop the background cleanup loop."""
    controller = _components(ctx).controller
    try:
        pid = controller.stop_loop()
    except OSError as e:
        _fail(str(e))
    if pid is None:
        click.echo("No periodic cleanup loop is running")
    else:
        click.echo(f"Stopped periodic cleanup loop with PID: {pid}")


@main.command(Verb.CHECK_CLEANUP.value)
@click.pass_context
def check_cleanup(ctx: click.Context) -> None:
    """Show whether the cleanup loop is running (exit 1 if not)."""
    status = _components(ctx).controller.status()
    click.echo(status.describe())
    if not status.running:
        raise SystemExit(1)


@main.command(
    Verb.DEBUG.value,
    context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def debug(ctx: click.Context, args: tuple[str, ...]) -> None:
    """Toggle debug output for this process, then run ARGS as a verb."""
    enabled = not is_debug()
    set_debug(enabled)
    click.echo(f"Debug output {'enabled' if enabled else 'disabled'}")
    if args:
        _invoke_verb(ctx, args)


@main.command("list")
@click.pass_context
def list_sessions(ctx: click.Context) -> None:
    """List sessions with their cleanup state."""
    from tsm.controller import DETACHED_TIME_KEY
    from tsm.formatting import format_detached
    from tsm.naming import is_generated_session

    components = _components(ctx)

    async def _list() -> list[tuple[str, str, str, int, str]]:
        rows = []
        now = time.time()
        for name in await components.driver.list_sessions():
            generated = is_generated_session(name)
            pinned = generated and components.registry.is_pinned(name)
            clients = await components.driver.attached_client_count(name)
            detached = "-"
            if generated and not clients:
                stored = await components.registry.get_metadata(name, DETACHED_TIME_KEY)
                detached = format_detached(stored, now)
            rows.append(
                (
                    name,
                    "yes" if generated else "no",
                    "yes" if pinned else "no",
                    clients,
                    detached,
                )
            )
        return rows

    try:
        rows = asyncio.run(_list())
    except TsmError as e:
        _fail(str(e))

    if not rows:
        click.echo("No tmux sessions found.")
        return

    click.echo(f"{'Name':<28} {'Generated':<10} {'Pinned':<7} {'Clients':<8} {'Detached'}")
    click.echo("-" * 70)
    for name, generated, pinned, clients, detached in rows:
        click.echo(f"{name:<28} {generated:<10} {pinned:<7} {clients:<8} {detached}")


@main.command(
    "tmux",
    add_help_option=False,
    context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def tmux(ctx: click.Context, args: tuple[str, ...]) -> None:
    """Front-end for tmux: bare "tmux" opens an auto-named session."""
    front_end = _components(ctx).front_end()
    try:
        verb_args = asyncio.run(front_end.run(args))
    except TsmError as e:
        _fail(str(e))
    except OSError as e:
        _fail(f"Could not run tmux: {e}")

    if verb_args is not None:
        _invoke_verb(ctx, verb_args)


@main.command("shell-init")
@click.argument("shell", type=click.Choice(["bash", "zsh"]))
def shell_init(shell: str) -> None:
    """Print shell integration, e.g. eval "$(tsm shell-init zsh)"."""
    from tsm.shells import shell_init as render

    click.echo(render(shell), nl=False)


@main.command("nav")
@click.argument("key")
@click.pass_context
def nav(ctx: click.Context, key: str) -> None:
    """Move between panes, forwarding the key to vim/fzf when focused."""
    from tsm.navigate import navigate

    driver = _components(ctx).driver
    try:
        asyncio.run(navigate(driver, key))
    except ValueError as e:
        _fail(str(e))
    except TsmError as e:
        _fail(str(e))


@main.command("run-loop", hidden=True)
@click.option("--grace-period", type=int, default=None)
@click.option("--iterations", type=int, default=None)
@click.pass_context
def run_loop(ctx: click.Context, grace_period: int | None, iterations: int | None) -> None:
    """Run the cleanup loop in the foreground (spawned by start-cleanup)."""
    config = ctx.obj["config"]
    if grace_period is not None:
        try:
            config.grace_period = validate_grace_period(grace_period)
        except ConfigError as e:
            _fail(str(e))

    ctx.obj["logger"] = setup_logging(config, console=False, log_file=config.log_file)

    controller = _components(ctx).controller
    asyncio.run(controller.run_loop(iterations))


@main.command()
def version() -> None:
    """Show version."""
    click.echo(f"tsm version {__version__}")
