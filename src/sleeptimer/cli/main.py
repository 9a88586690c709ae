"""CLI entry point for sleeptimer.

Uses Click to expose the ``sleeptimer`` command group with subcommands
that delegate to the timer engine.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Callable, TypeVar

import click

import sleeptimer
from sleeptimer.core.daemon import Daemon
from sleeptimer.core.engine import TimerEngine, create_engine, now_ms
from sleeptimer.core.service import TimerService
from sleeptimer.core.store import DEFAULT_CONFIG_DIR
from sleeptimer.core.timefmt import format_countdown, format_duration, parse_duration
from sleeptimer.core.timer import TimerError
from sleeptimer.core.wake import FileWakeScheduler

T = TypeVar("T")

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _run(action: Callable[[], T]) -> T:
    """Execute *action*, converting ``TimerError`` to a CLI error.

    On ``TimerError`` the message is printed to stderr and the process exits
    with code 1.
    """
    try:
        return action()
    except TimerError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)


def _engine(ctx: click.Context) -> TimerEngine:
    return _run(lambda: create_engine(ctx.obj["config_dir"]))


def _parse(value: str) -> int:
    return _run(lambda: parse_duration(value))


def _describe(snapshot: dict) -> str:
    if not snapshot.get("active"):
        return "No active timer"
    text = f"{format_countdown(snapshot['remaining'])} remaining on {snapshot['resource_id']}"
    if snapshot["status"] == "paused":
        text += " (paused)"
    return text


@click.group()
@click.version_option(version=sleeptimer.__version__, prog_name="sleeptimer")
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="SLEEPTIMER_CONFIG_DIR",
    default=DEFAULT_CONFIG_DIR,
    show_default=True,
    help="Directory holding config.json and the timer state.",
)
@click.option("-v", "--verbose", count=True, help="Log more (-v info, -vv debug).")
@click.pass_context
def cli(ctx: click.Context, config_dir: Path, verbose: int) -> None:
    """sleeptimer: pause playback when a countdown runs out."""
    level = logging.WARNING - 10 * min(verbose, 2)
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    ctx.ensure_object(dict)
    ctx.obj["config_dir"] = config_dir


@cli.command()
@click.argument("duration")
@click.argument("resource")
@click.option("--url", default=None, help="URL playing on RESOURCE, used to categorize it.")
@click.pass_context
def start(ctx: click.Context, duration: str, resource: str, url: str | None) -> None:
    """Start a timer of DURATION (e.g. 30m, 1h 30m, 90) for RESOURCE."""
    seconds = _parse(duration)
    engine = _engine(ctx)
    record = _run(lambda: engine.start(seconds, resource, url))
    click.echo(f"Timer started: {format_duration(record.duration_seconds)} on {record.resource_id}")


@cli.command()
@click.pass_context
def stop(ctx: click.Context) -> None:
    """Cancel the current timer."""
    engine = _engine(ctx)
    record = _run(engine.stop)
    click.echo("Timer stopped" if record is not None else "No active timer")


@cli.command()
@click.pass_context
def pause(ctx: click.Context) -> None:
    """Pause the current timer."""
    engine = _engine(ctx)
    record = _run(engine.pause)
    click.echo(f"Timer paused at {format_countdown(record.remaining_seconds)} remaining")


@cli.command()
@click.pass_context
def resume(ctx: click.Context) -> None:
    """Resume a paused timer."""
    engine = _engine(ctx)
    record = _run(engine.resume)
    if record is None:
        click.echo("No active timer")
        return
    remaining = record.remaining_at(now_ms())
    click.echo(f"Timer resumed: {format_countdown(remaining)} remaining")


@cli.command()
@click.argument("duration")
@click.pass_context
def extend(ctx: click.Context, duration: str) -> None:
    """Add DURATION to the current timer."""
    seconds = _parse(duration)
    engine = _engine(ctx)
    record = _run(lambda: engine.extend(seconds))
    click.echo(f"Timer extended by {format_duration(seconds)} "
               f"(now {format_duration(record.duration_seconds)})")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the raw status snapshot.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the current timer status."""
    engine = _engine(ctx)
    snapshot = engine.status()
    if as_json:
        click.echo(json.dumps(snapshot))
    else:
        click.echo(_describe(snapshot))
    sys.exit(0 if snapshot.get("active") else 1)


@cli.command()
@click.argument("name")
@click.pass_context
def wake(ctx: click.Context, name: str) -> None:
    """Deliver the deferred wake NAME (for launchd/cron/systemd hosts)."""
    engine = _engine(ctx)
    engine.on_wake(name)


@cli.command()
@click.option("--once", is_flag=True, help="Run a single pass and exit.")
@click.pass_context
def daemon(ctx: click.Context, once: bool) -> None:
    """Run the host loop that delivers wakes and drives the countdown."""
    engine = _engine(ctx)
    scheduler = FileWakeScheduler(ctx.obj["config_dir"], clock_ms=now_ms)
    try:
        Daemon(engine, scheduler).run(max_iterations=1 if once else None)
    except KeyboardInterrupt:
        click.echo("Daemon stopped", err=True)


@cli.command()
@click.argument("message")
@click.pass_context
def send(ctx: click.Context, message: str) -> None:
    """Dispatch a JSON MESSAGE (e.g. '{"action": "getTimerStatus"}')."""
    try:
        payload = json.loads(message)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"not valid JSON: {exc}", param_hint="MESSAGE") from exc
    service = TimerService(_engine(ctx))
    result = service.handle_message(payload)
    click.echo(json.dumps(result))
    sys.exit(0 if result["success"] else 1)
