import asyncio
import signal
import sys
import threading
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from kakama_events import __version__
from kakama_events.engine.cron import parse_schedule, utc_now
from kakama_events.errors import InvalidScheduleError

console = Console()

DEFAULT_CONFIG_PATH = Path("./events.yaml")


def _load_config(ctx: click.Context):
    from kakama_events.config.loader import ConfigError, ConfigLoader

    loader = ConfigLoader(Path(ctx.obj["config"]))
    try:
        events_file = loader.load_with_env()
    except ConfigError as e:
        console.print(f"[red]Config error: {escape(str(e))}[/red]")
        raise SystemExit(1)
    return events_file, events_file.scheduler


def _ensure_cwd_on_path() -> None:
    """Make job modules in the working directory importable."""
    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)


@click.group()
@click.version_option(version=__version__, prog_name="kakama-events")
@click.option(
    "--config",
    default=str(DEFAULT_CONFIG_PATH),
    type=click.Path(),
    help="Events YAML file",
)
@click.pass_context
def cli(ctx: click.Context, config: str) -> None:
    """Kakama events — run cron-scheduled jobs in-process."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command("next")
@click.argument("expression")
@click.option("--tz", "time_zone", default="UTC", help="IANA time zone to evaluate in")
@click.option("--count", "-n", default=5, type=click.IntRange(min=1), help="Number of fire times to show")
def next_fire_times(expression: str, time_zone: str, count: int) -> None:
    """Show the next fire times of a cron EXPRESSION."""
    try:
        schedule = parse_schedule(expression, time_zone)
    except InvalidScheduleError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise SystemExit(1)

    table = Table(title=f"{expression} ({time_zone})")
    table.add_column("#", justify="right")
    table.add_column("Local", style="cyan")
    table.add_column("UTC", style="green")

    shown = 0
    for fire_time in schedule.iter_after(utc_now()):
        shown += 1
        table.add_row(
            str(shown),
            fire_time.astimezone(schedule.zone).isoformat(),
            fire_time.isoformat(),
        )
        if shown >= count:
            break

    if not shown:
        console.print("This schedule will never fire again.")
        return
    console.print(table)


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate the events config file."""
    events_file, settings = _load_config(ctx)
    console.print(f"[green]Config valid. {len(events_file.events)} event(s) found.[/green]")
    if not settings.enabled:
        console.print("[yellow]Scheduler is disabled.[/yellow]")
    for event in events_file.events:
        zone = events_file.time_zone_for(event)
        console.print(f"  - {event.name} ({event.cron}, {zone}) -> {event.module}:{event.entry_point}")


@cli.command()
@click.pass_context
def up(ctx: click.Context) -> None:
    """Run the scheduler in the foreground until interrupted."""
    from kakama_events.engine.manager import create_event_manager
    from kakama_events.logging_config import LogMessageCounter, configure_logging

    events_file, settings = _load_config(ctx)
    counter = LogMessageCounter()
    configure_logging(settings.log_level, counter)

    manager = create_event_manager(settings=settings)
    if not manager.enabled:
        console.print("[red]Scheduler is disabled by configuration.[/red]")
        raise SystemExit(1)

    _ensure_cwd_on_path()
    for event_config in events_file.events:
        manager.configure_event(event_config.to_event())

    stop_requested = threading.Event()

    def handle_signal(signum, frame) -> None:
        console.print("\n[yellow]Shutting down...[/yellow]")
        stop_requested.set()

    previous_handlers = {
        sig: signal.signal(sig, handle_signal) for sig in (signal.SIGINT, signal.SIGTERM)
    }

    manager.start()
    console.print(
        f"[green]{settings.name} running {len(events_file.events)} event(s).[/green] "
        "Press Ctrl+C to stop."
    )
    try:
        while not stop_requested.wait(0.5):
            pass
    finally:
        manager.dispose()
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)
    console.print(
        f"Stopped. {counter.errors_seen} error(s), {counter.warnings_seen} warning(s) "
        f"and {counter.criticals_seen} critical message(s) logged."
    )


@cli.command("run")
@click.argument("name")
@click.pass_context
def run_event(ctx: click.Context, name: str) -> None:
    """Fire one configured event now, in the foreground."""
    from kakama_events.engine.jobs import CancellationSignal
    from kakama_events.logging_config import configure_logging
    from kakama_events.models.event import ScheduledEventParameters

    events_file, settings = _load_config(ctx)
    configure_logging(settings.log_level)

    event_config = next((e for e in events_file.events if e.name == name), None)
    if not event_config:
        console.print(f"[red]Event '{name}' not found in config.[/red]")
        raise SystemExit(1)

    console.print(
        f"Running [cyan]{name}[/cyan] ({event_config.module}:{event_config.entry_point})..."
    )

    _ensure_cwd_on_path()
    event = event_config.to_event()

    async def fire() -> None:
        now = utc_now()
        params = ScheduledEventParameters(
            context=None,
            event_id=event.id,
            fire_time_utc=now,
            scheduled_fire_time_utc=now,
            cancellation=CancellationSignal(asyncio.get_running_loop()),
        )
        await event.execute_event(params)

    try:
        asyncio.run(fire())
    except Exception as e:
        console.print(f"[red]Event '{name}' failed: {escape(str(e))}[/red]")
        raise SystemExit(1)
    console.print(f"[green]Event '{name}' completed.[/green]")
