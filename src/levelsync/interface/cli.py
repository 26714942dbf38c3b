"""levelsync CLI: record levels per date and drive the sync queue."""

import asyncio
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Annotated, Any

import typer

from levelsync.application.config import AppConfig, resolve_config
from levelsync.application.factory import build_tracker
from levelsync.application.tracker import LevelTracker
from levelsync.domain.errors import InvalidInput, PersistenceFailure
from levelsync.domain.models import DateState, shift_date

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="levelsync: per-date level tracker with offline-tolerant sync.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage levelsync configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

_VERBOSITY = {0: logging.WARNING, 1: logging.INFO}

DateArg = Annotated[
    str | None, typer.Argument(help="Date as YYYY-MM-DD. Defaults to today.")
]
OffsetOpt = Annotated[
    int, typer.Option("--offset", "-o", help="Shift the date by N days (negative goes back).")
]


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 1,
    data_dir: Annotated[
        Path | None, typer.Option(help="Directory holding the local state.")
    ] = None,
    store: Annotated[
        str | None, typer.Option("--store", help="State store: file, sqlite, memory.")
    ] = None,
    sync_url: Annotated[str | None, typer.Option(help="Remote sync endpoint.")] = None,
):
    """Global settings for levelsync."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "verbose": verbose,
        "data_dir": data_dir,
        "store_backend": store,
        "sync_url": sync_url,
    }
    logging.getLogger().setLevel(_VERBOSITY.get(verbose, logging.DEBUG))


def _config(ctx: typer.Context) -> AppConfig:
    overrides: dict[str, Any] = (ctx.obj or {}).get("overrides", {})
    return resolve_config(overrides)


def _resolve_date(value: str | None, offset: int) -> str:
    base = value or date.today().isoformat()
    try:
        return shift_date(base, offset)
    except InvalidInput as e:
        typer.secho(str(e), fg="red")
        raise typer.Exit(2) from e


def _print_state(tracker: LevelTracker, date_key: str, state: DateState) -> None:
    stored = "" if tracker.table.has_state(date_key) else " (untouched)"
    typer.secho(f"{date_key}{stored}", bold=True)
    for i, level in enumerate(state.levels):
        typer.echo(f"  [{i}] {level} {tracker.label(level)}")


def _print_queue(tracker: LevelTracker) -> None:
    snap = tracker.snapshot()
    color = "green" if snap.length == 0 else "yellow"
    typer.secho(f"Items in queue: {snap.length} ({snap.status.value})", fg=color)
    if snap.head is not None:
        head = snap.head
        typer.echo(f"  next: {head.id} {head.date}[{head.index}] attempts={head.attempts}")


async def _apply(config: AppConfig, date_key: str, index: int, level: int | None) -> None:
    tracker = build_tracker(config)
    try:
        if level is None:
            state = tracker.toggle(date_key, index)
        else:
            state = tracker.set_level(date_key, index, level)
        _print_state(tracker, date_key, state)
        # Accepting the change already kicked a drain
        await tracker.queue.wait_for_drain()
        _print_queue(tracker)
    finally:
        await tracker.stop()


def _run_mutation(ctx: typer.Context, date_key: str, index: int, level: int | None) -> None:
    try:
        asyncio.run(_apply(_config(ctx), date_key, index, level))
    except InvalidInput as e:
        typer.secho(f"Invalid input: {e}", fg="red")
        raise typer.Exit(2) from e
    except PersistenceFailure as e:
        typer.secho(f"Could not save: {e}", fg="red")
        raise typer.Exit(1) from e


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command()
def show(ctx: typer.Context, day: DateArg = None, offset: OffsetOpt = 0):
    """Show the levels recorded for a date."""
    date_key = _resolve_date(day, offset)
    tracker = build_tracker(_config(ctx))
    try:
        _print_state(tracker, date_key, tracker.get_state(date_key))
    finally:
        asyncio.run(tracker.stop())


@app.command()
def toggle(
    ctx: typer.Context,
    index: Annotated[int, typer.Argument(help="Toggle position, starting at 0.")],
    day: DateArg = None,
    offset: OffsetOpt = 0,
):
    """[bold green]Cycle[/bold green] a toggle to its next level, then sync."""
    _run_mutation(ctx, _resolve_date(day, offset), index, None)


@app.command("set")
def set_level(
    ctx: typer.Context,
    index: Annotated[int, typer.Argument(help="Toggle position, starting at 0.")],
    level: Annotated[int, typer.Argument(help="Level to record.")],
    day: DateArg = None,
    offset: OffsetOpt = 0,
):
    """Record an explicit level for a toggle, then sync."""
    _run_mutation(ctx, _resolve_date(day, offset), index, level)


@app.command()
def queue(ctx: typer.Context):
    """Show pending changes."""
    tracker = build_tracker(_config(ctx))
    try:
        _print_queue(tracker)
    finally:
        asyncio.run(tracker.stop())


@app.command()
def flush(
    ctx: typer.Context,
    offline: Annotated[
        bool, typer.Option("--offline", help="Skip the reachability probe and stay offline.")
    ] = False,
):
    """Deliver pending changes to the remote endpoint."""

    async def run():
        tracker = build_tracker(_config(ctx))
        try:
            if offline:
                tracker.set_online(False)
                typer.secho("Offline: nothing sent.", fg="yellow")
            else:
                await tracker.flush(probe=True)
                if not tracker.queue.online:
                    typer.secho("Remote unreachable.", fg="yellow")
            _print_queue(tracker)
            return tracker.queue.length
        finally:
            await tracker.stop()

    remaining = asyncio.run(run())
    if remaining and not offline:
        raise typer.Exit(1)


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[str, typer.Option(help="Interface to bind.")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Port to listen on.")] = 8777,
    reload: Annotated[bool, typer.Option("--reload", help="Reload on code changes.")] = False,
):
    """Run the levelsync HTTP API."""
    import os

    import uvicorn

    # The server resolves its own config; hand it the global options via env.
    for name, value in (ctx.obj or {}).get("overrides", {}).items():
        if value is not None:
            os.environ[f"LEVELSYNC_{name.upper()}"] = str(value)

    uvicorn.run("levelsync.server:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _config(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))
