"""sleepsync sync: one sync over a date range."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from datetime import date, datetime

import click

from .common import CliContext, build_orchestrator, echo_documents, ensure_init, load_config, load_secrets, load_settings

DATE = click.DateTime(formats=["%Y-%m-%d"])


@contextlib.contextmanager
def cancel_on_sigint(loop: asyncio.AbstractEventLoop, cancel):
    """Turn Ctrl+C into a cooperative cancel while the block runs."""
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.cancel)
    except (NotImplementedError, RuntimeError, ValueError):
        # No signal handlers off the main thread or on Windows.
        yield
        return
    try:
        yield
    finally:
        loop.remove_signal_handler(signal.SIGINT)


async def _run_sync(orchestrator, start: date | None, end: date | None, destinations):
    try:
        from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
    except ImportError:
        raise click.ClickException("Install rich: pip install rich")

    from sleepsync.sync import CancellationToken, SyncRequest

    cancel = CancellationToken()
    with cancel_on_sigint(asyncio.get_running_loop(), cancel):
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            transient=True,
        ) as progress:
            task = progress.add_task("Syncing sleep data (days)", total=None)

            def on_progress(done: int, total: int) -> None:
                progress.update(task, completed=done, total=total)

            request = SyncRequest(start=start, end=end, destinations=destinations, progress=on_progress, cancel=cancel)
            return await orchestrator.sync(request)


@click.command()
@click.option("--start", type=DATE, help="First day (YYYY-MM-DD); needs --end.")
@click.option("--end", type=DATE, help="Last day (YYYY-MM-DD); needs --start.")
@click.option("--journal/--no-journal", default=None, help="Write to the daily journal.")
@click.option("--running-log/--no-running-log", default=None, help="Write to the running sleep log.")
@click.option("--measurements/--no-measurements", default=None, help="Update the measurement tables.")
@click.pass_obj
def sync(
    ctx: CliContext,
    start: datetime | None,
    end: datetime | None,
    journal: bool | None,
    running_log: bool | None,
    measurements: bool | None,
) -> None:
    """Import sleep sessions into the vault (default: the last week)."""
    from sleepsync.core.events import EventBus
    from sleepsync.core.exceptions import SleepSyncError
    from sleepsync.sync import SyncStatus

    if (start is None) != (end is None):
        raise click.UsageError("--start and --end must be given together")
    if start and end and start > end:
        raise click.UsageError("--start must not be after --end")

    ensure_init(ctx)
    settings = load_settings(load_config(ctx))
    secrets = load_secrets(ctx)

    events = EventBus()
    if ctx.verbose:
        echo_documents(events)
    orchestrator = build_orchestrator(settings, secrets, events)

    destinations = None
    if journal is not None or running_log is not None or measurements is not None:
        destinations = orchestrator.destinations.override(
            journal=journal, running_log=running_log, measurements=measurements
        )

    try:
        report = asyncio.run(
            _run_sync(
                orchestrator,
                start.date() if start else None,
                end.date() if end else None,
                destinations,
            )
        )
    except SleepSyncError as e:
        raise click.ClickException(str(e))

    click.echo(report.summary())
    for path in report.created:
        click.echo(f"  New document: {path}")
    if report.status is SyncStatus.CANCELLED:
        raise SystemExit(130)
