"""sleepsync add: record a sleep or wake by hand."""

from __future__ import annotations

import asyncio
from datetime import datetime

import click

from .common import CliContext, build_orchestrator, ensure_init, load_config, load_secrets, load_settings

KINDS = {"asleep": "sleep", "awake": "wake"}


def _normalize_time(value: str) -> str:
    try:
        return datetime.strptime(value.strip(), "%H:%M").strftime("%H:%M")
    except ValueError:
        raise click.BadParameter(f"expected HH:mm, got {value!r}", param_hint="--time")


@click.command()
@click.option("--state", type=click.Choice(sorted(KINDS)), required=True, help="Went to sleep or woke up.")
@click.option("--date", "day", type=click.DateTime(formats=["%Y-%m-%d"]), help="Day of the entry (default: today).")
@click.option("--time", "time_text", help="Time as HH:mm (default: now).")
@click.pass_obj
def add(ctx: CliContext, state: str, day: datetime | None, time_text: str | None) -> None:
    """Add a manual sleep entry; a wake gets its hours of sleep filled in."""
    from sleepsync.core.clock import SystemClock
    from sleepsync.core.exceptions import SleepSyncError

    ensure_init(ctx)
    settings = load_settings(load_config(ctx))
    clock = SystemClock()
    orchestrator = build_orchestrator(settings, load_secrets(ctx), clock=clock)

    entry_day = day.date() if day else clock.today()
    entry_time = _normalize_time(time_text) if time_text else clock.now().strftime("%H:%M")

    try:
        results = asyncio.run(orchestrator.record_manual(KINDS[state], entry_day, entry_time))
    except SleepSyncError as e:
        raise click.ClickException(str(e))

    if not results:
        click.echo("No destination is enabled; nothing written.")
    for result in results:
        if result.appended:
            suffix = f" ({result.duration_hours} hours of sleep)" if result.duration_hours is not None else ""
            click.echo(f"Added to {result.path}{suffix}")
        else:
            click.echo(f"Already recorded in {result.path}")
