"""sleepsync note: detailed note for the most recent night."""

from __future__ import annotations

import asyncio

import click

from .common import CliContext, build_orchestrator, ensure_init, load_config, load_secrets, load_settings


async def _create_note(orchestrator, folder: str):
    from sleepsync.journal import SessionNoteWriter

    record = await orchestrator.latest_record()
    if record is None:
        return None
    writer = SessionNoteWriter(orchestrator.writer.store, orchestrator.clock, folder)
    return await writer.create(record)


@click.command()
@click.pass_obj
def note(ctx: CliContext) -> None:
    """Create a sleep note for the latest session."""
    from sleepsync.core.exceptions import SleepSyncError

    ensure_init(ctx)
    settings = load_settings(load_config(ctx))
    orchestrator = build_orchestrator(settings, load_secrets(ctx))

    try:
        outcome = asyncio.run(_create_note(orchestrator, settings.session_notes.folder))
    except SleepSyncError as e:
        raise click.ClickException(str(e))

    if outcome is None:
        click.echo("No recent sleep data found.")
        return
    path, created = outcome
    click.echo(f"Created {path}" if created else f"{path} already exists")
