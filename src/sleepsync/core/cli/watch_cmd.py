"""sleepsync watch: sync on a timer until stopped."""

from __future__ import annotations

import asyncio
import signal

import click

from .common import CliContext, build_orchestrator, echo_documents, ensure_init, load_config, load_secrets, load_settings


async def _watch(orchestrator, config) -> None:
    from sleepsync.sync import SyncScheduler

    scheduler = SyncScheduler.from_config(orchestrator.sync, config, run_immediately=True)
    scheduler.start()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError, ValueError):
            pass
    try:
        await stop.wait()
    finally:
        scheduler.shutdown()


@click.command()
@click.option("--minutes", type=click.IntRange(min=1), help="Override sync.auto_sync_minutes.")
@click.pass_obj
def watch(ctx: CliContext, minutes: int | None) -> None:
    """Keep syncing every few minutes."""
    from sleepsync.core.events import SYNC_COMPLETED, SYNC_FAILED, EventBus

    ensure_init(ctx)
    config = load_config(ctx)
    if minutes:
        config.set("sync.auto_sync_minutes", minutes)
    settings = load_settings(config)

    events = EventBus()
    events.on(SYNC_COMPLETED, lambda e: click.echo(f"Synced {e.payload['events']} events for {e.payload['window']}"))
    events.on(SYNC_FAILED, lambda e: click.echo(f"Sync failed: {e.payload['error']}", err=True))
    if ctx.verbose:
        echo_documents(events)
    orchestrator = build_orchestrator(settings, load_secrets(ctx), events)

    click.echo(f"Syncing every {settings.sync.auto_sync_minutes} minute(s). Press Ctrl+C to stop.")
    try:
        asyncio.run(_watch(orchestrator, config))
    except ImportError as e:
        raise click.ClickException(str(e))
    except KeyboardInterrupt:
        pass
    click.echo("Stopped.")
