"""sleepsync auth: connect Google Fit."""

from __future__ import annotations

import asyncio

import click

from .common import CliContext, build_token_client, ensure_init, load_config, load_secrets, load_settings


async def _authorize(client, open_browser, events):
    from sleepsync.core.events import AUTH_COMPLETED

    token = await client.authorize(open_browser=open_browser)
    await events.publish(AUTH_COMPLETED, source="auth", scopes=client.scopes)
    return token


@click.command()
@click.option("--no-browser", is_flag=True, help="Only print the consent URL.")
@click.option("--timeout", type=int, default=None, help="Seconds to wait for the browser redirect.")
@click.pass_obj
def auth(ctx: CliContext, no_browser: bool, timeout: int | None) -> None:
    """Authorize sleepsync to read and write your Google Fit sleep data."""
    from sleepsync.core.events import EventBus
    from sleepsync.core.exceptions import SleepSyncError

    ensure_init(ctx)
    config = load_config(ctx)
    if timeout is not None:
        config.set("sources.google_fit.callback_timeout", timeout)
    settings = load_settings(config)
    client = build_token_client(settings, load_secrets(ctx))

    click.echo(f"Waiting for Google on http://localhost:{settings.sources.google_fit.callback_port}/ ...")
    try:
        asyncio.run(_authorize(client, not no_browser, EventBus()))
    except SleepSyncError as e:
        raise click.ClickException(str(e))

    click.echo("Connected to Google Fit.")
