"""sleepsync init: write a starter config and secrets file."""

from __future__ import annotations

import os
import re

import click
import yaml

from .common import CliContext


def _user_id(name: str) -> str:
    """Lower-case slug used as the user id."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "me"


def _starter_config(vault: str, user_name: str, calendar_url: str) -> dict:
    user_id = _user_id(user_name)
    return {
        "vault": {"path": vault},
        "users": [{"id": user_id, "name": user_name}],
        "default_user": user_id,
        "journal": {"enabled": True, "folder": "Journal"},
        "running_log": {"enabled": False},
        "measurements": {"enabled": True, "folder": "Sleep"},
        "sources": {
            "calendar": {"enabled": bool(calendar_url), "url": calendar_url},
            "google_fit": {"enabled": not calendar_url},
        },
        "sync": {"default_days": 7, "auto_sync_minutes": 60},
    }


@click.command()
@click.option("--vault", prompt="Path to your markdown vault", default="~/vault", show_default=True)
@click.option("--name", "user_name", prompt="Your name", default=lambda: os.environ.get("USER", "me"))
@click.option(
    "--calendar-url",
    prompt="Sleep calendar (iCal) URL, blank to use Google Fit",
    default="",
    show_default=False,
)
@click.option("--force", is_flag=True, help="Overwrite an existing config.")
@click.pass_obj
def init(ctx: CliContext, vault: str, user_name: str, calendar_url: str, force: bool) -> None:
    """Set up sleepsync."""
    try:
        from rich.console import Console
        from rich.panel import Panel
    except ImportError:
        raise click.ClickException("Install rich: pip install rich")

    from sleepsync.core.secrets import write_secrets_file

    console = Console()
    if ctx.config_path.exists() and not force:
        raise click.ClickException(f"{ctx.config_path} already exists. Use --force to overwrite it.")

    ctx.data_dir.mkdir(parents=True, exist_ok=True)
    with open(ctx.config_path, "w") as f:
        yaml.safe_dump(_starter_config(vault, user_name, calendar_url.strip()), f, sort_keys=False, allow_unicode=True)

    lines = [f"Config:  {ctx.config_path}"]
    if not ctx.secrets_path.exists():
        write_secrets_file(ctx.secrets_path)
        lines.append(f"Secrets: {ctx.secrets_path} (owner read/write only)")
    if not calendar_url.strip():
        lines.append("Add your Google client_id/client_secret to the secrets file, then run 'sleepsync auth'.")
    lines.append("Run 'sleepsync sync' to import the last week of sleep.")
    console.print(Panel("\n".join(lines), title="sleepsync ready"))
