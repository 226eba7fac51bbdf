"""Shared setup logic for CLI commands."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

import click

SLEEPSYNC_DIR = Path.home() / ".sleepsync"
CONFIG_PATH = SLEEPSYNC_DIR / "config.yaml"


@dataclass
class CliContext:
    """Options of the ``sleepsync`` group, passed to every subcommand."""

    config_path: Path = CONFIG_PATH
    verbose: bool = False

    @property
    def data_dir(self) -> Path:
        return self.config_path.parent

    @property
    def secrets_path(self) -> Path:
        return self.data_dir / "secrets.yaml"


def ensure_init(ctx: CliContext) -> None:
    """Check that sleepsync init has been run."""
    if not ctx.config_path.exists():
        click.echo("No configuration found. Run 'sleepsync init' first.")
        sys.exit(1)


def load_config(ctx: CliContext):
    """Load config and route logs to stderr plus ``<data_dir>/logs``."""
    from sleepsync.core.config import Config
    from sleepsync.core.exceptions import ConfigurationError
    from sleepsync.core.utils.logging import configure_cli_logging

    try:
        config = Config(config_file=str(ctx.config_path), data_dir=str(ctx.data_dir))
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    configure_cli_logging(ctx.verbose, config.get("paths.log_dir", str(ctx.data_dir / "logs")))
    return config


def load_settings(config):
    """Validate config, turning schema errors into a CLI error."""
    from sleepsync.core.exceptions import ConfigurationError

    try:
        return config.validated()
    except ConfigurationError as e:
        raise click.ClickException(str(e))


def load_secrets(ctx: CliContext):
    """Env vars first, then ``secrets.yaml`` next to the config file."""
    from sleepsync.core.secrets import default_secrets

    return default_secrets(ctx.data_dir)


def token_store_for(settings):
    from sleepsync.core.auth import TokenStore

    return TokenStore(settings.paths.token_file or settings.paths.data_dir / "google_token.yaml")


def build_token_client(settings, secrets, clock=None):
    """TokenClient for Google Fit, loaded from and persisted to the token file."""
    from sleepsync.core.auth import RateLimiter, TokenClient

    client_id = secrets.get("google.client_id")
    client_secret = secrets.get("google.client_secret")
    if not client_id or not client_secret:
        raise click.ClickException(
            "Google client_id/client_secret not configured. "
            "Add them to secrets.yaml or set SLEEPSYNC_GOOGLE__CLIENT_ID and SLEEPSYNC_GOOGLE__CLIENT_SECRET."
        )

    store = token_store_for(settings)
    fit = settings.sources.google_fit
    return TokenClient(
        client_id,
        client_secret,
        token=store.load(),
        callback_port=fit.callback_port,
        callback_timeout=fit.callback_timeout,
        on_token_change=store.save,
        rate_limiter=RateLimiter(fit.min_request_interval, clock=clock),
        clock=clock,
    )


def echo_documents(events) -> None:
    """Print every created or updated document path."""
    from sleepsync.core.events import DOCUMENT_CREATED, DOCUMENT_UPDATED

    def _echo(event) -> None:
        verb = "Created" if event.name == DOCUMENT_CREATED else "Updated"
        click.echo(f"  {verb} {event.payload.get('path', '')}")

    events.on(DOCUMENT_CREATED, _echo)
    events.on(DOCUMENT_UPDATED, _echo)


def build_sources(settings, secrets, clock=None):
    """Primary and fallback sources from the registry; None where disabled."""
    from sleepsync.core.exceptions import ConfigurationError
    from sleepsync.sleep.registry import default_registry

    sources = settings.sources
    registry = default_registry()
    try:
        calendar = None
        if sources.calendar.enabled:
            calendar = registry.create(
                sources.calendar.plugin,
                url=sources.calendar.url,
                summary_marker=sources.calendar.summary_marker,
            )
        fitness = None
        if sources.google_fit.enabled:
            fitness = registry.create(sources.google_fit.plugin, client=build_token_client(settings, secrets, clock))
    except ConfigurationError as e:
        raise click.ClickException(str(e))
    return calendar, fitness


def build_orchestrator(settings, secrets, events=None, clock=None):
    """Wire store, writers and sources from validated settings."""
    from sleepsync.core.clock import SystemClock
    from sleepsync.core.events import EventBus
    from sleepsync.core.storage import LocalDocumentStore
    from sleepsync.journal import MaterializationWriter, MeasurementWriter
    from sleepsync.sync import SyncOrchestrator

    clock = clock or SystemClock()
    events = events or EventBus()
    store = LocalDocumentStore(settings.vault.path)
    user_names = {u.id: u.name or u.id for u in settings.users}

    calendar, fitness = build_sources(settings, secrets, clock)

    return SyncOrchestrator(
        writer=MaterializationWriter(store, clock, user_names=user_names, events=events),
        journal=settings.journal.to_category("journal"),
        running_log=settings.running_log.to_category("running_log"),
        calendar=calendar,
        fitness=fitness,
        measurements=MeasurementWriter(store, settings.measurements.to_config(), user_names=user_names, events=events),
        clock=clock,
        user_id=settings.user_id(),
        default_days=settings.sync.default_days,
        events=events,
    )
