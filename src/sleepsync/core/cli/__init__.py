"""sleepsync CLI: init, sync, add, note, auth and watch commands."""

from pathlib import Path

import click

from sleepsync import __version__

from .common import CONFIG_PATH, CliContext


@click.group()
@click.version_option(version=__version__, package_name="sleepsync")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output and list every document touched.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=str(CONFIG_PATH),
    show_default=True,
    help="Config file; tokens, secrets and logs live next to it.",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: str) -> None:
    """sleepsync: sleep sessions into your markdown journal."""
    ctx.obj = CliContext(config_path=Path(config_path).expanduser(), verbose=verbose)


# Register subcommands (lazy imports keep startup fast)
from .add_cmd import add
from .auth_cmd import auth
from .init_cmd import init
from .note_cmd import note
from .sync_cmd import sync
from .watch_cmd import watch

main.add_command(init)
main.add_command(sync)
main.add_command(add)
main.add_command(note)
main.add_command(auth)
main.add_command(watch)
