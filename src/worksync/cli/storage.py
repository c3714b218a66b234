"""Setup and status commands for the worksync CLI.

Commands:
- init: Write the configuration and create the directory layout
- status: Show storage locations, network availability and backup counts
"""

from __future__ import annotations

import sys

import click

from worksync.cli.config import get_config_path, open_worksync
from worksync.core.config import StorageConfig, save_config
from worksync.core.types import CriticalityLevel
from worksync.storage.backup import BACKUP_EXTENSION
from worksync.storage.paths import PathConfig


@click.command()
@click.option(
    "--local-path",
    type=click.Path(file_okay=False),
    required=True,
    help="Base directory of the local installation.",
)
@click.option(
    "--network-path",
    type=click.Path(file_okay=False),
    required=True,
    help="Root of the shared network mirror.",
)
@click.option("--app-title", default="WorkSync", show_default=True, help="Installation name.")
@click.option("--log-path", type=click.Path(dir_okay=False), default=None, help="Log file.")
@click.option("--force", is_flag=True, help="Overwrite an existing configuration.")
@click.pass_context
def init(
    ctx: click.Context,
    local_path: str,
    network_path: str,
    app_title: str,
    log_path: str | None,
    force: bool,
) -> None:
    """Configure worksync and create the local directory layout."""
    config_file = get_config_path(ctx.obj.get("config_path"))
    if config_file.exists() and not force:
        click.echo(f"Error: Configuration already exists: {config_file}", err=True)
        click.echo("Use --force to overwrite it.", err=True)
        sys.exit(1)

    config = StorageConfig(
        local_path=local_path,
        network_path=network_path,
        app_title=app_title,
        log_path=log_path,
    )
    save_config(config, config_file)
    click.echo(f"Configuration saved to {config_file}")

    if PathConfig(config).initialize():
        click.echo(f"Local storage ready at {config.local_root}")
    else:
        click.echo(f"Warning: could not create local directories under {config.local_root}", err=True)


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show storage locations, network availability and backup counts."""
    with open_worksync(ctx.obj.get("config_path")) as app:
        click.echo(f"Local root:   {app.paths.local_root}")
        click.echo(f"Network root: {app.paths.network_root}")
        click.echo(f"Local storage:   {'available' if app.paths.local_available else 'unavailable'}")
        click.echo(f"Network storage: {'available' if app.context.network.available else 'unavailable'}")
        click.echo("Backups:")
        for level in CriticalityLevel:
            directory = app.paths.backup_level_dir(level)
            count = sum(1 for _ in directory.rglob(f"*{BACKUP_EXTENSION}")) if directory.is_dir() else 0
            click.echo(f"  {level.name:<6} {count:>5}  (keeps {level.max_backups})")
