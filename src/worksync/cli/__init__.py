"""Command-line interface for worksync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- init: Write the configuration and create the directory layout
- status: Show storage locations and availability
- backup: Create, list, restore and clean up backups
- sync: Push, pull or reconcile files with the network mirror
- run: Run the maintenance scheduler until interrupted
"""

from __future__ import annotations

import click

from worksync.cli.backup import backup
from worksync.cli.config import get_config_path, load_storage_config, open_worksync
from worksync.cli.run import run
from worksync.cli.storage import init, status
from worksync.cli.sync import sync


@click.group()
@click.version_option(package_name="worksync")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Config file (default: ~/.worksync/config.json).",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None) -> None:
    """WorkSync - Local and network storage with backups."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# Setup commands
cli.add_command(init)
cli.add_command(status)

# Storage commands
cli.add_command(backup)
cli.add_command(sync)
cli.add_command(run)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_path",
    "load_storage_config",
    "open_worksync",
]
