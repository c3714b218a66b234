"""Backup commands for the worksync CLI.

Commands:
- backup create: Back up a file according to its criticality tier
- backup list: List the backups of a file
- backup restore: Restore a file from its newest backup
- backup cleanup: Delete expired timestamped backups
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from worksync.cli.config import open_worksync
from worksync.storage.backup import is_timestamped_backup

if TYPE_CHECKING:
    from worksync.app import WorkSync
    from worksync.core.types import FilePath


@click.group()
def backup() -> None:
    """Backup management commands."""


def _local_file(app: WorkSync, file: str) -> FilePath:
    try:
        file_path = app.resolver.resolve(Path(file).expanduser().absolute())
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if not file_path.is_local:
        click.echo("Error: backups are kept for local files only.", err=True)
        sys.exit(1)
    return file_path


@backup.command("create")
@click.argument("file", type=click.Path(dir_okay=False))
@click.pass_context
def create_cmd(ctx: click.Context, file: str) -> None:
    """Back up FILE according to its criticality tier."""
    with open_worksync(ctx.obj.get("config_path")) as app:
        result = app.backups.create_backup(_local_file(app, file))
    if not result.success:
        click.echo(f"Error: {result.error_message}", err=True)
        sys.exit(1)
    click.echo(f"Backup created: {result.path}")


@backup.command("list")
@click.argument("file", type=click.Path(dir_okay=False))
@click.option("--verbose", "-v", is_flag=True, help="Show backup diagnostics.")
@click.pass_context
def list_cmd(ctx: click.Context, file: str, verbose: bool) -> None:
    """List the backups of FILE, newest first."""
    with open_worksync(ctx.obj.get("config_path")) as app:
        file_path = _local_file(app, file)
        if verbose:
            click.echo(app.backups.get_backup_diagnostics(file_path))
        backups = app.backups.list_available_backups(file_path)

    if not backups:
        click.echo("No backups found.")
        return
    for path in backups:
        kind = "timestamped" if is_timestamped_backup(path) else "simple"
        click.echo(f"{path.name}  ({kind})")


@backup.command("restore")
@click.argument("file", type=click.Path(dir_okay=False))
@click.pass_context
def restore_cmd(ctx: click.Context, file: str) -> None:
    """Restore FILE from its newest backup."""
    with open_worksync(ctx.obj.get("config_path")) as app:
        result = app.backups.restore_from_latest_backup(_local_file(app, file))
    if not result.success:
        click.echo(f"Error: {result.error_message}", err=True)
        sys.exit(1)
    click.echo(f"Restored {result.path}")


@backup.command("cleanup")
@click.pass_context
def cleanup_cmd(ctx: click.Context) -> None:
    """Delete timestamped backups older than the retention period.

    This command can be run manually or via cron for scheduled cleanup.
    """
    with open_worksync(ctx.obj.get("config_path")) as app:
        deleted = app.backups.cleanup_old_backups()
    if deleted > 0:
        click.echo(f"Deleted {deleted} old backups.")
    else:
        click.echo("No backups to delete.")
