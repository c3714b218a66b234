"""Run command for the worksync CLI.

Commands:
- run: Start the storage services and maintenance jobs until interrupted
"""

from __future__ import annotations

import logging
import time

import click

from worksync.app import create_worksync, setup_logging
from worksync.cli.config import load_storage_config


@click.command()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def run(ctx: click.Context, verbose: bool) -> None:
    """Run network monitoring, sync retries and backup cleanup.

    Stops on Ctrl+C after letting in-flight syncs finish.
    """
    config = load_storage_config(ctx.obj.get("config_path"))
    setup_logging(config.log_path, logging.DEBUG if verbose else logging.INFO)

    app = create_worksync(config)
    app.start()
    click.echo("WorkSync running. Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("\nStopping...")
    finally:
        remaining = app.stop()
    if remaining:
        click.echo(f"Warning: {remaining} operations did not finish.", err=True)
