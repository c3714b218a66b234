"""Configuration utilities for the worksync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click

from worksync.app import WorkSync, create_worksync
from worksync.core.config import StorageConfig, get_config_dir, load_config


def get_config_path(config_path: str | None) -> Path:
    """Config file given on the command line, or ~/.worksync/config.json."""
    if config_path:
        return Path(config_path).expanduser()
    return get_config_dir() / "config.json"


def load_storage_config(config_path: str | None) -> StorageConfig:
    """Load the configuration or exit with an error message."""
    path = get_config_path(config_path)
    try:
        return load_config(path)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        click.echo("Run 'worksync init' first.", err=True)
        sys.exit(1)


@contextmanager
def open_worksync(config_path: str | None) -> Iterator[WorkSync]:
    """Start the storage services without the maintenance scheduler.

    The services are stopped when the block exits.
    """
    app = create_worksync(load_storage_config(config_path))
    app.start(with_scheduler=False)
    try:
        yield app
    finally:
        app.stop()
