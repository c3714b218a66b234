"""Sync commands for the worksync CLI.

Commands:
- sync push: Copy a local file over its network mirror
- sync pull: Copy a network file over its local copy
- sync auto: Reconcile both copies, newer one wins
"""

from __future__ import annotations

import functools
import sys
from collections.abc import Callable
from typing import Any

import click

from worksync.cli.config import open_worksync
from worksync.core.types import FileType


@click.group()
def sync() -> None:
    """Replication commands between local and network storage."""


def file_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Arguments identifying one logical file."""

    @click.argument("file_type", type=click.Choice([t.value for t in FileType]))
    @click.option("--user", "username", default=None, help="Owner username.")
    @click.option("--user-id", type=int, default=None, help="Owner user id.")
    @click.option("--year", type=int, default=None, help="Period year.")
    @click.option("--month", type=click.IntRange(1, 12), default=None, help="Period month.")
    @functools.wraps(func)
    def wrapper(file_type: str, **kwargs: Any) -> Any:
        return func(file_type=FileType(file_type), **kwargs)

    return wrapper


def _file_kwargs(
    username: str | None, user_id: int | None, year: int | None, month: int | None
) -> dict[str, Any]:
    return {"username": username, "user_id": user_id, "year": year, "month": month}


def _report(ok: bool, message: str, error: str | None) -> None:
    if not ok:
        click.echo(f"Error: {error}", err=True)
        sys.exit(1)
    click.echo(message)


@sync.command("push")
@file_options
@click.pass_context
def push_cmd(
    ctx: click.Context,
    file_type: FileType,
    username: str | None,
    user_id: int | None,
    year: int | None,
    month: int | None,
) -> None:
    """Copy the local FILE_TYPE file over its network mirror."""
    with open_worksync(ctx.obj.get("config_path")) as app:
        try:
            result = app.data.push(file_type, **_file_kwargs(username, user_id, year, month))
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    _report(result.success, f"Pushed {result.path}", result.error_message)


@sync.command("pull")
@file_options
@click.pass_context
def pull_cmd(
    ctx: click.Context,
    file_type: FileType,
    username: str | None,
    user_id: int | None,
    year: int | None,
    month: int | None,
) -> None:
    """Copy the network FILE_TYPE file over its local copy."""
    with open_worksync(ctx.obj.get("config_path")) as app:
        try:
            result = app.data.pull(file_type, **_file_kwargs(username, user_id, year, month))
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    _report(result.success, f"Pulled {result.path}", result.error_message)


@sync.command("auto")
@file_options
@click.pass_context
def auto_cmd(
    ctx: click.Context,
    file_type: FileType,
    username: str | None,
    user_id: int | None,
    year: int | None,
    month: int | None,
) -> None:
    """Reconcile both copies of FILE_TYPE; the newer one wins."""
    with open_worksync(ctx.obj.get("config_path")) as app:
        try:
            outcome = app.data.sync(file_type, **_file_kwargs(username, user_id, year, month))
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    _report(
        outcome.success,
        f"Sync complete ({outcome.direction.value})",
        outcome.result.error_message,
    )
