"""CLI commands for pairguard."""

from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pairguard import __version__
from pairguard.access.approval import approve_pairing
from pairguard.auth.allowlist import AllowListStore
from pairguard.auth.pairing import PairingStore
from pairguard.config.loader import load_config
from pairguard.config.schema import Config
from pairguard.errors import (
    InvalidIdentifierError,
    PairingExpiredError,
    PairingNotFoundError,
    StoreError,
)

SUPPORTED_CHANNELS = ("telegram",)

app = typer.Typer(
    name="pairguard",
    help="Pairing and access control for chat-facing agents",
    no_args_is_help=True,
)
pairing_app = typer.Typer(help="Manage pending pairing requests", no_args_is_help=True)
allowlist_app = typer.Typer(help="Manage the allow-list", no_args_is_help=True)
app.add_typer(pairing_app, name="pairing")
app.add_typer(allowlist_app, name="allowlist")

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"pairguard v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.json"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show log output"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True,
    ),
):
    """pairguard - pairing and access control."""
    if verbose:
        logger.enable("pairguard")
    else:
        logger.disable("pairguard")
    try:
        ctx.obj = load_config(config_path)
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def _config(ctx: typer.Context) -> Config:
    return ctx.obj if isinstance(ctx.obj, Config) else load_config()


def _pairing_store(config: Config) -> PairingStore:
    storage = config.storage
    return PairingStore(
        storage.pairing_path,
        ttl_ms=storage.pairing_ttl_seconds * 1000,
        max_pending_per_chat=storage.max_pending_per_chat,
        lock_timeout=storage.lock_timeout_seconds,
        lock_retry_delay=storage.lock_retry_delay_seconds,
    )


def _allowlist_store(config: Config) -> AllowListStore:
    storage = config.storage
    return AllowListStore(
        storage.allowlist_path,
        lock_timeout=storage.lock_timeout_seconds,
        lock_retry_delay=storage.lock_retry_delay_seconds,
    )


def _check_channel(channel: str) -> str:
    normalized = channel.strip().lower()
    if normalized not in SUPPORTED_CHANNELS:
        console.print(
            f"[red]Unsupported channel \"{channel}\". "
            f"Supported channels: {', '.join(SUPPORTED_CHANNELS)}[/red]"
        )
        raise typer.Exit(1)
    return normalized


def _format_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _fail_pairing(err: Exception, code: str, channel: str) -> None:
    if isinstance(err, PairingNotFoundError):
        console.print(
            f"[red]Pairing code {code.upper()} was not found.[/red] "
            f"Run: pairguard pairing list {channel}"
        )
    elif isinstance(err, PairingExpiredError):
        console.print(
            f"[red]Pairing code {err.request.code} expired on "
            f"{_format_ms(err.request.expires_at)}.[/red] Ask the user to request a new code."
        )
    else:
        console.print(f"[red]{escape(str(err))}[/red]")
    raise typer.Exit(1)


# ============================================================================
# Pairing Commands
# ============================================================================


@pairing_app.command("list")
def pairing_list(
    ctx: typer.Context,
    channel: str = typer.Argument("telegram", help="Channel name"),
):
    """List pending pairing requests."""
    _check_channel(channel)
    try:
        pending = _pairing_store(_config(ctx)).list_pending()
    except StoreError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    if not pending:
        console.print("No pending pairing requests.")
        return

    table = Table(title="Pending pairing requests")
    table.add_column("Code", style="cyan", no_wrap=True)
    table.add_column("User", no_wrap=True)
    table.add_column("Username")
    table.add_column("Chat ID", no_wrap=True)
    table.add_column("Expires")

    for entry in pending:
        table.add_row(
            entry.code,
            entry.user_id,
            f"@{entry.username}" if entry.username else "-",
            entry.chat_id,
            _format_ms(entry.expires_at),
        )

    console.print(table)


@pairing_app.command("approve")
def pairing_approve(
    ctx: typer.Context,
    channel: str = typer.Argument(..., help="Channel name"),
    code: str = typer.Argument(..., help="Pairing code"),
):
    """Approve a pairing code and allow-list the sender."""
    channel = _check_channel(channel)
    config = _config(ctx)
    try:
        request = approve_pairing(code, _pairing_store(config), _allowlist_store(config))
    except (PairingNotFoundError, PairingExpiredError, StoreError, InvalidIdentifierError) as e:
        _fail_pairing(e, code, channel)
        return

    label = f"@{request.username}" if request.username else request.user_id
    console.print(
        f"[green]✓[/green] Approved {channel} user {label} "
        f"(id {request.user_id}). Chat ID: {request.chat_id}."
    )


@pairing_app.command("reject")
def pairing_reject(
    ctx: typer.Context,
    channel: str = typer.Argument(..., help="Channel name"),
    code: str = typer.Argument(..., help="Pairing code"),
):
    """Reject a pending pairing request."""
    channel = _check_channel(channel)
    try:
        _pairing_store(_config(ctx)).reject(code)
    except (PairingNotFoundError, PairingExpiredError, StoreError) as e:
        _fail_pairing(e, code, channel)
        return

    console.print(f"[green]✓[/green] Rejected {channel} pairing request {code.strip().upper()}.")


# ============================================================================
# Allow-list Commands
# ============================================================================


@allowlist_app.command("list")
def allowlist_list(
    ctx: typer.Context,
    chats: bool = typer.Option(False, "--chats", help="Show allowed chats instead of users"),
):
    """Show allow-listed users or chats."""
    try:
        entries = _allowlist_store(_config(ctx)).entries(chat=chats)
    except StoreError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    if not entries:
        console.print("Allow-list is empty.")
        return

    table = Table(title="Allowed chats" if chats else "Allowed users")
    table.add_column("Type", style="cyan")
    table.add_column("Value")
    for token in entries:
        table.add_row(token.kind.value, token.value)
    console.print(table)


@allowlist_app.command("add")
def allowlist_add(
    ctx: typer.Context,
    identifier: str = typer.Argument(..., help="User id, @username, or *"),
    chat: bool = typer.Option(False, "--chat", help="Add a chat instead of a user"),
):
    """Add a user or chat to the allow-list."""
    try:
        added = _allowlist_store(_config(ctx)).add(identifier, chat=chat)
    except (InvalidIdentifierError, StoreError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    if added:
        console.print(f"[green]✓[/green] Added {escape(identifier)}")
    else:
        console.print(f"{escape(identifier)} is already allowed")


@allowlist_app.command("remove")
def allowlist_remove(
    ctx: typer.Context,
    identifier: str = typer.Argument(..., help="User id, @username, or *"),
    chat: bool = typer.Option(False, "--chat", help="Remove a chat instead of a user"),
):
    """Remove a user or chat from the allow-list."""
    try:
        removed = _allowlist_store(_config(ctx)).remove(identifier, chat=chat)
    except (InvalidIdentifierError, StoreError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    if removed:
        console.print(f"[green]✓[/green] Removed {escape(identifier)}")
    else:
        console.print(f"[yellow]{escape(identifier)} was not in the allow-list[/yellow]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
