"""Escapebook CLI — Typer app for board moderation and login lockouts."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from escapebook import __version__
from escapebook.config import DEFAULT_PAGE_LIMIT, load_settings
from escapebook.exceptions import EscapebookError
from escapebook.identity import secrets_match
from escapebook.ledger import CommentLedger
from escapebook.models import ListOrder
from escapebook.store import SQLiteKeyValueStore
from escapebook.throttle import LoginThrottle

console = Console()
app = typer.Typer(
    name="escapebook",
    help="Escapebook — guestbook moderation and login lockout tools",
    no_args_is_help=True,
)

# --- Sub-apps ---
comments_app = typer.Typer(help="Read and moderate the comment board")
login_app = typer.Typer(help="Inspect and clear login lockouts")
app.add_typer(comments_app, name="comments")
app.add_typer(login_app, name="login")


def _get_store(db: Optional[Path] = None) -> SQLiteKeyValueStore:
    return SQLiteKeyValueStore(db_path=db or load_settings().db_path)


# --- Version ---

def _version_callback(value: bool):
    if value:
        console.print(f"escapebook {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(False, "--version", "-v", callback=_version_callback, is_eager=True),
):
    pass


# --- Comment Commands ---

@comments_app.command("list")
def comments_list(
    page: int = typer.Option(1, "--page", help="Page number (clamped)"),
    limit: int = typer.Option(DEFAULT_PAGE_LIMIT, "--limit", help="Comments per page, 1-50"),
    newest: bool = typer.Option(False, "--newest", help="Newest comments first"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Show one page of the board."""
    store = _get_store(db)
    ledger = CommentLedger.from_settings(store, load_settings())
    result = ledger.list_comments(
        page=page, limit=limit, order=ListOrder.NEWEST if newest else ListOrder.OLDEST,
    )
    if result.total == 0:
        console.print("No comments yet.")
        store.close()
        return

    table = Table(title=f"Comments — page {result.page}/{result.pages} ({result.total} total)")
    table.add_column("ID")
    table.add_column("Author")
    table.add_column("Posted")
    table.add_column("Text")
    for c in result.items:
        table.add_row(
            str(c.id),
            c.author_label,
            c.created_at.strftime("%Y-%m-%d %H:%M"),
            Text(c.text),
        )
    console.print(table)
    store.close()


@comments_app.command("post")
def comments_post(
    text: str = typer.Argument(..., help="Comment text"),
    admin_secret: str = typer.Option(
        ..., "--admin-secret", envvar="ESCAPEBOOK_ADMIN_SECRET", help="Administrator secret",
    ),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Post as the administrator (no one-comment limit)."""
    settings = load_settings()
    if not secrets_match(admin_secret, settings.admin_secret):
        console.print("[red]Administrator secret does not match ESCAPEBOOK_ADMIN_SECRET[/red]")
        raise typer.Exit(1)
    store = _get_store(db)
    ledger = CommentLedger.from_settings(store, settings)
    try:
        comment = ledger.submit_comment(None, text, is_privileged=True)
    except EscapebookError as e:
        console.print(f"[red]{e}[/red]")
        store.close()
        raise typer.Exit(1)
    console.print(f"[green]Posted:[/green] #{comment.id} as {comment.author_label}")
    store.close()


@comments_app.command("delete")
def comments_delete(
    comment_id: str = typer.Argument(..., help="Comment id to delete"),
    admin_secret: str = typer.Option(
        ..., "--admin-secret", envvar="ESCAPEBOOK_ADMIN_SECRET", help="Administrator secret",
    ),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Delete a comment and renumber the board."""
    store = _get_store(db)
    ledger = CommentLedger.from_settings(store, load_settings())
    try:
        result = ledger.delete_comment(admin_secret, comment_id)
    except EscapebookError as e:
        console.print(f"[red]{e}[/red]")
        store.close()
        raise typer.Exit(1)
    console.print(f"[green]Deleted:[/green] #{result.deleted_id}  ({result.remaining} remaining)")
    if result.released_identity:
        console.print("  Author may post again.")
    store.close()


# --- Login Commands ---

@login_app.command("status")
def login_status(
    address: str = typer.Argument(..., help="Client IP address"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Show failed attempts and lockout for a client address."""
    store = _get_store(db)
    throttle = LoginThrottle.from_settings(store, load_settings())
    record = throttle.status(address)
    now = datetime.now(timezone.utc)
    console.print(f"Failed attempts: {record.count}")
    if record.is_locked(now):
        console.print(f"[red]Locked until {record.lockout_until.isoformat()}[/red]")
    else:
        console.print("Not locked")
    store.close()


@login_app.command("unlock")
def login_unlock(
    address: str = typer.Argument(..., help="Client IP address"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Clear failed attempts and any lockout for a client address."""
    store = _get_store(db)
    throttle = LoginThrottle.from_settings(store, load_settings())
    throttle.reset(address)
    console.print(f"[green]Unlocked:[/green] {address}")
    store.close()


# --- Maintenance ---

@app.command("purge")
def purge(
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Remove expired keys from the store."""
    store = _get_store(db)
    removed = store.purge_expired()
    console.print(f"Purged {removed} expired keys")
    store.close()
