# chatledger/cli/main.py
"""
CLI for registering identities, opening chats and reading encrypted message logs.
"""

import os
import json
import sqlite3
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from chatledger.chain.ledger import ChatLedger
from chatledger.core.encoding import b64url_decode, display_content
from chatledger.core.errors import LedgerError
from chatledger.logging_config import setup_logging
from chatledger.storage import SQLiteStorage
from chatledger.verify.verifier import LedgerVerifier

app = typer.Typer(
    name="chatledger",
    help="Identity and encrypted message ledger",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def get_db_path(db_flag: Optional[Path] = None) -> Path:
    """Resolve DB path in this order:
    1. --db flag
    2. CHATLEDGER_DB_PATH environment variable
    3. Default: ~/.chatledger/chatledger.db
    """
    if db_flag:
        path = db_flag.resolve()
    else:
        env_path = os.environ.get("CHATLEDGER_DB_PATH")
        if env_path:
            path = Path(env_path).resolve()
        else:
            path = Path.home() / ".chatledger" / "chatledger.db"

    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _db_from(ctx: typer.Context, db: Optional[Path]) -> Path:
    if db is None and ctx.obj:
        db = ctx.obj.get("db")
    return get_db_path(db)


def open_ledger(ctx: typer.Context, db: Optional[Path]) -> ChatLedger:
    db_path = _db_from(ctx, db)
    try:
        return ChatLedger(SQLiteStorage(db_path))
    except sqlite3.Error as e:
        console.print(f"[red]Failed to open database: {str(e)}[/]")
        console.print("[yellow]The file may be corrupted or not a valid SQLite DB.[/]")
        raise typer.Exit(1)


def open_existing(ctx: typer.Context, db: Optional[Path]) -> ChatLedger:
    """Like open_ledger, but read-only commands refuse to create a new file."""
    db_path = _db_from(ctx, db)
    if not db_path.exists():
        console.print(f"[red]Database file not found: {db_path}[/]")
        console.print("[yellow]To get started:[/]")
        console.print("  • Register a user first: chatledger register <user-id> <public-key>")
        console.print("  • Set env var: export CHATLEDGER_DB_PATH=/path/to/your.db")
        console.print("  • Or use --db: chatledger --db /custom/path.db chats")
        raise typer.Exit(1)
    return open_ledger(ctx, db_path)


def fail(error: Exception) -> None:
    console.print(f"[red]{type(error).__name__}: {str(error)}[/]")
    raise typer.Exit(1)


def _content_bytes(content: str, b64: bool) -> bytes:
    if not b64:
        return content.encode("utf-8")
    try:
        return b64url_decode(content)
    except ValueError as e:
        console.print(f"[red]Content is not valid base64url: {str(e)}[/]")
        raise typer.Exit(1)


@app.callback()
def main(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="Path to SQLite database (overrides CHATLEDGER_DB_PATH env var)",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (overrides CHATLEDGER_LOG_LEVEL env var)",
    ),
):
    """Manage identities, chats and encrypted message logs."""
    setup_logging(log_level)
    ctx.obj = {"db": db}


@app.command()
def register(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User id to register"),
    public_key: str = typer.Argument(..., help="Public key (opaque string)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Register a user id with its public key."""
    with open_ledger(ctx, db) as ledger:
        try:
            ledger.register_user(user_id, public_key)
        except (LedgerError, ValueError) as e:
            fail(e)
    console.print(f"[green]Registered user '{user_id}'[/]")


@app.command()
def pubkey(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User id to look up"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Print the public key registered for a user."""
    with open_existing(ctx, db) as ledger:
        try:
            key = ledger.get_public_key(user_id)
        except (LedgerError, ValueError) as e:
            fail(e)
    console.print(key, markup=False, highlight=False)


@app.command("create-chat")
def create_chat(
    ctx: typer.Context,
    chat_id: str = typer.Argument(..., help="New chat id"),
    participant1: str = typer.Argument(..., help="Creator; authors the initial message"),
    participant2: str = typer.Argument(..., help="Second participant"),
    initial_content: str = typer.Argument(..., help="Initial (already encrypted) message"),
    b64: bool = typer.Option(False, "--b64", help="Content is base64url-encoded bytes"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Open a two-party chat with its first message."""
    payload = _content_bytes(initial_content, b64)
    with open_ledger(ctx, db) as ledger:
        try:
            info = ledger.create_chat(chat_id, participant1, participant2, payload)
        except (LedgerError, ValueError) as e:
            fail(e)
    console.print(f"[green]Created chat '{chat_id}' ({info.participant1} ↔ {info.participant2})[/]")


@app.command()
def send(
    ctx: typer.Context,
    chat_id: str = typer.Argument(..., help="Chat id"),
    content: str = typer.Argument(..., help="Message (already encrypted)"),
    sender: str = typer.Option(..., "--sender", "-s", help="Sending participant"),
    b64: bool = typer.Option(False, "--b64", help="Content is base64url-encoded bytes"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Append a message to a chat."""
    payload = _content_bytes(content, b64)
    with open_existing(ctx, db) as ledger:
        try:
            msg = ledger.send_message(chat_id, payload, sender)
        except (LedgerError, ValueError) as e:
            fail(e)
    console.print(f"[green]Stored message #{msg.sequence_index} in chat '{chat_id}'[/]")


@app.command()
def info(
    ctx: typer.Context,
    chat_id: str = typer.Argument(..., help="Chat id"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Show a chat's participants and message count."""
    with open_existing(ctx, db) as ledger:
        try:
            chat = ledger.get_chat_info(chat_id)
        except (LedgerError, ValueError) as e:
            fail(e)

    table = Table(title=f"Chat {chat_id}")
    table.add_column("Participant 1")
    table.add_column("Participant 2")
    table.add_column("Messages")
    table.add_row(str(chat.participant1), str(chat.participant2), str(chat.message_count))
    console.print(table)


@app.command()
def messages(
    ctx: typer.Context,
    chat_id: str = typer.Argument(..., help="Chat id to display"),
    from_index: Optional[int] = typer.Option(None, "--from", help="First sequence index to show"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of messages to show"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Show messages of a chat: the most recent ones, or from a given index."""
    with open_existing(ctx, db) as ledger:
        try:
            if from_index is None:
                msgs = ledger.log.tail(chat_id, limit)
            else:
                msgs = ledger.get_messages(chat_id, from_index)[:limit]
        except (LedgerError, ValueError) as e:
            fail(e)

    if not msgs:
        console.print(f"[yellow]No messages found for chat '{chat_id}' in that range[/]")
        return

    for msg in msgs:
        text = display_content(msg.encrypted_content)
        console.print(f"[bold cyan]{msg.sequence_index:4d} | {msg.timestamp} | {msg.sender}[/]")
        console.print(f"  {text[:160]}{'...' if len(text) > 160 else ''}", markup=False)
        console.print("  " + "─" * 90)


@app.command()
def chats(
    ctx: typer.Context,
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Only chats this user is part of"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """List chats with participants and message counts."""
    with open_existing(ctx, db) as ledger:
        try:
            if user:
                chat_list = ledger.chats_for(user)
            else:
                chat_list = [ledger.get_chat_info(cid) for cid in ledger.list_chats()]
        except (LedgerError, ValueError) as e:
            fail(e)

    if not chat_list:
        console.print("[yellow]No chats found in database.[/]")
        return

    table = Table(title="Chats")
    table.add_column("Chat ID")
    table.add_column("Participants")
    table.add_column("Messages")
    for chat in chat_list:
        table.add_row(str(chat.chat_id), f"{chat.participant1}, {chat.participant2}", str(chat.message_count))
    console.print(table)


@app.command()
def users(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """List registered users."""
    with open_existing(ctx, db) as ledger:
        rows = [(str(uid), ledger.get_public_key(uid)) for uid in ledger.list_users()]

    if not rows:
        console.print("[yellow]No users registered yet.[/]")
        return

    table = Table(title="Users")
    table.add_column("User ID")
    table.add_column("Public Key")
    for row in rows:
        table.add_row(*row)
    console.print(table)


@app.command()
def verify(
    ctx: typer.Context,
    chat_id: str = typer.Argument(..., help="Chat id to verify"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Verify the integrity of a chat log (dense indices, membership, hash chain)."""
    with open_existing(ctx, db) as ledger:
        result = LedgerVerifier().verify_from_storage(chat_id, ledger.storage)

    if result.is_valid:
        console.print(f"[green]✓ Chat '{chat_id}' is valid[/]")
        console.print(f"  {result.message}")
    else:
        console.print(f"[red]✗ Verification failed for chat '{chat_id}'[/]")
        for failure in result.failures:
            console.print(f"  • [{failure.index}] {failure.category}: {failure.message}", markup=False)
        raise typer.Exit(1)


@app.command()
def export(
    ctx: typer.Context,
    chat_id: str = typer.Argument(..., help="Chat id to export"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: <chat_id>.jsonl)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Export a chat as JSONL (one message per line, content base64url-encoded)."""
    with open_existing(ctx, db) as ledger:
        try:
            msgs = ledger.get_messages(chat_id, 0)
        except (LedgerError, ValueError) as e:
            fail(e)

    out_path = output or Path(f"{chat_id}.jsonl")
    with open(out_path, "w", encoding="utf-8") as f:
        for msg in msgs:
            json.dump(msg.to_dict(), f, separators=(",", ":"))
            f.write("\n")

    console.print(f"[green]Exported {len(msgs)} messages to {out_path}[/]")
    console.print("Format: JSONL — one message per line")


if __name__ == "__main__":
    app()
