"""CLI for the ``ledger_sync`` package.

A Typer console interface over the local record store and the sync engine.
Settings come from the environment (see :mod:`ledger_sync.config`); a local
``.env`` is loaded first without overriding variables that are already set.
Errors are reported on stderr with a non-zero exit code.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from ledger_db.client import LocalStore
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings, build_gateway
from .cursors import read_cursor, read_push_marker
from .engine import SyncEngine, SyncSetupError
from .gateway import GatewayError
from .logging_setup import configure_logging, parse_level
from .models import RecordKind
from .status import SyncCoordinator

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="ledger-sync",
    no_args_is_help=True,
    add_completion=False,
    help="Offline-first ledger store with pull/resolve/push sync to a shared remote.",
)

UserOption = Annotated[
    str,
    typer.Option("--user", "-u", envvar="LEDGER_USER_ID", help="User whose ledger to use."),
]


def _fail(message: str) -> typer.Exit:
    err_console.print(f"[red]Error:[/red] {message}")
    return typer.Exit(1)


def _open_store(user: str) -> tuple[Settings, LocalStore]:
    try:
        settings = Settings.from_env()
    except ValueError as e:
        raise _fail(str(e)) from e
    store = LocalStore(settings.data_dir)
    try:
        store.open(user)
    except (ValueError, SQLAlchemyError, OSError) as e:
        raise _fail(f"cannot open local store: {e}") from e
    return settings, store


@app.command("init")
def init_cmd(user: UserOption) -> None:
    """Create the user's default book on first use."""

    from .records import initialize_default_book

    settings, store = _open_store(user)
    try:
        book = initialize_default_book(store, user, settings.default_book_name)
    finally:
        store.close()
    if book is None:
        console.print("Already initialized; no books left.")
        return
    console.print(f"Default book {book.local_id}: {book.name}")


@app.command("sync")
def sync_cmd(user: UserOption) -> None:
    """Run one pull → resolve → push cycle."""

    settings, store = _open_store(user)
    try:
        gateway = build_gateway(settings)
        coordinator = SyncCoordinator(SyncEngine(store), gateway)
        with console.status("Syncing..."):
            report = coordinator.sync(user)
    except (SyncSetupError, GatewayError, SQLAlchemyError) as e:
        raise _fail(f"sync failed: {e}") from e
    finally:
        store.close()

    if report is None:
        console.print("[yellow]A sync is already running.[/yellow]")
        return
    pull, push = report.pull, report.push
    console.print(
        f"[green]Sync complete.[/green] Pulled {pull.books_count} book(s), "
        f"{pull.transactions_count} transaction(s); "
        f"{len(pull.conflicts)} conflict(s) resolved remote-wins."
    )
    console.print(
        f"Pushed {push.pushed[RecordKind.BOOK]} book(s), "
        f"{push.pushed[RecordKind.TRANSACTION]} transaction(s); "
        f"{push.skipped} waiting, {push.failed} failed."
    )
    if report.unresolved:
        console.print(f"[yellow]{len(report.unresolved)} conflict(s) left for next sync.[/yellow]")


@app.command("status")
def status_cmd(user: UserOption) -> None:
    """Show records waiting to be pushed and the sync cursors."""

    _settings, store = _open_store(user)
    try:
        counts = SyncCoordinator(SyncEngine(store), None).dirty_count(user)
        table = Table(title=f"Sync status for {user}")
        table.add_column("Collection")
        table.add_column("Needs push", justify="right")
        table.add_column("Pulled up to")
        table.add_column("Last push")
        for kind, pending in (
            (RecordKind.BOOK, counts.books),
            (RecordKind.TRANSACTION, counts.transactions),
        ):
            pushed_at = read_push_marker(store, user, kind)
            table.add_row(
                kind.collection,
                str(pending),
                read_cursor(store, user, kind).isoformat(),
                pushed_at.isoformat() if pushed_at else "never",
            )
    finally:
        store.close()
    console.print(table)
    console.print(f"Total needing push: {counts.total}")


@app.command("books")
def books_cmd(user: UserOption) -> None:
    """List live books."""

    from .records import list_books, transaction_summary

    _settings, store = _open_store(user)
    try:
        table = Table(title="Books")
        table.add_column("ID", justify="right")
        table.add_column("Name")
        table.add_column("Balance", justify="right")
        table.add_column("Synced")
        for book in list_books(store, user):
            summary = transaction_summary(store, user, book.local_id)
            table.add_row(
                str(book.local_id),
                book.name,
                f"{summary.balance:,}",
                "no" if book.dirty or not book.remote_id else "yes",
            )
    finally:
        store.close()
    console.print(table)


@app.command("add-book")
def add_book_cmd(
    name: Annotated[str, typer.Argument(help="Display name of the new book.")],
    user: UserOption,
) -> None:
    """Create a book locally (pushed on the next sync)."""

    from .records import create_book

    _settings, store = _open_store(user)
    try:
        book = create_book(store, user, name)
    except ValueError as e:
        raise _fail(str(e)) from e
    finally:
        store.close()
    console.print(f"Created book {book.local_id}: {book.name}")


@app.command("add-transaction")
def add_transaction_cmd(
    user: UserOption,
    book_id: Annotated[int, typer.Option("--book-id", help="Local id of the book.")],
    kind: Annotated[str, typer.Option("--kind", help="income or expense")],
    amount: Annotated[str, typer.Option("--amount", help="Non-negative amount.")],
    category: Annotated[str | None, typer.Option(help="Optional category label.")] = None,
    note: Annotated[str | None, typer.Option(help="Optional note.")] = None,
) -> None:
    """Record an income or expense in a book."""

    from .records import add_transaction

    _settings, store = _open_store(user)
    try:
        tx = add_transaction(
            store, user, book_id, kind=kind, amount=amount, category=category, note=note
        )
    except (ValueError, LookupError) as e:
        raise _fail(str(e)) from e
    finally:
        store.close()
    console.print(f"Added {tx.kind} {tx.amount} to book {tx.book_local_id} (id {tx.local_id})")


@app.command("delete-book")
def delete_book_cmd(
    book_id: Annotated[int, typer.Argument(help="Local id of the book.")],
    user: UserOption,
) -> None:
    """Soft-delete a book and all of its transactions."""

    from .records import delete_book

    _settings, store = _open_store(user)
    try:
        cascaded = delete_book(store, user, book_id)
    except LookupError as e:
        raise _fail(str(e)) from e
    finally:
        store.close()
    console.print(f"Deleted book {book_id} ({cascaded} transaction(s)).")


@app.command("reset-sync")
def reset_sync_cmd(
    user: UserOption,
    kind: Annotated[
        RecordKind | None, typer.Option("--kind", help="Only reset this collection.")
    ] = None,
) -> None:
    """Mark records dirty so the next sync pushes them again."""

    from .records import reset_sync_state

    _settings, store = _open_store(user)
    try:
        touched = reset_sync_state(store, user, kind)
    finally:
        store.close()
    console.print(f"Marked {touched} record(s) for re-push.")


@app.callback()
def _root(
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level", help="DEBUG, INFO, WARNING or ERROR (default: LEDGER_SYNC_LOG_LEVEL)."
        ),
    ] = None,
) -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    if log_level is not None and parse_level(log_level) is None:
        raise typer.BadParameter(f"unknown log level {log_level!r}", param_hint="--log-level")
    configure_logging(log_level)


if __name__ == "__main__":  # pragma: no cover
    app()
