"""DB helpers for tests: temporary local stores and a SQLite-backed remote."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path

from ledger_db.client import LocalStore, get_engine
from ledger_db.models.local import Book, Transaction
from ledger_db.models.remote import RemoteBase

USER = "user_alpha"


def make_store(tmp_path: Path, user_id: str = USER) -> LocalStore:
    """Return a store rooted in ``tmp_path`` with ``user_id`` already open."""

    store = LocalStore(tmp_path / "local")
    store.open(user_id)
    return store


def bootstrap_remote_sqlite(db_file: Path) -> str:
    """Create the remote schema in a SQLite file and return its URL.

    A file-backed database is used so every pooled connection sees the same
    state (in-memory SQLite databases are per-connection).
    """

    db_file.parent.mkdir(parents=True, exist_ok=True)
    url = f"sqlite+pysqlite:///{db_file}"
    RemoteBase.metadata.create_all(bind=get_engine(database_url=url))
    return url


def ts(minutes: float = 0, *, base: datetime | None = None) -> datetime:
    """A UTC timestamp ``minutes`` away from ``base`` (default: now)."""

    return (base or datetime.now(UTC)) + timedelta(minutes=minutes)


def seed_book(
    store: LocalStore,
    user_id: str = USER,
    *,
    name: str,
    remote_id: str | None = None,
    updated_at: datetime | None = None,
    dirty: bool = False,
    deleted: bool = False,
    last_synced_at: datetime | None = None,
) -> int:
    """Insert a book exactly as given (no write-path stamping)."""

    when = updated_at or datetime.now(UTC)
    with store.write(user_id, sync=True) as session:
        book = Book(
            name=name,
            remote_id=remote_id,
            created_at=when,
            updated_at=when,
            dirty=dirty,
            deleted=deleted,
            last_synced_at=last_synced_at,
        )
        session.add(book)
        session.flush()
        return book.id


def seed_transaction(
    store: LocalStore,
    user_id: str = USER,
    *,
    book_id: int,
    kind: str = "expense",
    amount: Decimal | int = 0,
    category: str | None = None,
    note: str | None = None,
    remote_id: str | None = None,
    updated_at: datetime | None = None,
    dirty: bool = False,
    deleted: bool = False,
    last_synced_at: datetime | None = None,
) -> int:
    when = updated_at or datetime.now(UTC)
    with store.write(user_id, sync=True) as session:
        tx = Transaction(
            book_id=book_id,
            kind=kind,
            amount=Decimal(amount),
            category=category,
            note=note,
            remote_id=remote_id,
            created_at=when,
            updated_at=when,
            dirty=dirty,
            deleted=deleted,
            last_synced_at=last_synced_at,
        )
        session.add(tx)
        session.flush()
        return tx.id
