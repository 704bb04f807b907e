"""Local record operations used by the app (and the CLI).

Every function opens its own write or read scope on the :class:`LocalStore`.
User-facing writes go through ordinary scopes, so the store's flush hook
stamps ``updated_at`` and sets ``dirty`` on each touched book or transaction;
nothing here manages sync flags by hand except :func:`reset_sync_state`.

Deletes are soft: rows are tombstoned (``deleted=True``) and stay in the
store so the deletion itself can be pushed.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from ledger_db.client import LocalStore
from ledger_db.models.local import Book, Transaction, UserInitialization, UserPreference
from ledger_db.types import utc_now
from sqlalchemy import func, select, update

from .logging_setup import get_logger
from .models import (
    TRANSACTION_KINDS,
    BookRecord,
    RecordKind,
    TransactionRecord,
    TransactionSummary,
    orm_model,
)

DEFAULT_BOOK_NAME = "Buku Utama"
SELECTED_BOOK_KEY = "selected_book_id"
AUTO_SYNC_KEY = "auto_sync"

_UNSET: Any = object()

_logger = get_logger("ledger_sync.records")


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValueError("book name must not be empty")
    return cleaned


def _clean_kind(kind: str) -> str:
    k = (kind or "").strip().lower()
    if k not in TRANSACTION_KINDS:
        raise ValueError(f"transaction kind must be 'income' or 'expense', got {kind!r}")
    return k


def _clean_amount(amount: Decimal | int | float | str) -> Decimal:
    try:
        d = Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"invalid amount: {amount!r}") from exc
    if not d.is_finite() or d < 0:
        raise ValueError(f"amount must be a non-negative number, got {amount!r}")
    return d


def _opt_text(v: str | None) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s if s else None


def _live_book(session: Any, book_id: int) -> Book:
    book = session.get(Book, book_id)
    if book is None or book.deleted:
        raise LookupError(f"book {book_id} not found")
    return book


# ---------------------------------------------------------------------------
# Books
# ---------------------------------------------------------------------------


def create_book(store: LocalStore, user_id: str, name: str) -> BookRecord:
    book = Book(name=_clean_name(name))
    with store.write(user_id) as session:
        session.add(book)
        session.flush()
        record = BookRecord.from_row(book)
    _logger.debug("Created book %s (%r)", record.local_id, record.name)
    return record


def get_book(store: LocalStore, user_id: str, book_id: int) -> BookRecord | None:
    """Return the book (tombstoned or not) or ``None``."""

    with store.session(user_id) as session:
        row = session.get(Book, book_id)
        return BookRecord.from_row(row) if row is not None else None


def list_books(store: LocalStore, user_id: str) -> list[BookRecord]:
    with store.session(user_id) as session:
        rows = session.scalars(
            select(Book).where(Book.deleted.is_(False)).order_by(Book.created_at, Book.id)
        )
        return [BookRecord.from_row(r) for r in rows]


def rename_book(store: LocalStore, user_id: str, book_id: int, name: str) -> BookRecord:
    cleaned = _clean_name(name)
    with store.write(user_id) as session:
        book = _live_book(session, book_id)
        book.name = cleaned
        session.flush()
        return BookRecord.from_row(book)


def delete_book(store: LocalStore, user_id: str, book_id: int) -> int:
    """Tombstone a book and every transaction in it.

    Returns the number of transactions newly tombstoned. Deleting an already
    deleted book is a no-op.
    """

    with store.write(user_id) as session:
        book = session.get(Book, book_id)
        if book is None:
            raise LookupError(f"book {book_id} not found")
        if book.deleted:
            return 0
        book.deleted = True
        cascaded = 0
        for tx in session.scalars(select(Transaction).where(Transaction.book_id == book_id)):
            if not tx.deleted:
                tx.deleted = True
                cascaded += 1
    _logger.info("Soft-deleted book %s and %d transaction(s)", book_id, cascaded)
    return cascaded


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def add_transaction(
    store: LocalStore,
    user_id: str,
    book_id: int,
    *,
    kind: str,
    amount: Decimal | int | float | str,
    category: str | None = None,
    note: str | None = None,
) -> TransactionRecord:
    tx = Transaction(
        book_id=book_id,
        kind=_clean_kind(kind),
        amount=_clean_amount(amount),
        category=_opt_text(category),
        note=_opt_text(note),
    )
    with store.write(user_id) as session:
        _live_book(session, book_id)
        session.add(tx)
        session.flush()
        return TransactionRecord.from_row(tx)


def get_transaction(
    store: LocalStore, user_id: str, transaction_id: int
) -> TransactionRecord | None:
    with store.session(user_id) as session:
        row = session.get(Transaction, transaction_id)
        return TransactionRecord.from_row(row) if row is not None else None


def update_transaction(
    store: LocalStore,
    user_id: str,
    transaction_id: int,
    *,
    kind: str = _UNSET,
    amount: Decimal | int | float | str = _UNSET,
    category: str | None = _UNSET,
    note: str | None = _UNSET,
) -> TransactionRecord:
    """Partially update a live transaction; omitted fields keep their values."""

    with store.write(user_id) as session:
        tx = session.get(Transaction, transaction_id)
        if tx is None or tx.deleted:
            raise LookupError(f"transaction {transaction_id} not found")
        if kind is not _UNSET:
            tx.kind = _clean_kind(kind)
        if amount is not _UNSET:
            tx.amount = _clean_amount(amount)
        if category is not _UNSET:
            tx.category = _opt_text(category)
        if note is not _UNSET:
            tx.note = _opt_text(note)
        session.flush()
        return TransactionRecord.from_row(tx)


def delete_transaction(store: LocalStore, user_id: str, transaction_id: int) -> None:
    with store.write(user_id) as session:
        tx = session.get(Transaction, transaction_id)
        if tx is None:
            raise LookupError(f"transaction {transaction_id} not found")
        tx.deleted = True


def list_transactions(
    store: LocalStore, user_id: str, book_id: int
) -> list[TransactionRecord]:
    """Live transactions of a book, newest first."""

    with store.session(user_id) as session:
        rows = session.scalars(
            select(Transaction)
            .where(Transaction.book_id == book_id, Transaction.deleted.is_(False))
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        )
        return [TransactionRecord.from_row(r) for r in rows]


def transaction_summary(store: LocalStore, user_id: str, book_id: int) -> TransactionSummary:
    # Summed as Decimal here; SQL SUM over REAL storage would add float error.
    with store.session(user_id) as session:
        rows = session.execute(
            select(Transaction.kind, Transaction.amount).where(
                Transaction.book_id == book_id, Transaction.deleted.is_(False)
            )
        ).all()
    totals = {"income": Decimal(0), "expense": Decimal(0)}
    for kind, amount in rows:
        totals[kind] += amount
    return TransactionSummary(income=totals["income"], expense=totals["expense"])


def transaction_count(store: LocalStore, user_id: str, book_id: int) -> int:
    with store.session(user_id) as session:
        return session.scalar(
            select(func.count())
            .select_from(Transaction)
            .where(Transaction.book_id == book_id, Transaction.deleted.is_(False))
        ) or 0


# ---------------------------------------------------------------------------
# Preferences and per-user initialization
# ---------------------------------------------------------------------------


def get_preference(store: LocalStore, user_id: str, key: str) -> str | None:
    with store.session(user_id) as session:
        return session.scalar(select(UserPreference.value).where(UserPreference.key == key))


def set_preference(store: LocalStore, user_id: str, key: str, value: str) -> None:
    now = utc_now()
    with store.write(user_id) as session:
        pref = session.scalar(select(UserPreference).where(UserPreference.key == key))
        if pref is None:
            session.add(UserPreference(key=key, value=value, created_at=now, updated_at=now))
        else:
            pref.value = value
            pref.updated_at = now


def get_selected_book_id(store: LocalStore, user_id: str) -> int | None:
    raw = get_preference(store, user_id, SELECTED_BOOK_KEY)
    try:
        return int(raw) if raw else None
    except ValueError:
        _logger.warning("Ignoring malformed %s preference: %r", SELECTED_BOOK_KEY, raw)
        return None


def set_selected_book_id(store: LocalStore, user_id: str, book_id: int) -> None:
    set_preference(store, user_id, SELECTED_BOOK_KEY, str(book_id))


def is_user_initialized(store: LocalStore, user_id: str) -> bool:
    with store.session(user_id) as session:
        return (
            session.scalar(
                select(UserInitialization.id).where(UserInitialization.user_id == user_id)
            )
            is not None
        )


def mark_user_initialized(store: LocalStore, user_id: str) -> None:
    with store.write(user_id) as session:
        exists = session.scalar(
            select(UserInitialization.id).where(UserInitialization.user_id == user_id)
        )
        if exists is None:
            session.add(UserInitialization(user_id=user_id, initialized_at=utc_now()))


def initialize_default_book(
    store: LocalStore, user_id: str, name: str = DEFAULT_BOOK_NAME
) -> BookRecord | None:
    """Create the user's first book once; later calls return the oldest book."""

    if is_user_initialized(store, user_id):
        books = list_books(store, user_id)
        return books[0] if books else None

    books = list_books(store, user_id)
    if books:
        book = books[0]
    else:
        book = create_book(store, user_id, name)
        _logger.info("Created default book %r for user %s", book.name, user_id)
    mark_user_initialized(store, user_id)
    return book


def reset_sync_state(store: LocalStore, user_id: str, kind: RecordKind | None = None) -> int:
    """Mark every record (of ``kind``, or of both kinds) dirty for a full re-push.

    Remote ids are kept, so the re-push is an upsert of the same remote rows.
    Returns the number of records touched.
    """

    kinds = [kind] if kind is not None else list(RecordKind)
    touched = 0
    with store.write(user_id, sync=True) as session:
        for k in kinds:
            model = orm_model(k)
            result = session.execute(update(model).values(dirty=True))
            touched += result.rowcount or 0
    _logger.info("Reset sync state for %d record(s)", touched)
    return touched


__all__ = [
    "AUTO_SYNC_KEY",
    "DEFAULT_BOOK_NAME",
    "SELECTED_BOOK_KEY",
    "add_transaction",
    "create_book",
    "delete_book",
    "delete_transaction",
    "get_book",
    "get_preference",
    "get_selected_book_id",
    "get_transaction",
    "initialize_default_book",
    "is_user_initialized",
    "list_books",
    "list_transactions",
    "mark_user_initialized",
    "rename_book",
    "reset_sync_state",
    "set_preference",
    "set_selected_book_id",
    "transaction_count",
    "transaction_summary",
    "update_transaction",
]
