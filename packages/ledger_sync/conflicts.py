"""Remote-wins conflict resolution and the shared "apply remote row" helpers.

A conflict is a matched pair whose local copy is strictly newer than the
remote one. Resolution overwrites the local record with the remote snapshot
and clears ``dirty``. Each conflict is applied in its own write scope, so a
failure leaves that record untouched for the next cycle.

A local tombstone is never revived: when the local copy is deleted and the
remote one is not, the remote field values are taken but the record stays
deleted and dirty so the deletion is pushed.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from decimal import Decimal

from ledger_db.client import LocalStore
from ledger_db.models.local import Book, Transaction
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .models import (
    CollectionChanged,
    Conflict,
    RecordKind,
    RemoteBookRow,
    RemoteRow,
    RemoteTransactionRow,
    orm_model,
)
from .notify import ChangeNotifier

_logger = get_logger("ledger_sync.conflicts")


def local_book_id_for(session: Session, remote_book_id: str) -> int | None:
    """Local id of the book bound (or reserved) to ``remote_book_id``."""

    return session.scalar(
        select(Book.id).where(
            or_(Book.remote_id == remote_book_id, Book.pending_remote_id == remote_book_id)
        )
    )


def same_content(
    row: Book | Transaction, remote: RemoteRow, book_local_id: int | None = None
) -> bool:
    """True when ``row`` already holds every mutable value of ``remote``."""

    if bool(row.deleted) != remote.deleted:
        return False
    if isinstance(row, Book) and isinstance(remote, RemoteBookRow):
        return row.name == remote.name
    if isinstance(row, Transaction) and isinstance(remote, RemoteTransactionRow):
        return (
            row.book_id == book_local_id
            and row.kind == remote.kind
            and Decimal(row.amount) == remote.amount
            and row.category == remote.category
            and row.note == remote.note
        )
    return False


def apply_remote(
    row: Book | Transaction, remote: RemoteRow, book_local_id: int | None = None
) -> None:
    """Overwrite ``row`` with ``remote`` inside a sync write scope."""

    if not row.remote_id:
        row.remote_id = remote.id
        row.pending_remote_id = None

    if isinstance(row, Book) and isinstance(remote, RemoteBookRow):
        row.name = remote.name
    elif isinstance(row, Transaction) and isinstance(remote, RemoteTransactionRow):
        if book_local_id is None:
            raise ValueError(f"transaction {remote.id}: owning book is not known locally")
        row.book_id = book_local_id
        row.kind = remote.kind
        row.amount = remote.amount
        row.category = remote.category
        row.note = remote.note
    else:
        raise TypeError(f"cannot apply {type(remote).__name__} to {type(row).__name__}")

    row.updated_at = remote.updated_at
    row.last_synced_at = remote.updated_at
    if row.deleted and not remote.deleted:
        # Tombstones only move forward; push the deletion back out.
        row.dirty = True
    else:
        row.deleted = remote.deleted
        row.dirty = False


def resolve_conflicts(
    store: LocalStore,
    user_id: str,
    conflicts: Iterable[Conflict],
    *,
    notifier: ChangeNotifier | None = None,
) -> list[Conflict]:
    """Apply remote-wins to each conflict; return the ones left unresolved."""

    unresolved: list[Conflict] = []
    applied: Counter[RecordKind] = Counter()

    for conflict in conflicts:
        model = orm_model(conflict.kind)
        try:
            with store.write(user_id, sync=True) as session:
                row = session.get(model, conflict.local_id)
                if row is None:
                    _logger.warning(
                        "Dropping conflict for missing %s %s",
                        conflict.kind.value,
                        conflict.local_id,
                    )
                    continue
                book_local_id = None
                if isinstance(conflict.remote_snapshot, RemoteTransactionRow):
                    book_local_id = local_book_id_for(session, conflict.remote_snapshot.book_id)
                    if book_local_id is None:
                        _logger.warning(
                            "Cannot resolve transaction %s yet: book %s is not known locally",
                            conflict.local_id,
                            conflict.remote_snapshot.book_id,
                        )
                        unresolved.append(conflict)
                        continue
                apply_remote(row, conflict.remote_snapshot, book_local_id)
        except (SQLAlchemyError, ValueError) as exc:
            _logger.error(
                "Failed to resolve conflict for %s %s: %s",
                conflict.kind.value,
                conflict.local_id,
                exc,
            )
            unresolved.append(conflict)
            continue
        applied[conflict.kind] += 1

    if applied:
        _logger.info(
            "Resolved %d conflict(s) remote-wins (%d unresolved)",
            sum(applied.values()),
            len(unresolved),
        )
    if notifier is not None:
        for kind, count in applied.items():
            notifier.publish(
                CollectionChanged(user_id=user_id, kind=kind, reason="resolve", count=count)
            )
    return unresolved


__all__ = ["apply_remote", "local_book_id_for", "resolve_conflicts", "same_content"]
