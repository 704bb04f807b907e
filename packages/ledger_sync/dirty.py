"""Dirty tracking: which local records still need a push.

A record needs a push when its ``dirty`` flag is set or when it has never
received a remote id. The flag itself is set by the store's write path (see
``ledger_db.client``); this module only classifies records and clears the
flag after a confirmed push.
"""

from __future__ import annotations

from datetime import datetime

from ledger_db.client import LocalStore
from ledger_db.models.local import Book, Transaction
from sqlalchemy import ColumnElement, func, or_, select

from .logging_setup import get_logger
from .models import (
    BookRecord,
    DirtyCount,
    LocalRecord,
    RecordKind,
    TransactionRecord,
    orm_model,
)

_logger = get_logger("ledger_sync.dirty")


def _needs_push(model: type[Book] | type[Transaction]) -> ColumnElement[bool]:
    return or_(model.dirty.is_(True), model.remote_id.is_(None), model.remote_id == "")


def snapshot(row: Book | Transaction) -> LocalRecord:
    if isinstance(row, Book):
        return BookRecord.from_row(row)
    return TransactionRecord.from_row(row)


def list_dirty(store: LocalStore, user_id: str, kind: RecordKind) -> list[LocalRecord]:
    """Records of ``kind`` that are dirty or have no remote id, oldest first."""

    model = orm_model(kind)
    with store.session(user_id) as session:
        rows = session.scalars(select(model).where(_needs_push(model)).order_by(model.id))
        return [snapshot(r) for r in rows]


def list_unsynced(store: LocalStore, user_id: str, kind: RecordKind) -> list[LocalRecord]:
    """Records of ``kind`` that have never been assigned a remote id."""

    model = orm_model(kind)
    with store.session(user_id) as session:
        rows = session.scalars(
            select(model)
            .where(or_(model.remote_id.is_(None), model.remote_id == ""))
            .order_by(model.id)
        )
        return [snapshot(r) for r in rows]


def dirty_count(store: LocalStore, user_id: str) -> DirtyCount:
    counts: dict[RecordKind, int] = {}
    with store.session(user_id) as session:
        for kind in RecordKind:
            model = orm_model(kind)
            counts[kind] = session.scalar(
                select(func.count()).select_from(model).where(_needs_push(model))
            ) or 0
    return DirtyCount(books=counts[RecordKind.BOOK], transactions=counts[RecordKind.TRANSACTION])


def mark_clean(
    store: LocalStore,
    user_id: str,
    kind: RecordKind,
    local_id: int,
    *,
    remote_id: str,
    synced_at: datetime,
    expected_updated_at: datetime,
) -> bool:
    """Record a confirmed push of ``local_id`` under ``remote_id``.

    The remote id is stored if the record had none and ``last_synced_at``
    always moves to ``synced_at``, the ``updated_at`` the remote copy now
    carries. The dirty flag is cleared
    (and ``updated_at`` moved to ``synced_at``) only when ``updated_at`` still
    equals ``expected_updated_at``, the value captured when the push started;
    a record edited while the push was in flight stays dirty so the edit goes
    out on the next cycle. Returns ``True`` when the record is now clean.
    """

    model = orm_model(kind)
    with store.write(user_id, sync=True) as session:
        row = session.get(model, local_id)
        if row is None:
            raise LookupError(f"{kind.value} {local_id} not found")

        if not row.remote_id:
            row.remote_id = remote_id
            row.pending_remote_id = None
        elif row.remote_id != remote_id:
            raise ValueError(
                f"{kind.value} {local_id} is bound to {row.remote_id}, not {remote_id}"
            )

        row.last_synced_at = synced_at
        if row.updated_at != expected_updated_at:
            _logger.info(
                "%s %s changed during push; leaving it dirty", kind.value, local_id
            )
            return False

        row.dirty = False
        row.updated_at = synced_at
        return True


__all__ = ["dirty_count", "list_dirty", "list_unsynced", "mark_clean", "snapshot"]
