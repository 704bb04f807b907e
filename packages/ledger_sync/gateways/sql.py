"""SQLAlchemy-backed gateway over the remote relational schema.

Talks to the tables declared in ``ledger_db.models.remote`` (created by the
Alembic revisions) through the shared engine helpers in ``ledger_db.client``.
PostgreSQL is the production target; SQLite is supported for local runs and
tests. Upserts use the dialect's ``INSERT .. ON CONFLICT (id) DO UPDATE`` and
never take over a row that belongs to another user.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from ledger_db.client import get_engine, session_scope
from ledger_db.models.remote import RemoteBook, RemoteTransaction, UserMetadata
from ledger_db.types import ensure_utc
from sqlalchemy import Table, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from ..gateway import GatewayError
from ..logging_setup import get_logger
from ..models import RecordKind, RemoteBookRow, RemoteRow, RemoteTransactionRow

# Columns an upsert never overwrites.
_IMMUTABLE_COLUMNS = frozenset({"id", "user_id", "created_at"})

_logger = get_logger("ledger_sync.gateways.sql")


def _book_row(obj: RemoteBook) -> RemoteBookRow:
    return RemoteBookRow(
        id=obj.id,
        user_id=obj.user_id,
        name=obj.name,
        created_at=obj.created_at,
        updated_at=obj.updated_at,
        deleted=obj.deleted,
    )


def _transaction_row(obj: RemoteTransaction) -> RemoteTransactionRow:
    return RemoteTransactionRow(
        id=obj.id,
        user_id=obj.user_id,
        book_id=obj.book_id,
        kind=obj.kind,
        amount=obj.amount,
        note=obj.note,
        category=obj.category,
        created_at=obj.created_at,
        updated_at=obj.updated_at,
        deleted=obj.deleted,
    )


def _column_values(row: RemoteRow) -> dict[str, Any]:
    """Row payload keyed by database column name (``type`` for the kind)."""

    values: dict[str, Any] = {
        "id": row.id,
        "user_id": row.user_id,
        "created_at": ensure_utc(row.created_at),
        "updated_at": ensure_utc(row.updated_at),
        "deleted": row.deleted,
    }
    if isinstance(row, RemoteBookRow):
        values["name"] = row.name
    else:
        values.update(
            book_id=row.book_id,
            type=row.kind,
            amount=row.amount,
            note=row.note,
            category=row.category,
        )
    return values


class SqlRemoteGateway:
    """Remote gateway backed by a SQL database reachable through ``database_url``."""

    def __init__(self, database_url: str | None = None) -> None:
        self._database_url = database_url

    def _table(self, kind: RecordKind) -> Table:
        model = RemoteBook if kind is RecordKind.BOOK else RemoteTransaction
        return model.__table__  # type: ignore[return-value]

    def _insert_fn(self) -> Any:
        dialect = get_engine(database_url=self._database_url).dialect.name
        if dialect == "postgresql":
            return pg_insert
        if dialect == "sqlite":
            return sqlite_insert
        raise GatewayError(f"unsupported remote dialect: {dialect}")

    def select_where(
        self, kind: RecordKind, user_id: str, updated_after: datetime
    ) -> Sequence[RemoteRow]:
        after = ensure_utc(updated_after)
        try:
            with session_scope(database_url=self._database_url) as session:
                if kind is RecordKind.BOOK:
                    books = session.scalars(
                        select(RemoteBook)
                        .where(RemoteBook.user_id == user_id, RemoteBook.updated_at > after)
                        .order_by(RemoteBook.updated_at, RemoteBook.id)
                    )
                    return [_book_row(b) for b in books]
                txs = session.scalars(
                    select(RemoteTransaction)
                    .where(
                        RemoteTransaction.user_id == user_id,
                        RemoteTransaction.updated_at > after,
                    )
                    .order_by(RemoteTransaction.updated_at, RemoteTransaction.id)
                )
                return [_transaction_row(t) for t in txs]
        except SQLAlchemyError as exc:
            raise GatewayError(f"select {kind.collection} failed: {exc}") from exc

    def find_book_by_name(self, user_id: str, name: str) -> RemoteBookRow | None:
        try:
            with session_scope(database_url=self._database_url) as session:
                book = session.scalar(
                    select(RemoteBook)
                    .where(
                        RemoteBook.user_id == user_id,
                        RemoteBook.name == name,
                        RemoteBook.deleted.is_(False),
                    )
                    .order_by(RemoteBook.created_at, RemoteBook.id)
                    .limit(1)
                )
                return _book_row(book) if book is not None else None
        except SQLAlchemyError as exc:
            raise GatewayError(f"book lookup failed: {exc}") from exc

    def insert(self, kind: RecordKind, row: RemoteRow) -> None:
        table = self._table(kind)
        try:
            with session_scope(database_url=self._database_url) as session:
                session.execute(table.insert().values(**_column_values(row)))
        except SQLAlchemyError as exc:
            raise GatewayError(f"insert into {kind.collection} failed: {exc}") from exc

    def upsert(self, kind: RecordKind, row: RemoteRow) -> None:
        table = self._table(kind)
        values = _column_values(row)
        insert = self._insert_fn()
        stmt = insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.id],
            set_={k: stmt.excluded[k] for k in values if k not in _IMMUTABLE_COLUMNS},
            where=table.c.user_id == stmt.excluded.user_id,
        )
        try:
            with session_scope(database_url=self._database_url) as session:
                result = session.execute(stmt)
                if result.rowcount == 0:
                    raise GatewayError(
                        f"{kind.collection} row {row.id} belongs to another user", status=409
                    )
        except SQLAlchemyError as exc:
            raise GatewayError(f"upsert into {kind.collection} failed: {exc}") from exc

    def touch_user_metadata(self, user_id: str, last_sync: datetime) -> None:
        table: Table = UserMetadata.__table__  # type: ignore[assignment]
        insert = self._insert_fn()
        stmt = insert(table).values(
            user_id=user_id, initialized=True, last_sync=ensure_utc(last_sync)
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.user_id],
            set_={"last_sync": stmt.excluded.last_sync, "initialized": stmt.excluded.initialized},
        )
        try:
            with session_scope(database_url=self._database_url) as session:
                session.execute(stmt)
        except SQLAlchemyError as exc:
            raise GatewayError(f"user_metadata update failed: {exc}") from exc
        _logger.debug("Recorded last sync for %s at %s", user_id, last_sync.isoformat())


__all__ = ["SqlRemoteGateway"]
