"""ORM models for the on-device record store (one SQLite file per user).

Books and transactions share the sync bookkeeping columns declared on
:class:`SyncedRecord`. ``remote_id`` is assigned at most once and never
changes afterwards; ``pending_remote_id`` holds an identity reserved for a
first push that has not been acknowledged yet, so a retried push reuses it.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..types import Amount, IsoDateTime

SCHEMA_VERSION: int = 1


class LocalBase(DeclarativeBase):
    pass


class SyncedRecord:
    """Columns shared by every record kind that takes part in sync."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    remote_id: Mapped[str | None] = mapped_column(String(36), unique=True, nullable=True)
    pending_remote_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(IsoDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(IsoDateTime, nullable=False)
    last_synced_at: Mapped[datetime | None] = mapped_column(IsoDateTime, nullable=True)
    dirty: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("1"))
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("0"))


# ---------------------------
# Core: books
# ---------------------------


class Book(SyncedRecord, LocalBase):
    __tablename__ = "books"

    name: Mapped[str] = mapped_column(Text, nullable=False)


# ---------------------------
# Core: transactions
# ---------------------------


class Transaction(SyncedRecord, LocalBase):
    __tablename__ = "transactions"

    book_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    category: Mapped[str | None] = mapped_column(Text, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("kind in ('income','expense')", name="ck_tx_kind"),
        CheckConstraint("amount >= 0", name="ck_tx_amount_non_negative"),
    )


# ---------------------------
# Bookkeeping tables
# ---------------------------


class UserPreference(LocalBase):
    __tablename__ = "user_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(IsoDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(IsoDateTime, nullable=False)


class UserInitialization(LocalBase):
    __tablename__ = "user_initialization"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    initialized_at: Mapped[datetime] = mapped_column(IsoDateTime, nullable=False)
    default_book_created: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("1")
    )


class DbVersion(LocalBase):
    __tablename__ = "db_version"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(IsoDateTime, nullable=False)

    __table_args__ = (CheckConstraint("id = 1", name="ck_db_version_singleton"),)


__all__ = [
    "SCHEMA_VERSION",
    "Book",
    "DbVersion",
    "LocalBase",
    "SyncedRecord",
    "Transaction",
    "UserInitialization",
    "UserPreference",
]
