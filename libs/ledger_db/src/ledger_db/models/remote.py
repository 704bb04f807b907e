"""ORM models for the shared remote store.

These mirror the server-side schema created by the Alembic revisions under
``libs/ledger_db/alembic``. Identifiers are engine-generated UUID strings and
every row is scoped by ``user_id``. The transaction kind is stored in a column
named ``type`` to match the REST payloads.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Numeric,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression as sa_expr


class RemoteBase(DeclarativeBase):
    pass


class RemoteBook(RemoteBase):
    __tablename__ = "books"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    # Indexed because every pull filters on it.
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=sa_expr.false())


class RemoteTransaction(RemoteBase):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    book_id: Mapped[str] = mapped_column(
        Text, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column("type", Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=sa_expr.false())

    __table_args__ = (
        CheckConstraint("type in ('income','expense')", name="ck_remote_tx_type"),
    )


class UserMetadata(RemoteBase):
    __tablename__ = "user_metadata"

    user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    initialized: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    last_sync: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )


__all__ = [
    "RemoteBase",
    "RemoteBook",
    "RemoteTransaction",
    "UserMetadata",
]
