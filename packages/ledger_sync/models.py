"""Data models and type aliases for ``ledger_sync``.

Local records are exposed to callers as frozen snapshots
(:class:`BookRecord`, :class:`TransactionRecord`) detached from any ORM
session. Remote rows are pydantic models validated at the gateway boundary.
Sync bookkeeping (conflicts, per-phase results, events) uses small frozen
dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Literal

from ledger_db.models.local import Book, Transaction
from ledger_db.types import ensure_utc, parse_timestamp
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class RecordKind(StrEnum):
    """The two synchronized collections, in sync order (books first)."""

    BOOK = "book"
    TRANSACTION = "transaction"

    @property
    def collection(self) -> str:
        return "books" if self is RecordKind.BOOK else "transactions"


SYNC_ORDER: tuple[RecordKind, ...] = (RecordKind.BOOK, RecordKind.TRANSACTION)


def orm_model(kind: RecordKind) -> type[Book] | type[Transaction]:
    return Book if kind is RecordKind.BOOK else Transaction


TransactionKind = Literal["income", "expense"]
TRANSACTION_KINDS: frozenset[str] = frozenset({"income", "expense"})


class SyncPhase(StrEnum):
    IDLE = "idle"
    PULLING = "pulling"
    RESOLVING = "resolving"
    SYNCING = "syncing"
    COMPLETED = "completed"


# ---------------------------------------------------------------------------
# Local record snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BookRecord:
    local_id: int
    remote_id: str | None
    name: str
    created_at: datetime
    updated_at: datetime
    dirty: bool
    deleted: bool
    pending_remote_id: str | None = None
    last_synced_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Book) -> BookRecord:
        return cls(
            local_id=row.id,
            remote_id=row.remote_id,
            name=row.name,
            created_at=row.created_at,
            updated_at=row.updated_at,
            dirty=bool(row.dirty),
            deleted=bool(row.deleted),
            pending_remote_id=row.pending_remote_id,
            last_synced_at=row.last_synced_at,
        )


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    local_id: int
    remote_id: str | None
    book_local_id: int
    kind: str
    amount: Decimal
    category: str | None
    note: str | None
    created_at: datetime
    updated_at: datetime
    dirty: bool
    deleted: bool
    pending_remote_id: str | None = None
    last_synced_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Transaction) -> TransactionRecord:
        return cls(
            local_id=row.id,
            remote_id=row.remote_id,
            book_local_id=row.book_id,
            kind=row.kind,
            amount=Decimal(row.amount),
            category=row.category,
            note=row.note,
            created_at=row.created_at,
            updated_at=row.updated_at,
            dirty=bool(row.dirty),
            deleted=bool(row.deleted),
            pending_remote_id=row.pending_remote_id,
            last_synced_at=row.last_synced_at,
        )


LocalRecord = BookRecord | TransactionRecord


@dataclass(frozen=True, slots=True)
class TransactionSummary:
    income: Decimal
    expense: Decimal

    @property
    def balance(self) -> Decimal:
        return self.income - self.expense


@dataclass(frozen=True, slots=True)
class DirtyCount:
    books: int
    transactions: int

    @property
    def total(self) -> int:
        return self.books + self.transactions


# ---------------------------------------------------------------------------
# Remote rows
# ---------------------------------------------------------------------------


class _RemoteRow(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str
    user_id: str
    created_at: datetime
    updated_at: datetime
    deleted: bool = False

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_ts(cls, v: object) -> object:
        if isinstance(v, str | datetime):
            return parse_timestamp(v)
        return v

    @field_validator("created_at", "updated_at")
    @classmethod
    def _as_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator("deleted", mode="before")
    @classmethod
    def _null_is_false(cls, v: object) -> object:
        # Rows written before the tombstone column existed carry NULL.
        return False if v is None else v


class RemoteBookRow(_RemoteRow):
    """A book as stored remotely."""

    name: str


class RemoteTransactionRow(_RemoteRow):
    """A transaction as stored remotely; ``book_id`` is the book's remote id."""

    book_id: str
    kind: TransactionKind = Field(alias="type")
    amount: Decimal = Field(ge=0)
    note: str | None = None
    category: str | None = None

    @field_serializer("amount", when_used="json")
    def _amount_json(self, v: Decimal) -> int | float:
        return int(v) if v == v.to_integral_value() else float(v)


RemoteRow = RemoteBookRow | RemoteTransactionRow


# ---------------------------------------------------------------------------
# Sync bookkeeping
# ---------------------------------------------------------------------------


ConflictKey = tuple[RecordKind, int]


@dataclass(frozen=True, slots=True)
class Conflict:
    """A matched local/remote pair where the local copy is strictly newer.

    Produced during a pull and resolved (remote wins) within the same cycle;
    never persisted.
    """

    kind: RecordKind
    local_id: int
    remote_id: str
    local_snapshot: LocalRecord
    remote_snapshot: RemoteRow
    local_updated_at: datetime
    remote_updated_at: datetime

    @property
    def key(self) -> ConflictKey:
        return (self.kind, self.local_id)


@dataclass(frozen=True, slots=True)
class PullResult:
    has_new_data: bool
    books_count: int
    transactions_count: int
    conflicts: tuple[Conflict, ...] = ()


@dataclass(slots=True)
class PushResult:
    """Per-outcome counts for one push phase."""

    pushed: dict[RecordKind, int] = field(
        default_factory=lambda: {k: 0 for k in SYNC_ORDER}
    )
    adopted: int = 0
    skipped: int = 0
    failed: int = 0
    held: int = 0

    @property
    def total_pushed(self) -> int:
        return sum(self.pushed.values())


@dataclass(frozen=True, slots=True)
class SyncReport:
    pull: PullResult
    push: PushResult
    unresolved: tuple[Conflict, ...] = ()


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CollectionChanged:
    """Local records of ``kind`` changed because of remote data."""

    user_id: str
    kind: RecordKind
    reason: Literal["pull", "resolve"]
    count: int


@dataclass(frozen=True, slots=True)
class PhaseChanged:
    user_id: str
    phase: SyncPhase


@dataclass(frozen=True, slots=True)
class SyncFinished:
    user_id: str
    ok: bool
    error: str | None = None


SyncEvent = CollectionChanged | PhaseChanged | SyncFinished
