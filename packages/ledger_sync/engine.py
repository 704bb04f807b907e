"""Sync engine: the pull → resolve → push cycle for one user.

Phase 1 (pull) fetches, per collection and books first, every remote row
newer than the collection's cursor and applies it locally. Rows whose local
copy is strictly newer become :class:`~ledger_sync.models.Conflict` objects
instead of being written. Phase 2 resolves those conflicts remote-wins.
Phase 3 (push) sends every dirty or never-pushed record, books first, and
marks each one clean after the remote acknowledged it.

Retry is cycle-granular. A record that fails to push stays dirty; a pulled
row that could not be applied keeps the cursor below it so the next cycle
fetches it again. Each local write commits on its own, so an interrupted
cycle leaves consistent partial progress.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Collection
from datetime import datetime, timedelta
from typing import Literal

from ledger_db.client import LocalStore
from ledger_db.models.local import Book, Transaction
from ledger_db.types import utc_now
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .conflicts import apply_remote, local_book_id_for, resolve_conflicts, same_content
from .cursors import advance_cursor, next_cursor, read_cursor, write_push_marker
from .dirty import list_dirty, mark_clean, snapshot
from .gateway import GatewayError, RemoteGateway
from .identity import assign_remote_id, reserve_remote_id
from .logging_setup import get_logger
from .models import (
    SYNC_ORDER,
    BookRecord,
    CollectionChanged,
    Conflict,
    ConflictKey,
    LocalRecord,
    PullResult,
    PushResult,
    RecordKind,
    RemoteBookRow,
    RemoteRow,
    RemoteTransactionRow,
    SyncPhase,
    SyncReport,
    TransactionRecord,
    orm_model,
)
from .notify import ChangeNotifier

_logger = get_logger("ledger_sync.engine")

PhaseCallback = Callable[[SyncPhase], None]
_PullOutcome = Literal["applied", "unchanged", "orphaned"] | Conflict
_PushOutcome = Literal["pushed", "adopted", "skipped"]

# How long a transaction whose book never arrived may keep the pull cursor behind it.
ORPHAN_HOLD_LIMIT = timedelta(days=1)


class SyncSetupError(ValueError):
    """Raised before any work when a sync call is missing its user or gateway."""


def _check_setup(user_id: str | None, gateway: RemoteGateway | None) -> str:
    if not user_id or not str(user_id).strip():
        raise SyncSetupError("user_id is required to sync")
    if gateway is None:
        raise SyncSetupError("a remote gateway is required to sync")
    return str(user_id)


class SyncEngine:
    """Runs sync cycles against a :class:`LocalStore`.

    One engine may serve several users; cycles for the same user never
    overlap (a second ``sync_all`` while one is running returns ``None``
    immediately).
    """

    def __init__(
        self,
        store: LocalStore,
        *,
        notifier: ChangeNotifier | None = None,
        clock: Callable[[], datetime] = utc_now,
        orphan_hold_limit: timedelta = ORPHAN_HOLD_LIMIT,
    ) -> None:
        self._store = store
        self._orphan_hold_limit = orphan_hold_limit
        self._notifier = notifier if notifier is not None else ChangeNotifier()
        self._clock = clock
        self._user_locks: dict[str, threading.Lock] = {}
        self._user_locks_guard = threading.Lock()

    @property
    def store(self) -> LocalStore:
        return self._store

    @property
    def notifier(self) -> ChangeNotifier:
        return self._notifier

    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._user_locks_guard:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = self._user_locks[user_id] = threading.Lock()
            return lock

    def is_syncing(self, user_id: str) -> bool:
        return self._user_lock(user_id).locked()

    # ------------------------------------------------------------------
    # Full cycle
    # ------------------------------------------------------------------

    def sync_all(
        self,
        user_id: str,
        gateway: RemoteGateway,
        on_phase: PhaseCallback | None = None,
    ) -> SyncReport | None:
        """Run pull, resolve and push once for ``user_id``.

        Returns ``None`` without doing anything when a cycle for the same
        user is already in flight. Record-level failures are logged and left
        for the next cycle; a failed filtered read (the remote is unreachable)
        propagates as :class:`GatewayError`.
        """

        user_id = _check_setup(user_id, gateway)
        lock = self._user_lock(user_id)
        if not lock.acquire(blocking=False):
            _logger.info("Sync already running for user %s; ignoring request", user_id)
            return None

        def _enter(phase: SyncPhase) -> None:
            if on_phase is not None:
                on_phase(phase)

        try:
            _logger.info("Sync started for user %s", user_id)
            _enter(SyncPhase.PULLING)
            pulled = self.pull_from_server(user_id, gateway)

            unresolved: list[Conflict] = []
            if pulled.conflicts:
                _enter(SyncPhase.RESOLVING)
                unresolved = self.resolve_conflicts(user_id, pulled.conflicts)

            _enter(SyncPhase.SYNCING)
            pushed = self.push_to_server(user_id, gateway, hold={c.key for c in unresolved})
            _enter(SyncPhase.COMPLETED)
            _logger.info(
                "Sync finished for user %s: pulled %d book(s) and %d transaction(s), "
                "%d conflict(s), pushed %d record(s), %d failed",
                user_id,
                pulled.books_count,
                pulled.transactions_count,
                len(pulled.conflicts),
                pushed.total_pushed,
                pushed.failed,
            )
            return SyncReport(pull=pulled, push=pushed, unresolved=tuple(unresolved))
        finally:
            lock.release()

    # ------------------------------------------------------------------
    # Phase 1: pull
    # ------------------------------------------------------------------

    def pull_from_server(self, user_id: str, gateway: RemoteGateway) -> PullResult:
        user_id = _check_setup(user_id, gateway)
        applied: dict[RecordKind, int] = {}
        conflicts: list[Conflict] = []

        for kind in SYNC_ORDER:
            count, kind_conflicts = self._pull_collection(user_id, gateway, kind)
            applied[kind] = count
            conflicts.extend(kind_conflicts)
            if count:
                self._notifier.publish(
                    CollectionChanged(user_id=user_id, kind=kind, reason="pull", count=count)
                )

        return PullResult(
            has_new_data=any(applied.values()),
            books_count=applied[RecordKind.BOOK],
            transactions_count=applied[RecordKind.TRANSACTION],
            conflicts=tuple(conflicts),
        )

    def _pull_collection(
        self, user_id: str, gateway: RemoteGateway, kind: RecordKind
    ) -> tuple[int, list[Conflict]]:
        cursor = read_cursor(self._store, user_id, kind)
        rows = sorted(
            gateway.select_where(kind, user_id, cursor), key=lambda r: (r.updated_at, r.id)
        )
        _logger.info(
            "Pulled %d %s row(s) updated after %s", len(rows), kind.value, cursor.isoformat()
        )

        applied = 0
        conflicts: list[Conflict] = []
        fetched: list[datetime] = []
        held: list[datetime] = []

        for remote in rows:
            if remote.user_id != user_id:
                _logger.warning(
                    "Ignoring %s %s owned by another user", kind.value, remote.id
                )
                continue
            fetched.append(remote.updated_at)
            try:
                outcome = self._apply_pulled(user_id, kind, remote)
            except (SQLAlchemyError, ValueError) as exc:
                _logger.error("Failed to apply pulled %s %s: %s", kind.value, remote.id, exc)
                held.append(remote.updated_at)
                continue

            if isinstance(outcome, Conflict):
                conflicts.append(outcome)
                held.append(remote.updated_at)
            elif outcome == "orphaned" and isinstance(remote, RemoteTransactionRow):
                if self._clock() - remote.updated_at > self._orphan_hold_limit:
                    _logger.warning(
                        "Transaction %s still references unknown book %s; "
                        "no longer holding the pull cursor for it",
                        remote.id,
                        remote.book_id,
                    )
                else:
                    held.append(remote.updated_at)
            elif outcome == "applied":
                applied += 1

        candidate = next_cursor(fetched, held)
        if candidate is not None:
            try:
                advance_cursor(self._store, user_id, kind, candidate)
            except SQLAlchemyError as exc:
                _logger.error(
                    "Could not persist %s pull cursor; next pull repeats this window: %s",
                    kind.value,
                    exc,
                )
        return applied, conflicts

    def _find_local(
        self, session: Session, kind: RecordKind, remote_id: str
    ) -> Book | Transaction | None:
        model = orm_model(kind)
        return session.scalar(
            select(model).where(
                or_(model.remote_id == remote_id, model.pending_remote_id == remote_id)
            )
        )

    def _apply_pulled(self, user_id: str, kind: RecordKind, remote: RemoteRow) -> _PullOutcome:
        with self._store.write(user_id, sync=True) as session:
            book_local_id: int | None = None
            if isinstance(remote, RemoteTransactionRow):
                book_local_id = local_book_id_for(session, remote.book_id)
                if book_local_id is None:
                    _logger.info(
                        "Skipping transaction %s: book %s not pulled yet",
                        remote.id,
                        remote.book_id,
                    )
                    return "orphaned"

            row = self._find_local(session, kind, remote.id)
            if row is None and isinstance(remote, RemoteBookRow):
                row = self._adopt_by_name(session, remote)

            if row is None:
                model = orm_model(kind)
                row = model(created_at=remote.created_at)
                apply_remote(row, remote, book_local_id)
                session.add(row)
                return "applied"

            if not row.dirty and same_content(row, remote, book_local_id):
                return "unchanged"
            if (
                row.dirty
                and row.last_synced_at is not None
                and remote.updated_at <= row.last_synced_at
            ):
                # Nothing newer than what this device already reconciled; the
                # pending local edit goes out in the push phase.
                return "unchanged"
            if row.updated_at > remote.updated_at:
                return Conflict(
                    kind=kind,
                    local_id=row.id,
                    remote_id=remote.id,
                    local_snapshot=snapshot(row),
                    remote_snapshot=remote,
                    local_updated_at=row.updated_at,
                    remote_updated_at=remote.updated_at,
                )
            apply_remote(row, remote, book_local_id)
            return "applied"

    def _adopt_by_name(self, session: Session, remote: RemoteBookRow) -> Book | None:
        """Bind an unpushed local book with the same name to ``remote``."""

        if remote.deleted:
            return None
        book = session.scalar(
            select(Book)
            .where(
                Book.remote_id.is_(None),
                Book.pending_remote_id.is_(None),
                Book.deleted.is_(False),
                Book.name == remote.name,
            )
            .order_by(Book.id)
            .limit(1)
        )
        if book is not None:
            _logger.info("Binding local book %s to remote book %s by name", book.id, remote.id)
            book.remote_id = remote.id
        return book

    # ------------------------------------------------------------------
    # Phase 2: resolve
    # ------------------------------------------------------------------

    def resolve_conflicts(self, user_id: str, conflicts: Collection[Conflict]) -> list[Conflict]:
        """Resolve ``conflicts`` remote-wins; return those that could not be applied."""

        if not user_id:
            raise SyncSetupError("user_id is required to resolve conflicts")
        if not conflicts:
            return []
        return resolve_conflicts(self._store, user_id, conflicts, notifier=self._notifier)

    # ------------------------------------------------------------------
    # Phase 3: push
    # ------------------------------------------------------------------

    def push_to_server(
        self,
        user_id: str,
        gateway: RemoteGateway,
        *,
        hold: Collection[ConflictKey] = (),
    ) -> PushResult:
        """Push every dirty or never-pushed record, books before transactions.

        Records whose key is in ``hold`` (conflicts left unresolved this
        cycle) are not pushed.
        """

        user_id = _check_setup(user_id, gateway)
        result = PushResult()

        for kind in SYNC_ORDER:
            pending = list_dirty(self._store, user_id, kind)
            _logger.info("Pushing %d %s record(s)", len(pending), kind.value)
            for record in pending:
                if (kind, record.local_id) in hold:
                    result.held += 1
                    continue
                try:
                    outcome = self._push_one(user_id, gateway, kind, record)
                except (GatewayError, SQLAlchemyError, LookupError, ValueError) as exc:
                    _logger.warning(
                        "Push failed for %s %s; it stays dirty: %s",
                        kind.value,
                        record.local_id,
                        exc,
                    )
                    result.failed += 1
                    continue
                if outcome == "skipped":
                    result.skipped += 1
                    continue
                result.pushed[kind] += 1
                if outcome == "adopted":
                    result.adopted += 1

        finished_at = self._clock()
        for kind in SYNC_ORDER:
            try:
                write_push_marker(self._store, user_id, kind, finished_at)
            except SQLAlchemyError as exc:
                _logger.error("Could not record %s push time: %s", kind.value, exc)

        if result.total_pushed:
            try:
                gateway.touch_user_metadata(user_id, finished_at)
            except GatewayError as exc:
                _logger.warning("Could not update user metadata for %s: %s", user_id, exc)
        return result

    def _push_one(
        self,
        user_id: str,
        gateway: RemoteGateway,
        kind: RecordKind,
        record: LocalRecord,
    ) -> _PushOutcome:
        book_remote_id: str | None = None
        if isinstance(record, TransactionRecord):
            book_remote_id = self._book_remote_id(user_id, record.book_local_id)
            if not book_remote_id:
                _logger.info(
                    "Transaction %s waits for book %s to be pushed",
                    record.local_id,
                    record.book_local_id,
                )
                return "skipped"

        outcome: _PushOutcome = "pushed"
        write = gateway.upsert
        if record.remote_id:
            remote_id = record.remote_id
        else:
            adopted = None
            if (
                isinstance(record, BookRecord)
                and not record.pending_remote_id
                and not record.deleted
            ):
                adopted = self._find_remote_twin(user_id, gateway, record)
            if adopted is not None:
                reserve_remote_id(self._store, user_id, kind, record.local_id, adopted)
                remote_id, outcome = adopted, "adopted"
            else:
                remote_id, fresh = assign_remote_id(self._store, user_id, kind, record.local_id)
                if fresh:
                    write = gateway.insert

        synced_at = self._clock()
        row = _to_remote(user_id, record, remote_id, book_remote_id, synced_at)
        write(kind, row)
        mark_clean(
            self._store,
            user_id,
            kind,
            record.local_id,
            remote_id=remote_id,
            synced_at=synced_at,
            expected_updated_at=record.updated_at,
        )
        return outcome

    def _book_remote_id(self, user_id: str, book_local_id: int) -> str | None:
        with self._store.session(user_id) as session:
            return session.scalar(select(Book.remote_id).where(Book.id == book_local_id))

    def _find_remote_twin(
        self, user_id: str, gateway: RemoteGateway, record: BookRecord
    ) -> str | None:
        """Remote id of a live remote book with the same name, if unclaimed locally."""

        twin = gateway.find_book_by_name(user_id, record.name)
        if twin is None or twin.deleted:
            return None
        with self._store.session(user_id) as session:
            claimed = session.scalar(
                select(Book.id).where(
                    or_(Book.remote_id == twin.id, Book.pending_remote_id == twin.id),
                    Book.id != record.local_id,
                )
            )
        if claimed is not None:
            return None
        _logger.info(
            "Book %s matches remote book %s by name; reusing its id", record.local_id, twin.id
        )
        return twin.id


def _to_remote(
    user_id: str,
    record: LocalRecord,
    remote_id: str,
    book_remote_id: str | None,
    synced_at: datetime,
) -> RemoteRow:
    if isinstance(record, BookRecord):
        return RemoteBookRow(
            id=remote_id,
            user_id=user_id,
            name=record.name,
            created_at=record.created_at,
            updated_at=synced_at,
            deleted=record.deleted,
        )
    if book_remote_id is None:
        raise ValueError(f"transaction {record.local_id} has no remote book id")
    return RemoteTransactionRow(
        id=remote_id,
        user_id=user_id,
        book_id=book_remote_id,
        kind=record.kind,
        amount=record.amount,
        note=record.note,
        category=record.category,
        created_at=record.created_at,
        updated_at=synced_at,
        deleted=record.deleted,
    )


__all__ = ["ORPHAN_HOLD_LIMIT", "PhaseCallback", "SyncEngine", "SyncSetupError"]
