"""Persisted pull cursors and push markers (stored as user preferences).

The pull cursor of a collection is the remote ``updated_at`` high-water mark
of the last applied batch; the next pull asks for rows strictly newer than
it. Cursors only move forward. Push markers record when the last push phase
finished and are informational.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from ledger_db.client import LocalStore
from ledger_db.types import EPOCH, format_timestamp, parse_timestamp

from .logging_setup import get_logger
from .models import RecordKind
from .records import get_preference, set_preference

PULL_CURSOR_KEYS: dict[RecordKind, str] = {
    RecordKind.BOOK: "last_sync_books",
    RecordKind.TRANSACTION: "last_sync_transactions",
}
PUSH_MARKER_KEYS: dict[RecordKind, str] = {
    RecordKind.BOOK: "last_push_books",
    RecordKind.TRANSACTION: "last_push_transactions",
}

_logger = get_logger("ledger_sync.cursors")


def _read_timestamp(store: LocalStore, user_id: str, key: str) -> datetime | None:
    raw = get_preference(store, user_id, key)
    if raw is None:
        return None
    try:
        return parse_timestamp(raw)
    except ValueError:
        _logger.warning("Ignoring unparsable timestamp in preference %s: %r", key, raw)
        return None


def read_cursor(store: LocalStore, user_id: str, kind: RecordKind) -> datetime:
    """Return the pull cursor for ``kind`` (epoch when never pulled)."""

    return _read_timestamp(store, user_id, PULL_CURSOR_KEYS[kind]) or EPOCH


def advance_cursor(
    store: LocalStore, user_id: str, kind: RecordKind, candidate: datetime
) -> datetime:
    """Move the cursor to ``candidate`` if that is later; return the stored value."""

    current = read_cursor(store, user_id, kind)
    if candidate <= current:
        return current
    set_preference(store, user_id, PULL_CURSOR_KEYS[kind], format_timestamp(candidate))
    return candidate


def next_cursor(
    fetched: Iterable[datetime], held: Iterable[datetime] = ()
) -> datetime | None:
    """Highest fetched timestamp strictly below every held one.

    ``held`` holds the timestamps of records that were fetched but not
    applied (skipped or left in conflict); the cursor must stay below them
    so they are fetched again. Returns ``None`` when nothing qualifies.
    """

    floor = min(held, default=None)
    eligible = [ts for ts in fetched if floor is None or ts < floor]
    return max(eligible, default=None)


def read_push_marker(store: LocalStore, user_id: str, kind: RecordKind) -> datetime | None:
    return _read_timestamp(store, user_id, PUSH_MARKER_KEYS[kind])


def write_push_marker(
    store: LocalStore, user_id: str, kind: RecordKind, at: datetime
) -> None:
    set_preference(store, user_id, PUSH_MARKER_KEYS[kind], format_timestamp(at))


__all__ = [
    "PULL_CURSOR_KEYS",
    "PUSH_MARKER_KEYS",
    "advance_cursor",
    "next_cursor",
    "read_cursor",
    "read_push_marker",
    "write_push_marker",
]
