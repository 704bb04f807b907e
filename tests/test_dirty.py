from __future__ import annotations

from pathlib import Path

import pytest
from ledger_db.types import EPOCH

from ledger_sync import records
from ledger_sync.cursors import (
    advance_cursor,
    next_cursor,
    read_cursor,
    read_push_marker,
    write_push_marker,
)
from ledger_sync.dirty import dirty_count, list_dirty, list_unsynced, mark_clean
from ledger_sync.models import RecordKind
from tests.helpers.db import USER, make_store, seed_book, seed_transaction, ts


def test_list_dirty_includes_dirty_and_never_pushed(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    clean = seed_book(store, name="Clean", remote_id="rid-clean")
    edited = seed_book(store, name="Edited", remote_id="rid-edited", dirty=True)
    fresh = seed_book(store, name="Fresh")  # no remote id, flag not set

    pending = list_dirty(store, USER, RecordKind.BOOK)

    assert [r.local_id for r in pending] == [edited, fresh]
    assert clean not in {r.local_id for r in pending}
    assert [r.local_id for r in list_unsynced(store, USER, RecordKind.BOOK)] == [fresh]


def test_dirty_count_covers_both_kinds(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    book = records.create_book(store, USER, "Personal")
    records.add_transaction(store, USER, book.local_id, kind="expense", amount=1)
    records.add_transaction(store, USER, book.local_id, kind="income", amount=2)

    count = dirty_count(store, USER)

    assert (count.books, count.transactions, count.total) == (1, 2, 3)


def test_mark_clean_binds_remote_id_and_clears_flag(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    book = records.create_book(store, USER, "Personal")
    synced_at = ts(1)

    assert mark_clean(
        store,
        USER,
        RecordKind.BOOK,
        book.local_id,
        remote_id="rid-1",
        synced_at=synced_at,
        expected_updated_at=book.updated_at,
    )

    after = records.get_book(store, USER, book.local_id)
    assert after is not None
    assert after.remote_id == "rid-1"
    assert after.dirty is False
    assert after.updated_at == synced_at
    assert after.last_synced_at == synced_at
    assert dirty_count(store, USER).total == 0


def test_mark_clean_keeps_record_dirty_when_edited_mid_push(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    book = records.create_book(store, USER, "Personal")
    records.rename_book(store, USER, book.local_id, "Renamed while pushing")

    assert not mark_clean(
        store,
        USER,
        RecordKind.BOOK,
        book.local_id,
        remote_id="rid-1",
        synced_at=ts(1),
        expected_updated_at=book.updated_at,
    )

    after = records.get_book(store, USER, book.local_id)
    assert after is not None
    assert after.remote_id == "rid-1"
    assert after.dirty is True
    assert after.name == "Renamed while pushing"


def test_mark_clean_rejects_a_different_remote_id(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    book_id = seed_book(store, name="Personal", remote_id="rid-1", dirty=True)
    book = records.get_book(store, USER, book_id)
    assert book is not None

    with pytest.raises(ValueError):
        mark_clean(
            store,
            USER,
            RecordKind.BOOK,
            book_id,
            remote_id="rid-2",
            synced_at=ts(1),
            expected_updated_at=book.updated_at,
        )


def test_mark_clean_missing_record(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    with pytest.raises(LookupError):
        mark_clean(
            store,
            USER,
            RecordKind.TRANSACTION,
            404,
            remote_id="rid",
            synced_at=ts(),
            expected_updated_at=ts(),
        )


def test_tombstoned_records_still_need_a_push(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    book_id = seed_book(store, name="Trip", remote_id="rid-book")
    seed_transaction(store, book_id=book_id, amount=3, remote_id="rid-tx")

    records.delete_book(store, USER, book_id)

    books = list_dirty(store, USER, RecordKind.BOOK)
    txs = list_dirty(store, USER, RecordKind.TRANSACTION)
    assert [b.deleted for b in books] == [True]
    assert [t.deleted for t in txs] == [True]


def test_cursor_defaults_to_epoch_and_only_moves_forward(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    assert read_cursor(store, USER, RecordKind.BOOK) == EPOCH

    later, earlier = ts(10), ts(-10)
    assert advance_cursor(store, USER, RecordKind.BOOK, later) == later
    assert advance_cursor(store, USER, RecordKind.BOOK, earlier) == later
    assert read_cursor(store, USER, RecordKind.BOOK) == later
    # Collections have independent cursors.
    assert read_cursor(store, USER, RecordKind.TRANSACTION) == EPOCH


def test_unparsable_cursor_falls_back_to_epoch(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    records.set_preference(store, USER, "last_sync_books", "yesterday-ish")
    assert read_cursor(store, USER, RecordKind.BOOK) == EPOCH


def test_next_cursor_stays_below_held_rows() -> None:
    t1, t2, t3, t4 = ts(1), ts(2), ts(3), ts(4)

    assert next_cursor([]) is None
    assert next_cursor([t1, t3, t2]) == t3
    assert next_cursor([t1, t2, t3, t4], held=[t3]) == t2
    assert next_cursor([t2, t3], held=[t2]) is None


def test_push_markers_round_trip(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    assert read_push_marker(store, USER, RecordKind.TRANSACTION) is None

    at = ts()
    write_push_marker(store, USER, RecordKind.TRANSACTION, at)
    assert read_push_marker(store, USER, RecordKind.TRANSACTION) == at
