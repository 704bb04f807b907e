from __future__ import annotations

from pathlib import Path

import pytest
from ledger_db.models.local import Book

from ledger_sync.identity import (
    assign_remote_id,
    generate_remote_id,
    is_remote_id,
    reserve_remote_id,
)
from ledger_sync.models import RecordKind
from ledger_sync.records import create_book
from tests.helpers.db import USER, make_store, seed_book


def test_generated_ids_are_uuid4_shaped_and_unique() -> None:
    ids = {generate_remote_id() for _ in range(500)}
    assert len(ids) == 500
    for rid in ids:
        assert len(rid) == 36
        assert is_remote_id(rid)


@pytest.mark.parametrize("value", [None, "", "abc", "00000000-0000-1000-8000-000000000000"])
def test_is_remote_id_rejects_non_uuid4(value: str | None) -> None:
    assert not is_remote_id(value)


def test_assign_reserves_once_and_reuses_on_retry(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    book = create_book(store, USER, "Personal")

    first, fresh = assign_remote_id(store, USER, RecordKind.BOOK, book.local_id)
    again, fresh_again = assign_remote_id(store, USER, RecordKind.BOOK, book.local_id)

    assert fresh is True
    assert (again, fresh_again) == (first, False)
    with store.session(USER) as s:
        row = s.get(Book, book.local_id)
        assert row.pending_remote_id == first
        assert row.remote_id is None
        # Reserving an id is bookkeeping, not a user edit.
        assert row.updated_at == book.updated_at


def test_assign_returns_existing_remote_id(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    rid = generate_remote_id()
    book_id = seed_book(store, name="Synced", remote_id=rid)

    assert assign_remote_id(store, USER, RecordKind.BOOK, book_id) == (rid, False)


def test_assign_unknown_record_raises(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    with pytest.raises(LookupError):
        assign_remote_id(store, USER, RecordKind.TRANSACTION, 999)


def test_reserve_refuses_records_with_identity(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    book_id = seed_book(store, name="Synced", remote_id=generate_remote_id())

    with pytest.raises(ValueError):
        reserve_remote_id(store, USER, RecordKind.BOOK, book_id, generate_remote_id())
