from __future__ import annotations

import threading
from pathlib import Path

import pytest
from ledger_db.client import LocalStore
from ledger_db.models.local import SCHEMA_VERSION, Book, DbVersion
from sqlalchemy import func, select

from tests.helpers.db import USER, make_store, seed_book, ts


def test_open_creates_per_user_file_and_version_row(tmp_path: Path) -> None:
    store = make_store(tmp_path)

    assert store.active_user_id == USER
    assert store.database_path(USER).exists()
    with store.session(USER) as s:
        row = s.get(DbVersion, 1)
        assert row is not None and row.version == SCHEMA_VERSION


def test_database_path_sanitizes_user_id(tmp_path: Path) -> None:
    store = LocalStore(tmp_path)
    assert store.database_path("user_2b/../x y").name == "db_user_2b_.._x_y.db"


def test_open_requires_user_id(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        LocalStore(tmp_path).open("")


def test_switching_user_closes_previous_handle(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    seed_book(store, name="Alpha book")

    store.open("user_beta")
    assert store.active_user_id == "user_beta"
    with store.session("user_beta") as s:
        assert s.scalar(select(func.count()).select_from(Book)) == 0

    # Writes for a user reopen that user's own database.
    with store.session(USER) as s:
        assert s.scalars(select(Book.name)).all() == ["Alpha book"]
    assert store.active_user_id == USER

    store.close()
    assert store.active_user_id is None


def test_user_write_stamps_dirty_and_updated_at(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    old = ts(-60)
    book_id = seed_book(store, name="Personal", remote_id="r-1", updated_at=old)

    with store.write(USER) as s:
        s.get(Book, book_id).name = "Household"

    with store.session(USER) as s:
        book = s.get(Book, book_id)
        assert book.dirty is True
        assert book.updated_at > old
        assert book.remote_id == "r-1"


def test_sync_scope_keeps_flags_as_set(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    when = ts(-30)
    book_id = seed_book(store, name="Personal", remote_id="r-1", updated_at=when)

    with store.write(USER, sync=True) as s:
        s.get(Book, book_id).name = "Renamed remotely"

    with store.session(USER) as s:
        book = s.get(Book, book_id)
        assert book.dirty is False
        assert book.updated_at == when


def test_unmodified_flush_does_not_mark_dirty(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    book_id = seed_book(store, name="Personal", remote_id="r-1")

    with store.write(USER) as s:
        book = s.get(Book, book_id)
        book.name = book.name  # same value

    with store.session(USER) as s:
        assert s.get(Book, book_id).dirty is False


@pytest.mark.parametrize("sync", [False, True])
def test_remote_id_is_immutable(tmp_path: Path, sync: bool) -> None:
    store = make_store(tmp_path)
    book_id = seed_book(store, name="Personal", remote_id="r-1")

    with pytest.raises(ValueError, match="immutable"):
        with store.write(USER, sync=sync) as s:
            s.get(Book, book_id).remote_id = "r-2"

    with store.session(USER) as s:
        assert s.get(Book, book_id).remote_id == "r-1"


def test_user_write_cannot_revive_tombstone(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    book_id = seed_book(store, name="Gone", remote_id="r-1", deleted=True)

    with pytest.raises(ValueError, match="cannot be restored"):
        with store.write(USER) as s:
            s.get(Book, book_id).deleted = False

    with store.session(USER) as s:
        assert s.get(Book, book_id).deleted is True


def test_concurrent_writers_are_serialized(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    errors: list[BaseException] = []

    def _worker(prefix: str) -> None:
        try:
            for i in range(20):
                with store.write(USER) as s:
                    s.add(Book(name=f"{prefix}-{i}"))
        except BaseException as exc:  # pragma: no cover - surfaced below
            errors.append(exc)

    threads = [threading.Thread(target=_worker, args=(p,)) for p in ("a", "b", "c")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    with store.session(USER) as s:
        assert s.scalar(select(func.count()).select_from(Book)) == 60
