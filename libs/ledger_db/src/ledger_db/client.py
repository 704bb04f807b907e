"""SQLAlchemy engine/session helpers for the local store and the remote store.

Usage
-----
Local (per-user, on-device) store::

    from ledger_db.client import LocalStore

    store = LocalStore("/path/to/data")
    with store.write(user_id) as s:
        s.add(Book(name="Personal"))

Remote store (used by the SQL gateway and Alembic)::

    from ledger_db.client import session_scope

    with session_scope(database_url=url) as s:
        s.execute(...)
"""

from __future__ import annotations

import os
import re
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models.local import SCHEMA_VERSION, DbVersion, LocalBase, SyncedRecord
from .types import utc_now

# Session.info key marking a write scope owned by the sync engine. Flushes in
# such scopes keep the dirty flag and timestamps exactly as the engine set them.
SYNC_WRITE = "ledger_sync_write"

_USER_FILE_RE = re.compile(r"[^A-Za-z0-9_.-]")


# ----------------------------------------------------------------------------
# Remote store engines
# ----------------------------------------------------------------------------

_ENGINES: dict[str, Engine] = {}
_SESSION_MAKERS: dict[str, sessionmaker[Session]] = {}
_ENGINES_LOCK = threading.Lock()


def _database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; cannot initialize database client")
    return url


def get_engine(*, database_url: str | None = None) -> Engine:
    """Return the shared engine for ``database_url``, creating it on first use."""

    url = _database_url(database_url)
    with _ENGINES_LOCK:
        engine = _ENGINES.get(url)
        if engine is None:
            engine = create_engine(url, pool_pre_ping=True)
            if engine.dialect.name == "sqlite":
                event.listen(engine, "connect", _enable_sqlite_foreign_keys)
            _SESSION_MAKERS[url] = sessionmaker(
                bind=engine, expire_on_commit=False, class_=Session
            )
            _ENGINES[url] = engine
        return engine


def get_session(*, database_url: str | None = None) -> Session:
    """Return a new session bound to the shared engine for ``database_url``."""

    url = _database_url(database_url)
    get_engine(database_url=url)
    return _SESSION_MAKERS[url]()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engines() -> None:
    """Dispose every cached remote engine (tests and process shutdown)."""

    with _ENGINES_LOCK:
        for engine in _ENGINES.values():
            engine.dispose()
        _ENGINES.clear()
        _SESSION_MAKERS.clear()


def _enable_sqlite_foreign_keys(dbapi_conn: Any, _record: Any) -> None:
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys = ON")
    finally:
        cursor.close()


# ----------------------------------------------------------------------------
# Local record store
# ----------------------------------------------------------------------------


def _stamp_local_mutations(session: Session, _flush_context: Any, _instances: Any) -> None:
    """Apply the local write-path contract to every pending Book/Transaction.

    Outside sync scopes, each insert or modification stamps ``updated_at`` and
    sets ``dirty``. In all scopes an assigned ``remote_id`` is immutable; user
    writes may not revive a tombstone.
    """

    sync_write = bool(session.info.get(SYNC_WRITE))
    now = utc_now()

    for obj in list(session.new):
        if not isinstance(obj, SyncedRecord):
            continue
        if obj.created_at is None:
            obj.created_at = now
        if obj.deleted is None:
            obj.deleted = False
        if sync_write:
            if obj.updated_at is None:
                obj.updated_at = now
            if obj.dirty is None:
                obj.dirty = False
        else:
            obj.updated_at = now
            obj.dirty = True

    for obj in list(session.dirty):
        if not isinstance(obj, SyncedRecord) or not session.is_modified(obj):
            continue
        attrs = inspect(obj).attrs
        rid = attrs.remote_id.history
        old_rid = rid.deleted[0] if rid.deleted else None
        new_rid = rid.added[0] if rid.added else None
        if old_rid is not None and new_rid != old_rid:
            raise ValueError(
                f"{type(obj).__name__} {obj.id}: remote_id is immutable once assigned"
            )
        if sync_write:
            continue
        tomb = attrs.deleted.history
        if tomb.deleted and tomb.deleted[0] and tomb.added and not tomb.added[0]:
            raise ValueError(f"{type(obj).__name__} {obj.id}: a deleted record cannot be restored")
        obj.updated_at = now
        obj.dirty = True


class LocalStore:
    """Owned handle to the active user's on-device database.

    Exactly one user database is open at a time. Opening a different user
    closes the previous handle first; open/close and every session scope are
    serialized through one re-entrant lock, so user-driven writes and sync
    engine writes never interleave within a record update.
    """

    def __init__(self, data_dir: str | os.PathLike[str]) -> None:
        self._data_dir = Path(data_dir)
        self._lock = threading.RLock()
        self._engine: Engine | None = None
        self._session_maker: sessionmaker[Session] | None = None
        self._user_id: str | None = None

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    @property
    def active_user_id(self) -> str | None:
        return self._user_id

    def database_path(self, user_id: str) -> Path:
        return self._data_dir / f"db_{_USER_FILE_RE.sub('_', user_id)}.db"

    def open(self, user_id: str) -> Engine:
        """Open (or return the already open) database for ``user_id``."""

        if not user_id:
            raise ValueError("user_id is required to open the local store")
        with self._lock:
            if self._engine is not None and self._user_id == user_id:
                return self._engine
            if self._engine is not None:
                self._close_locked()

            path = self.database_path(user_id)
            path.parent.mkdir(parents=True, exist_ok=True)
            engine = create_engine(f"sqlite+pysqlite:///{path}")
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
            LocalBase.metadata.create_all(bind=engine)

            maker = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)
            event.listen(maker, "before_flush", _stamp_local_mutations)

            with maker() as session, session.begin():
                row = session.get(DbVersion, 1)
                if row is None:
                    session.add(DbVersion(id=1, version=SCHEMA_VERSION, updated_at=utc_now()))
                elif row.version < SCHEMA_VERSION:
                    row.version = SCHEMA_VERSION
                    row.updated_at = utc_now()

            self._engine = engine
            self._session_maker = maker
            self._user_id = user_id
            return engine

    def close(self) -> None:
        with self._lock:
            self._close_locked()

    def _close_locked(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_maker = None
        self._user_id = None

    @contextmanager
    def session(self, user_id: str) -> Iterator[Session]:
        """Read-oriented scope; commits on success like :meth:`write`."""

        with self.write(user_id) as session:
            yield session

    @contextmanager
    def write(self, user_id: str, *, sync: bool = False) -> Iterator[Session]:
        """Transactional write scope for ``user_id``.

        ``sync=True`` marks the scope as owned by the sync engine: flushes skip
        the automatic dirty/``updated_at`` stamping.
        """

        with self._lock:
            self.open(user_id)
            assert self._session_maker is not None  # bound by open()
            session = self._session_maker()
            session.info[SYNC_WRITE] = sync
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()


__all__ = [
    "SYNC_WRITE",
    "LocalStore",
    "dispose_engines",
    "get_engine",
    "get_session",
    "session_scope",
]
