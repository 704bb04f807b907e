"""Remote identity assignment for locally created records.

Remote ids are UUID-v4 strings generated on the device. The first push of a
record reserves an id in ``pending_remote_id`` before anything is sent, so a
push retried after a crash (remote acknowledged, local ``mark_clean`` lost)
reuses the same id instead of minting a second remote record.
"""

from __future__ import annotations

import re
import uuid

from ledger_db.client import LocalStore

from .logging_setup import get_logger
from .models import RecordKind, orm_model

_REMOTE_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$"
)

_logger = get_logger("ledger_sync.identity")


def generate_remote_id() -> str:
    return str(uuid.uuid4())


def is_remote_id(value: str | None) -> bool:
    """True when ``value`` has the 36-character UUID-v4 shape."""

    if not value:
        return False
    return _REMOTE_ID_RE.match(value.lower()) is not None


def assign_remote_id(
    store: LocalStore, user_id: str, kind: RecordKind, local_id: int
) -> tuple[str, bool]:
    """Return the remote id to push ``local_id`` under.

    The result is ``(remote_id, fresh)``. ``fresh`` is ``True`` only when the
    id was generated by this call; an id that was already assigned or
    reserved by an earlier attempt comes back with ``fresh=False`` and must be
    written with an upsert.
    """

    model = orm_model(kind)
    with store.write(user_id, sync=True) as session:
        row = session.get(model, local_id)
        if row is None:
            raise LookupError(f"{kind.value} {local_id} not found")
        if row.remote_id:
            return row.remote_id, False
        if row.pending_remote_id:
            _logger.debug(
                "Reusing reserved remote id for %s %s: %s",
                kind.value,
                local_id,
                row.pending_remote_id,
            )
            return row.pending_remote_id, False
        remote_id = generate_remote_id()
        row.pending_remote_id = remote_id
        return remote_id, True


def reserve_remote_id(
    store: LocalStore, user_id: str, kind: RecordKind, local_id: int, remote_id: str
) -> None:
    """Reserve an existing remote id (found by natural key) for ``local_id``."""

    model = orm_model(kind)
    with store.write(user_id, sync=True) as session:
        row = session.get(model, local_id)
        if row is None:
            raise LookupError(f"{kind.value} {local_id} not found")
        if row.remote_id or row.pending_remote_id:
            raise ValueError(f"{kind.value} {local_id} already has a remote identity")
        row.pending_remote_id = remote_id


__all__ = ["assign_remote_id", "generate_remote_id", "is_remote_id", "reserve_remote_id"]
