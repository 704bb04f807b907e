"""Remote gateway contract consumed by the sync engine.

A gateway is the filtered-read / conditional-write surface over the two
remote collections plus per-user metadata. Adapters live in
``ledger_sync.gateways``; tests use an in-memory implementation.

Every read is scoped by ``user_id``. Writes are keyed by the engine-generated
remote id, so retrying an ``insert`` as an ``upsert`` with the same id is
idempotent at the storage layer.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable

from .models import RecordKind, RemoteBookRow, RemoteRow


class GatewayError(RuntimeError):
    """A remote or transport failure reported by a gateway adapter."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


@runtime_checkable
class RemoteGateway(Protocol):
    def select_where(
        self, kind: RecordKind, user_id: str, updated_after: datetime
    ) -> Sequence[RemoteRow]:
        """Return the user's rows of ``kind`` with ``updated_at > updated_after``."""
        ...

    def find_book_by_name(self, user_id: str, name: str) -> RemoteBookRow | None:
        """Return the oldest remote book owned by ``user_id`` named ``name``."""
        ...

    def insert(self, kind: RecordKind, row: RemoteRow) -> None: ...

    def upsert(self, kind: RecordKind, row: RemoteRow) -> None: ...

    def touch_user_metadata(self, user_id: str, last_sync: datetime) -> None: ...


__all__ = ["GatewayError", "RemoteGateway"]
