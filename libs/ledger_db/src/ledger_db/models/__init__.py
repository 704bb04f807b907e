"""ORM model registries for the workspace databases.

- ``ledger_db.models.local``: the per-user on-device record store.
- ``ledger_db.models.remote``: the shared remote store (Alembic target).
"""

from .local import (
    Book,
    DbVersion,
    LocalBase,
    SyncedRecord,
    Transaction,
    UserInitialization,
    UserPreference,
)
from .remote import RemoteBase, RemoteBook, RemoteTransaction, UserMetadata

__all__ = [
    "Book",
    "DbVersion",
    "LocalBase",
    "RemoteBase",
    "RemoteBook",
    "RemoteTransaction",
    "SyncedRecord",
    "Transaction",
    "UserInitialization",
    "UserMetadata",
    "UserPreference",
]
