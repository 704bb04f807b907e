"""ledger_db: shared database library (SQLAlchemy/Alembic).

Public exports
--------------
- ``LocalBase``/``RemoteBase`` and their metadata (Alembic targets the remote one)
- ORM models in ``ledger_db.models`` (re-exported for convenience)
- Local store handle and remote engine/session helpers in ``ledger_db.client``
"""

from __future__ import annotations

from .models.local import Book, LocalBase, Transaction, UserInitialization, UserPreference
from .models.remote import RemoteBase, RemoteBook, RemoteTransaction, UserMetadata

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = RemoteBase.metadata
local_metadata = LocalBase.metadata

__all__ = [
    "Book",
    "LocalBase",
    "RemoteBase",
    "RemoteBook",
    "RemoteTransaction",
    "Transaction",
    "UserInitialization",
    "UserMetadata",
    "UserPreference",
    "local_metadata",
    "metadata",
]
