"""Public interface for the ``ledger_sync`` package.

This module re-exports the sync engine, its collaborators and the public
models/types as the stable import surface. There is no runtime logic here,
only symbol re-exports.
"""

from .config import Settings, build_gateway
from .engine import SyncEngine, SyncSetupError
from .gateway import GatewayError, RemoteGateway
from .models import (
    BookRecord,
    CollectionChanged,
    Conflict,
    DirtyCount,
    PhaseChanged,
    PullResult,
    PushResult,
    RecordKind,
    RemoteBookRow,
    RemoteTransactionRow,
    SyncFinished,
    SyncPhase,
    SyncReport,
    TransactionRecord,
    TransactionSummary,
)
from .notify import ChangeNotifier
from .status import SyncCoordinator

__all__ = [
    # Engine and collaborators
    "ChangeNotifier",
    "GatewayError",
    "RemoteGateway",
    "Settings",
    "SyncCoordinator",
    "SyncEngine",
    "SyncSetupError",
    "build_gateway",
    # Models / types
    "BookRecord",
    "CollectionChanged",
    "Conflict",
    "DirtyCount",
    "PhaseChanged",
    "PullResult",
    "PushResult",
    "RecordKind",
    "RemoteBookRow",
    "RemoteTransactionRow",
    "SyncFinished",
    "SyncPhase",
    "SyncReport",
    "TransactionRecord",
    "TransactionSummary",
]
