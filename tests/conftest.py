"""Pytest configuration shared by the whole suite.

Tests import ``ledger_sync`` and ``ledger_db`` straight from the workspace
(``packages/`` and ``libs/ledger_db/src``) so they run without an install.

Every test gets its own data directory and a clean environment: the
``LEDGER_*`` variables and ``DATABASE_URL`` of the developer's shell never
leak into tests, and cached remote engines are disposed afterwards so file
handles on temporary SQLite databases are released.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PATHS = [_ROOT / "packages", _ROOT / "libs" / "ledger_db" / "src", _ROOT]
sys.path[:0] = [str(p) for p in _PATHS if str(p) not in sys.path]

_ENV_VARS = (
    "DATABASE_URL",
    "LEDGER_ACCESS_TOKEN",
    "LEDGER_DEFAULT_BOOK_NAME",
    "LEDGER_HTTP_TIMEOUT",
    "LEDGER_REMOTE_API_KEY",
    "LEDGER_REMOTE_URL",
    "LEDGER_SYNC_LOG_LEVEL",
    "LEDGER_USER_ID",
)


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    data_dir = tmp_path / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("LEDGER_DATA_DIR", os.fspath(data_dir))
    yield
    from ledger_db.client import dispose_engines

    dispose_engines()
