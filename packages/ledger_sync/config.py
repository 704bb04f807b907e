"""Environment-driven settings and gateway construction.

Entry points load a local ``.env`` (``python-dotenv``) before calling
:meth:`Settings.from_env`; library code never reads the environment itself.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from .engine import SyncSetupError
from .gateway import RemoteGateway
from .records import DEFAULT_BOOK_NAME

DEFAULT_DATA_DIR = "./.ledger"
DEFAULT_HTTP_TIMEOUT = 30.0


def _opt(env: Mapping[str, str], key: str) -> str | None:
    value = env.get(key, "").strip()
    return value or None


@dataclass(frozen=True, slots=True)
class Settings:
    data_dir: Path
    remote_url: str | None = None
    remote_api_key: str | None = None
    access_token: str | None = None
    database_url: str | None = None
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    default_book_name: str = DEFAULT_BOOK_NAME

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ

        raw_timeout = _opt(env, "LEDGER_HTTP_TIMEOUT")
        try:
            timeout = float(raw_timeout) if raw_timeout else DEFAULT_HTTP_TIMEOUT
        except ValueError as exc:
            raise ValueError(
                f"LEDGER_HTTP_TIMEOUT must be a number, got {raw_timeout!r}"
            ) from exc
        if timeout <= 0:
            raise ValueError("LEDGER_HTTP_TIMEOUT must be positive")

        return cls(
            data_dir=Path(_opt(env, "LEDGER_DATA_DIR") or DEFAULT_DATA_DIR).expanduser(),
            remote_url=_opt(env, "LEDGER_REMOTE_URL"),
            remote_api_key=_opt(env, "LEDGER_REMOTE_API_KEY"),
            access_token=_opt(env, "LEDGER_ACCESS_TOKEN"),
            database_url=_opt(env, "DATABASE_URL"),
            http_timeout=timeout,
            default_book_name=_opt(env, "LEDGER_DEFAULT_BOOK_NAME") or DEFAULT_BOOK_NAME,
        )


def build_gateway(
    settings: Settings, *, token_supplier: Callable[[], str | None] | None = None
) -> RemoteGateway:
    """REST gateway when a remote URL is configured, else the SQL gateway."""

    if settings.remote_url:
        from .gateways.postgrest import PostgrestGateway

        if not settings.remote_api_key:
            raise SyncSetupError("LEDGER_REMOTE_API_KEY is required with LEDGER_REMOTE_URL")
        return PostgrestGateway(
            settings.remote_url,
            settings.remote_api_key,
            token_supplier or (lambda: settings.access_token),
            timeout=settings.http_timeout,
        )
    if settings.database_url:
        from .gateways.sql import SqlRemoteGateway

        return SqlRemoteGateway(settings.database_url)
    raise SyncSetupError("no remote configured: set LEDGER_REMOTE_URL or DATABASE_URL")


__all__ = ["DEFAULT_DATA_DIR", "Settings", "build_gateway"]
