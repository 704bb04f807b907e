from __future__ import annotations

from pathlib import Path

import pytest

from ledger_sync.config import DEFAULT_DATA_DIR, Settings, build_gateway
from ledger_sync.engine import SyncSetupError
from ledger_sync.gateways import PostgrestGateway, SqlRemoteGateway
from ledger_sync.records import DEFAULT_BOOK_NAME


def test_defaults_from_empty_environment() -> None:
    settings = Settings.from_env({})

    assert settings.data_dir == Path(DEFAULT_DATA_DIR)
    assert settings.remote_url is None
    assert settings.database_url is None
    assert settings.http_timeout == 30.0
    assert settings.default_book_name == DEFAULT_BOOK_NAME


def test_values_are_read_and_trimmed(tmp_path: Path) -> None:
    settings = Settings.from_env(
        {
            "LEDGER_DATA_DIR": str(tmp_path),
            "LEDGER_REMOTE_URL": " https://example.supabase.co/rest/v1 ",
            "LEDGER_REMOTE_API_KEY": "anon",
            "LEDGER_ACCESS_TOKEN": "",
            "LEDGER_HTTP_TIMEOUT": "2.5",
            "LEDGER_DEFAULT_BOOK_NAME": "Main",
        }
    )

    assert settings.data_dir == tmp_path
    assert settings.remote_url == "https://example.supabase.co/rest/v1"
    assert settings.access_token is None
    assert settings.http_timeout == 2.5
    assert settings.default_book_name == "Main"


@pytest.mark.parametrize("raw", ["soon", "0", "-3"])
def test_invalid_timeout_is_rejected(raw: str) -> None:
    with pytest.raises(ValueError):
        Settings.from_env({"LEDGER_HTTP_TIMEOUT": raw})


def test_rest_gateway_preferred_when_remote_url_set(tmp_path: Path) -> None:
    settings = Settings(
        data_dir=tmp_path,
        remote_url="https://example.supabase.co/rest/v1",
        remote_api_key="anon",
        database_url="sqlite+pysqlite:///ignored.db",
    )
    assert isinstance(build_gateway(settings), PostgrestGateway)


def test_rest_gateway_requires_api_key(tmp_path: Path) -> None:
    settings = Settings(data_dir=tmp_path, remote_url="https://example.supabase.co/rest/v1")
    with pytest.raises(SyncSetupError):
        build_gateway(settings)


def test_sql_gateway_from_database_url(tmp_path: Path) -> None:
    settings = Settings(data_dir=tmp_path, database_url=f"sqlite+pysqlite:///{tmp_path}/r.db")
    assert isinstance(build_gateway(settings), SqlRemoteGateway)


def test_no_remote_configured(tmp_path: Path) -> None:
    with pytest.raises(SyncSetupError):
        build_gateway(Settings(data_dir=tmp_path))
