from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

import ledger_sync.cli as cli_mod
from ledger_sync.cli import app
from tests.helpers.db import USER, bootstrap_remote_sqlite

runner = CliRunner()


@pytest.fixture(autouse=True)
def _quiet_cli(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep the package logger untouched and avoid picking up a developer .env.
    monkeypatch.setattr(cli_mod, "configure_logging", lambda *a, **k: None)
    monkeypatch.chdir(tmp_path)


def _run(*args: str):
    return runner.invoke(app, [*args, "--user", USER])


def test_add_book_and_transaction_then_list() -> None:
    created = _run("add-book", "Personal")
    assert created.exit_code == 0, created.output
    assert "Created book 1: Personal" in created.output

    added = _run(
        "add-transaction",
        "--book-id",
        "1",
        "--kind",
        "expense",
        "--amount",
        "12.5",
        "--category",
        "Food",
    )
    assert added.exit_code == 0, added.output
    assert "Added expense 12.5 to book 1" in added.output

    listed = _run("books")
    assert listed.exit_code == 0, listed.output
    assert "Personal" in listed.output
    assert "-12.5" in listed.output

    status = _run("status")
    assert status.exit_code == 0, status.output
    assert "Total needing push: 2" in status.output


def test_init_creates_default_book_once(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEDGER_DEFAULT_BOOK_NAME", "Household")

    first = _run("init")
    second = _run("init")

    assert first.exit_code == 0, first.output
    assert "Default book 1: Household" in first.output
    assert "Default book 1: Household" in second.output
    assert _run("books").output.count("Household") == 1


def test_user_can_come_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEDGER_USER_ID", USER)
    result = runner.invoke(app, ["add-book", "From env"])
    assert result.exit_code == 0, result.output


def test_invalid_input_exits_non_zero() -> None:
    _run("add-book", "Personal")

    bad_amount = _run(
        "add-transaction", "--book-id", "1", "--kind", "expense", "--amount", "-4"
    )
    missing_book = _run(
        "add-transaction", "--book-id", "42", "--kind", "income", "--amount", "4"
    )

    assert bad_amount.exit_code == 1
    assert missing_book.exit_code == 1
    assert "not found" in missing_book.output


def test_unknown_log_level_is_rejected() -> None:
    result = _run("--log-level", "loud", "books")
    assert result.exit_code == 2


def test_sync_without_remote_fails_cleanly() -> None:
    result = _run("sync")
    assert result.exit_code == 1
    assert "no remote configured" in result.output


def test_sync_against_sql_remote(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", bootstrap_remote_sqlite(tmp_path / "remote.db"))
    _run("add-book", "Personal")
    _run("add-transaction", "--book-id", "1", "--kind", "income", "--amount", "100")

    first = _run("sync")
    assert first.exit_code == 0, first.output
    assert "Sync complete." in first.output
    assert "Pushed 1 book(s), 1 transaction(s)" in first.output

    second = _run("sync")
    assert "Pushed 0 book(s), 0 transaction(s)" in second.output

    status = _run("status")
    assert "Total needing push: 0" in status.output


def test_delete_and_reset_sync() -> None:
    _run("add-book", "Trip")
    _run("add-transaction", "--book-id", "1", "--kind", "expense", "--amount", "3")

    deleted = _run("delete-book", "1")
    assert deleted.exit_code == 0, deleted.output
    assert "Deleted book 1 (1 transaction(s))." in deleted.output

    reset = _run("reset-sync", "--kind", "book")
    assert reset.exit_code == 0, reset.output
    assert "Marked 1 record(s) for re-push." in reset.output


def test_delete_unknown_book() -> None:
    result = _run("delete-book", "7")
    assert result.exit_code == 1
