from __future__ import annotations

import io
import logging
from collections.abc import Iterator

import pytest

import ledger_sync.logging_setup as logging_setup
from ledger_sync.logging_setup import configure_logging, get_logger, parse_level


@pytest.fixture()
def pkg_logger(monkeypatch: pytest.MonkeyPatch) -> Iterator[logging.Logger]:
    logger = logging.getLogger("ledger_sync")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    monkeypatch.setattr(logging_setup, "_CONFIGURED", False)
    logger.handlers = []
    yield logger
    logger.handlers, level, logger.propagate = saved
    logger.setLevel(level)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("debug", logging.DEBUG), (" Warning ", logging.WARNING), ("15", 15), ("loud", None)],
)
def test_parse_level(raw: str, expected: int | None) -> None:
    assert parse_level(raw) == expected


def test_silent_until_configured(pkg_logger: logging.Logger) -> None:
    get_logger("ledger_sync.engine")
    assert [type(h) for h in pkg_logger.handlers] == [logging.NullHandler]


def test_configure_once_with_explicit_level(pkg_logger: logging.Logger) -> None:
    stream = io.StringIO()
    get_logger("ledger_sync.engine")

    configure_logging("debug", fmt="%(name)s:%(message)s", stream=stream)
    configure_logging("error", stream=io.StringIO())
    get_logger("ledger_sync.engine").debug("pulled %d rows", 3)

    assert stream.getvalue() == "ledger_sync.engine:pulled 3 rows\n"
    assert len(pkg_logger.handlers) == 1
    assert not pkg_logger.propagate


def test_level_from_environment(
    pkg_logger: logging.Logger, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("LEDGER_SYNC_LOG_LEVEL", "warning")
    stream = io.StringIO()

    configure_logging(stream=stream)
    log = get_logger("ledger_sync.status")
    log.info("hidden")
    log.warning("shown")

    assert pkg_logger.level == logging.WARNING
    assert "shown" in stream.getvalue() and "hidden" not in stream.getvalue()
