"""Logging for ``ledger_sync``.

Modules log through ``get_logger("ledger_sync.<module>")`` and stay silent
until an entrypoint calls :func:`configure_logging` (the CLI does so in its
root callback). Sync progress is logged at info, per-record failures at
warning or error.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "ledger_sync"
_LEVEL_ENV = "LEDGER_SYNC_LOG_LEVEL"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def parse_level(name: str) -> int | None:
    """Level for a name such as ``"debug"`` or a numeric string; ``None`` if unknown."""

    name = name.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelName(name)
    return numeric if isinstance(numeric, int) else None


def _resolve_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    for candidate in (level, os.getenv(_LEVEL_ENV)):
        if candidate:
            parsed = parse_level(candidate)
            if parsed is not None:
                return parsed
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Attach one stream handler to the ``ledger_sync`` logger, once per process.

    ``level`` falls back to ``LEDGER_SYNC_LOG_LEVEL``, then INFO. ``stream``
    defaults to the ``sys.stderr`` current at call time.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _resolve_level(level)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))
    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)
