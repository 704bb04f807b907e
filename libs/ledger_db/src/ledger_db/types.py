"""Timestamp helpers and the column types used for sync timestamps and amounts.

All timestamps handled by the workspace are timezone-aware UTC datetimes.
Locally they are persisted as fixed-width ISO-8601 strings
(``YYYY-MM-DDTHH:MM:SS.ffffff+00:00``) so that SQL string comparison and
ordering agree with chronological order. Naive inputs are interpreted as UTC.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Numeric, String
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeDecorator

EPOCH: datetime = datetime(1970, 1, 1, tzinfo=UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(raw: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix and space separator accepted)."""

    if isinstance(raw, datetime):
        return ensure_utc(raw)
    s = str(raw).strip()
    if not s:
        raise ValueError("empty timestamp")
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(s))


def format_timestamp(value: datetime) -> str:
    return ensure_utc(value).isoformat(timespec="microseconds")


class IsoDateTime(TypeDecorator[datetime]):
    """Store aware datetimes as sortable UTC ISO-8601 strings."""

    impl = String(32)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> str | None:
        if value is None:
            return None
        return format_timestamp(parse_timestamp(value))

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return parse_timestamp(value)


class Amount(TypeDecorator[Decimal]):
    """Non-negative magnitude stored as a plain SQL number, read back unscaled.

    No fixed scale is applied on the way out, so ``0.125`` written by another
    client comes back as ``Decimal("0.125")``.
    """

    impl = Numeric(asdecimal=False)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> Decimal | None:
        if value is None:
            return None
        return Decimal(str(value))

    def process_result_value(self, value: Any, dialect: Dialect) -> Decimal | None:
        if value is None:
            return None
        return Decimal(str(value))


__all__ = [
    "EPOCH",
    "Amount",
    "IsoDateTime",
    "ensure_utc",
    "format_timestamp",
    "parse_timestamp",
    "utc_now",
]
