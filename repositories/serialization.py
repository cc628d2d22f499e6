"""
Row (de)serialization helpers shared by the Supabase repositories.

Supabase returns timestamps as ISO-8601 strings (sometimes with a trailing
'Z'), numerics as numbers or strings, and UUIDs as strings.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional
from uuid import UUID

from domain.time import require_utc_timestamp

CENT = Decimal("0.01")


def to_iso_utc(dt: datetime, *, name: str) -> str:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def parse_utc_datetime(value: Any) -> datetime:
    """Parse a Supabase timestamp into a timezone-aware UTC datetime."""

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_optional_datetime(value: Any) -> Optional[datetime]:
    return parse_utc_datetime(value) if value is not None else None


def parse_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def to_decimal(value: Any) -> Decimal:
    return Decimal(str(value))


def optional_decimal(value: Any) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


def optional_uuid(value: Any) -> Optional[UUID]:
    return UUID(str(value)) if value is not None else None


def money(value: Optional[Decimal]) -> Optional[str]:
    """Serialize money rounded to cents; None stays None."""

    if value is None:
        return None
    return str(value.quantize(CENT, rounding=ROUND_HALF_UP))


def uuid_str(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value is not None else None
