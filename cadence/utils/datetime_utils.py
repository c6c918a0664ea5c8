"""DateTime utilities for timezone-aware timestamp handling."""

from datetime import date, datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC datetime without timezone info (offset-naive).

    Offset-naive values are compatible with TIMESTAMP WITHOUT TIME ZONE
    columns on PostgreSQL and with SQLite.

    Example:
        >>> utc_now().tzinfo is None
        True
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Lambda version for SQLAlchemy default/onupdate parameters
utc_now_lambda = lambda: datetime.now(timezone.utc).replace(tzinfo=None)


def coerce_date(value) -> Optional[date]:
    """
    Coerce a date-like value to a ``date``.

    Accepts ``date``, ``datetime`` and ISO-8601 strings. Returns None for
    None and empty strings so callers can skip undated records.

    Raises:
        ValueError: If a non-empty string is not a valid ISO date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        return date.fromisoformat(value[:10])
    raise ValueError(f"Unsupported date value: {value!r}")
