"""
Date helpers for ledger arithmetic.

MongoDB hands back naive datetimes unless the client is tz-aware, so every
datetime read from a document goes through `as_utc` before comparison.
Ledger dates are day-granular and stored at midnight UTC.
"""
from datetime import date, datetime, time, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[Union[datetime, date]]) -> Optional[datetime]:
    """Normalize a stored or user-supplied date to an aware UTC datetime."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(value: Union[datetime, date]) -> datetime:
    """Truncate to midnight UTC."""
    dt = as_utc(value)
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def day_key(value: Union[datetime, date]) -> str:
    """ISO day string used in de-duplication keys."""
    return as_utc(value).date().isoformat()


def month_start(value: Union[datetime, date]) -> datetime:
    return start_of_day(value).replace(day=1)


def add_months(value: datetime, months: int) -> datetime:
    """Add months to a first-of-month datetime."""
    index = value.year * 12 + (value.month - 1) + months
    return value.replace(year=index // 12, month=index % 12 + 1, day=1)


def same_month(a: datetime, b: datetime) -> bool:
    a, b = as_utc(a), as_utc(b)
    return a.year == b.year and a.month == b.month
