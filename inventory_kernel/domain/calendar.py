"""
Calendar -- day boundaries in the one canonical timezone.

The ledger reports per calendar day.  A timestamp belongs to the day it
falls on in the configured day timezone; nothing else in the system decides
which day an event is on.
"""

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Iterator
from zoneinfo import ZoneInfo


def resolve_timezone(name: str | None) -> tzinfo:
    """Return the tzinfo for an IANA name ("UTC" and None map to timezone.utc)."""
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def local_date(instant: datetime, tz: tzinfo) -> date:
    """Calendar day of ``instant`` in ``tz``.  Naive instants are read as ``tz``."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=tz)
    return instant.astimezone(tz).date()


def iter_days(start_date: date, end_date: date) -> Iterator[date]:
    """Yield every day of [start_date, end_date] inclusive."""
    day = start_date
    one = timedelta(days=1)
    while day <= end_date:
        yield day
        day += one


def days_between(start_date: date, end_date: date) -> int:
    """Number of days in the inclusive range (0 if start > end)."""
    return max((end_date - start_date).days + 1, 0)
