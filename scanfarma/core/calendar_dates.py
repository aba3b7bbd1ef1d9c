"""
Centralized calendar-date logic for ScanFarma.

Expiration checks are done at day granularity only. Timestamps are never
compared against expiration dates: a datetime is truncated to its date part
first, and "today" is always the calendar date in the pharmacy's own timezone.

Example: at 23:30 on Jan 14 in America/Argentina/Buenos_Aires it is already
         Jan 15 in UTC, but a batch expiring Jan 15 is still EXPIRING (not
         EXPIRED) for that pharmacy until its local midnight.
"""
import logging
import re
from datetime import date, datetime, timedelta
from typing import Optional, Union

import pytz

from scanfarma.core.errors import ValidationError

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str]

ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def today_for(pharmacy_timezone: Optional[str] = None, now: Optional[datetime] = None) -> date:
    """
    Return the current calendar date for a pharmacy.

    Args:
        pharmacy_timezone: IANA timezone string (e.g., "America/Montevideo").
                           If None, UTC is used.
        now: Override for the current instant (timezone-aware or UTC-naive)

    Returns:
        The local calendar date

    Examples:
        >>> today_for("America/New_York", datetime(2026, 1, 15, 3, 0, tzinfo=pytz.UTC))
        datetime.date(2026, 1, 14)
    """
    if now is None:
        now = datetime.now(pytz.UTC)
    elif now.tzinfo is None:
        now = pytz.UTC.localize(now)

    tz = pytz.UTC
    if pharmacy_timezone:
        try:
            tz = pytz.timezone(pharmacy_timezone)
        except pytz.UnknownTimeZoneError:
            logger.warning(f"Unknown timezone {pharmacy_timezone!r}, falling back to UTC")

    return now.astimezone(tz).date()


def as_calendar_date(value: DateLike, field: str = "date") -> date:
    """
    Coerce a value to a plain calendar date.

    Accepts a ``date``, a ``datetime`` (its time part is dropped, never
    converted) or a strict ``YYYY-MM-DD`` string.

    Raises:
        ValidationError: if the value is empty or not a valid ISO date
    """
    # datetime is a subclass of date, so it has to be checked first
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        # fromisoformat also takes basic and week formats on newer Pythons
        if not ISO_DATE.match(text):
            raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD", field=field)
        try:
            return date.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD", field=field)
    raise ValidationError(f"{field} is required", field=field)


def add_days(d: date, days: int) -> date:
    """Shift a calendar date by a number of days."""
    return d + timedelta(days=days)


def days_between(start: date, end: date) -> int:
    """
    Whole days from ``start`` to ``end`` (negative if ``end`` is earlier).

    Examples:
        >>> days_between(date(2026, 1, 10), date(2026, 2, 1))
        22
    """
    return (end - start).days
