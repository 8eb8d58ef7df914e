"""Date helpers.

All same-day comparisons in the app go through :func:`same_day` or
:func:`day_window`, which look at the calendar day in the app timezone.
Dates submitted by browsers usually carry some time-of-day noise, so
exact timestamp equality is never used.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from typing import Any

import pytz

from . import get_timezone
from .errors import ValidationError

UTC = pytz.utc

_TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_DATE_ONLY_LENGTH = len("YYYY-MM-DD")


def parse_date(value: Any) -> datetime:  # noqa: ANN401
    """Return an aware datetime for a submitted date.

    Naive values are taken to be in the app timezone and a date
    without time means local midnight.
    """
    tz = get_timezone()
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return tz.localize(value)
        return value
    if isinstance(value, date):
        return tz.localize(datetime.combine(value, time.min))
    if not isinstance(value, str) or not value.strip():
        msg = f"Invalid date: {value!r}"
        raise ValidationError(msg)

    text = value.strip()
    try:
        if len(text) == _DATE_ONLY_LENGTH:
            return tz.localize(datetime.combine(date.fromisoformat(text), time.min))
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    except ValueError:
        msg = f"Invalid date: {value!r}"
        raise ValidationError(msg) from None
    if parsed.tzinfo is None:
        return tz.localize(parsed)
    return parsed


def local_day(value: Any) -> date:  # noqa: ANN401
    """Return the calendar day of a value in the app timezone."""
    return parse_date(value).astimezone(get_timezone()).date()


def day_window(value: Any) -> tuple[datetime, datetime]:  # noqa: ANN401
    """Return the ``[start, end)`` bounds of the local day containing value."""
    tz = get_timezone()
    day = local_day(value)
    start = tz.localize(datetime.combine(day, time.min))
    end = tz.localize(datetime.combine(day + timedelta(days=1), time.min))
    return start, end


def same_day(first: Any, second: Any) -> bool:  # noqa: ANN401
    """Check whether two values fall on the same local calendar day."""
    return local_day(first) == local_day(second)


def to_utc_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC, as stored by SQL backends.

    Neither SQLite nor MariaDB keep timezones, so everything is
    persisted in UTC without tzinfo.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def from_utc_naive(value: datetime) -> datetime:
    """Return an aware UTC datetime from a stored one."""
    if value.tzinfo is None:
        return UTC.localize(value)
    return value.astimezone(UTC)


def isoformat(value: datetime) -> str:
    """Format a datetime the way the API sends dates: UTC, milliseconds, Z."""
    utc = from_utc_naive(value)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def parse_time_of_day(value: Any, field: str = "time") -> str:  # noqa: ANN401
    """Validate a ``HH:MM`` time of day and return it unchanged."""
    if not isinstance(value, str) or not _TIME_OF_DAY.match(value.strip()):
        msg = f"Invalid {field}: {value!r}. Expected HH:MM."
        raise ValidationError(msg)
    return value.strip()
