"""Timezone-explicit date helpers shared by the aggregators.

Every calendar-day computation takes the zone as an argument; nothing here
reads the wall clock or the host timezone.
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo

SECONDS_PER_DAY = 24 * 60 * 60


def normalize_dt(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_day(value: datetime, tz: tzinfo) -> date:
    return normalize_dt(value).astimezone(tz).date()


def day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Return the UTC instants of the first and last microsecond of ``day`` in ``tz``."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    next_start = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return normalize_dt(start), normalize_dt(next_start) - timedelta(microseconds=1)


def days_between(later: datetime, earlier: datetime) -> int:
    delta = normalize_dt(later) - normalize_dt(earlier)
    return int(delta.total_seconds() // SECONDS_PER_DAY)


def iter_days(first: date, last: date):
    current = first
    while current <= last:
        yield current
        current += timedelta(days=1)


def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def month_start(day: date) -> date:
    return day.replace(day=1)
