import math
from datetime import date, datetime, timedelta

from cadence.domain.constants import DAY_MS, DUE_DATE_FORMATS, DUE_DATE_WRITE_FORMAT


def parse_due_date(value, formats: list[str] = DUE_DATE_FORMATS) -> datetime | None:
    """Parse a stored due date. Returns None instead of raising on bad input."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None

    value = value.strip().lstrip("!")
    for fmt in formats:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def format_due_date(due: datetime) -> str:
    return due.strftime(DUE_DATE_WRITE_FORMAT)


def millis_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() * 1000


def days_until(due: datetime, now: datetime) -> int:
    """Whole days from now until due, rounded up (0 = later today or just passed)."""
    return math.ceil(millis_between(now, due) / DAY_MS)


def due_after(now: datetime, interval: float) -> datetime:
    return now + timedelta(days=interval)
