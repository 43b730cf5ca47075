"""
Calendar Date Helpers

All ledger date arithmetic works on calendar days of UTC-normalized dates,
so the time of day (and DST or timezone offsets) never shifts a due date.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Union
import re

from .money import InvalidInputError

DateInput = Union[date, datetime, str]

_ISO_DATE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
_BR_DATE = re.compile(r'^\d{2}/\d{2}/\d{4}$')


def parse_date(value: DateInput, field: str = "date") -> date:
    """
    Normalize a date input to a UTC calendar date

    Accepts ``date``, ``datetime`` (aware values are converted to UTC first),
    ISO-8601 strings (date or datetime) and Brazilian ``DD/MM/YYYY`` strings.

    Raises:
        InvalidInputError: If the value cannot be read as a date
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()

    if isinstance(value, date):
        return value

    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{field} must be a date or ISO-8601 string, got {value!r}")

    raw = value.strip()
    try:
        if _ISO_DATE.match(raw):
            return date.fromisoformat(raw)
        if _BR_DATE.match(raw):
            day, month, year = (int(part) for part in raw.split('/'))
            return date(year, month, day)
        return parse_date(datetime.fromisoformat(raw.replace('Z', '+00:00')), field)
    except ValueError:
        raise InvalidInputError(f"Cannot parse {field} {value!r}") from None


def to_iso_date(value: DateInput) -> str:
    """Format as YYYY-MM-DD"""
    return parse_date(value).isoformat()


def format_br_date(value: DateInput) -> str:
    """Format as DD/MM/YYYY"""
    return parse_date(value).strftime('%d/%m/%Y')


def days_between(start: DateInput, end: DateInput) -> int:
    """Whole calendar days from start to end (negative when end is earlier)"""
    return (parse_date(end) - parse_date(start)).days


def is_weekend(value: date) -> bool:
    return value.weekday() >= 5


def add_days(start: DateInput, days: int, skip_weekends: bool = False) -> date:
    """
    Add calendar days, or business days when skip_weekends is set

    With skip_weekends, only weekdays are counted and a result landing on a
    weekend rolls forward to Monday.
    """
    current = parse_date(start)
    if not skip_weekends:
        return current + timedelta(days=days)

    added = 0
    while added < days:
        current += timedelta(days=1)
        if not is_weekend(current):
            added += 1

    if days > 0:
        while is_weekend(current):
            current += timedelta(days=1)

    return current
