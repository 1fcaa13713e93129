# backend/utils/dates.py
import re
from datetime import date, datetime
from typing import Union

from exceptions import InvalidInputError

CALENDAR_DATE_FORMAT = "%Y-%m-%d"
_CALENDAR_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_calendar_date(value: Union[str, date]) -> date:
    """Parse a strict YYYY-MM-DD string into a date with no time component."""
    # datetime is a subclass of date; drop the time of day
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _CALENDAR_DATE_RE.match(value.strip()):
        raise InvalidInputError(f"Invalid date format: {value!r}, expected YYYY-MM-DD")
    try:
        return datetime.strptime(value.strip(), CALENDAR_DATE_FORMAT).date()
    except ValueError:
        raise InvalidInputError(f"Invalid calendar date: {value!r}")


def format_calendar_date(value: date) -> str:
    return value.strftime(CALENDAR_DATE_FORMAT)
