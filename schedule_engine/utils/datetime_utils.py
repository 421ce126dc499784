"""Utility functions for working with dates and times.

Spreadsheet cells carry dates in whatever shape the registrar typed them.
``interpret_date_expression`` runs an ordered cascade of formats and returns
every concrete day the expression names, tagged with how precise it was
(an exact day, a whole month, or a week of a month).
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterator, List, NamedTuple

__all__ = [
    "get_current_timestamp",
    "DateExpression",
    "interpret_date_expression",
    "parse_date",
    "month_from_value",
    "coerce_date",
    "to_storage_datetime",
    "iter_days",
    "week_display_day",
    "format_display_date",
    "format_long_date",
    "format_short_date",
    "ordinal",
]

MONTHS = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sept": 9, "sep": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

# Longest names first so "sept" wins over "sep" and "june" over "jun".
_MONTH = "(" + "|".join(sorted(MONTHS, key=len, reverse=True)) + r")\.?"

_SLASH_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_YMD_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_DMY_RE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_WEEK_RE = re.compile(_MONTH + r"\s+(\d)(?:st|nd|rd|th)?\s*week\b", re.IGNORECASE)
_MONTH_DAY_YEAR_RE = re.compile(
    "^" + _MONTH + r"\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})$", re.IGNORECASE
)
_MONTH_YEAR_RE = re.compile("^" + _MONTH + r",?\s+(\d{4})$", re.IGNORECASE)
_MONTH_DAYS_RE = re.compile("^" + _MONTH + r"\s+(\d[\d\s,]*)", re.IGNORECASE)
_MONTH_ONLY_RE = re.compile("^" + _MONTH + "$", re.IGNORECASE)

# Bounded by "(week-1)*7+1 <= 28"; a 5th week would otherwise spill into the
# next month on short months.
_LAST_SAFE_DAY = 28


class DateExpression(NamedTuple):
    """One concrete day named by a date expression.

    ``kind`` is ``"date"`` for exact days, ``"month"`` when only a month was
    given (``day`` is then the 1st) and ``"week"`` for week-of-month
    references (``day`` is the display approximation, ``week`` the number).
    """

    kind: str
    day: date
    week: int | None = None


def get_current_timestamp() -> datetime:
    """Return the current UTC datetime with micro-second precision.

    This object can be stored directly in MongoDB where it will be written as
    a BSON Date.
    """
    return datetime.now(tz=timezone.utc)


def ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def week_display_day(week: int) -> int:
    """Approximate day-of-month for the *week*-th week, for display and sort only."""
    return min((week - 1) * 7 + 1, _LAST_SAFE_DAY)


def month_from_value(value: Any) -> int | None:
    """Return a 1-12 month number from a number, numeric string or month name."""
    if value is None:
        return None
    if isinstance(value, int):
        return value if 1 <= value <= 12 else None
    text = str(value).strip().lower().rstrip(".")
    if not text:
        return None
    if text.isdigit():
        number = int(text)
        return number if 1 <= number <= 12 else None
    return MONTHS.get(text)


def _parse_iso(text: str) -> date | None:
    if not re.match(r"^\d{4}-\d{2}-\d{2}", text):
        return None
    candidate = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def interpret_date_expression(text: str, default_year: int) -> List[DateExpression]:
    """Resolve *text* into the days it names, or ``[]`` when it is unparseable.

    The cascade, first match wins: ISO-8601, ``MM/DD/YYYY`` (retried as
    ``DD/MM/YYYY``), ``YYYY-M-D``, ``DD-MM-YYYY``, ``"<Month> <N>th week"``,
    ``"<Month> <day>, <YYYY>"``, ``"<Month> <YYYY>"``, ``"<Month> <day list>"``
    and a bare ``"<Month>"``. Month-name forms without a year use
    *default_year*.
    """
    if not text:
        return []
    value = " ".join(str(text).split())
    if not value:
        return []

    iso = _parse_iso(value)
    if iso is not None:
        return [DateExpression("date", iso)]

    match = _SLASH_RE.match(value)
    if match:
        first, second, year = (int(g) for g in match.groups())
        day = _safe_date(year, first, second) or _safe_date(year, second, first)
        return [DateExpression("date", day)] if day else []

    match = _YMD_RE.match(value)
    if match:
        year, month, dom = (int(g) for g in match.groups())
        day = _safe_date(year, month, dom)
        return [DateExpression("date", day)] if day else []

    match = _DMY_RE.match(value)
    if match:
        dom, month, year = (int(g) for g in match.groups())
        day = _safe_date(year, month, dom)
        return [DateExpression("date", day)] if day else []

    match = _WEEK_RE.match(value)
    if match:
        month = MONTHS[match.group(1).lower()]
        week = int(match.group(2))
        if 1 <= week <= 5:
            return [DateExpression("week", date(default_year, month, week_display_day(week)), week)]
        return []

    match = _MONTH_DAY_YEAR_RE.match(value)
    if match:
        day = _safe_date(int(match.group(3)), MONTHS[match.group(1).lower()], int(match.group(2)))
        return [DateExpression("date", day)] if day else []

    match = _MONTH_YEAR_RE.match(value)
    if match:
        return [DateExpression("month", date(int(match.group(2)), MONTHS[match.group(1).lower()], 1))]

    match = _MONTH_DAYS_RE.match(value)
    if match:
        month = MONTHS[match.group(1).lower()]
        days: List[DateExpression] = []
        for token in re.findall(r"\d+", match.group(2)):
            number = int(token)
            if not 1 <= number <= 31:
                continue
            day = _safe_date(default_year, month, number)
            if day is not None and all(existing.day != day for existing in days):
                days.append(DateExpression("date", day))
        return days

    match = _MONTH_ONLY_RE.match(value)
    if match:
        return [DateExpression("month", date(default_year, MONTHS[match.group(1).lower()], 1))]

    return []


def parse_date(text: str, default_year: int) -> List[date]:
    """Return the concrete days named by *text* (display approximations included)."""
    return [expression.day for expression in interpret_date_expression(text, default_year)]


def coerce_date(value: Any, default_year: int | None = None) -> date | None:
    """Turn a stored or submitted date value into a :class:`date`.

    Accepts ``date``/``datetime`` objects (as read back from MongoDB) and any
    string the cascade understands; multi-day strings yield their first day.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    year = default_year if default_year is not None else get_current_timestamp().year
    days = parse_date(str(value), year)
    return days[0] if days else None


def to_storage_datetime(day: date) -> datetime:
    """Midnight UTC for *day*; every stored date uses this representation."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield each calendar day from *start* to *end* inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def format_display_date(day: date) -> str:
    """``Jan 5, 2025`` – the ``date`` field shown by the mobile client."""
    return f"{day:%b} {day.day}, {day.year}"


def format_long_date(day: date) -> str:
    return f"{day:%B} {day.day}, {day.year}"


def format_short_date(day: date, *, with_year: bool = False, long_month: bool = False) -> str:
    month = f"{day:%B}" if long_month else f"{day:%b}"
    text = f"{month} {day.day}"
    return f"{text}, {day.year}" if with_year else text
