"""Turn spreadsheet rows and submitted payloads into :class:`Event` objects.

Spreadsheet rows never abort an upload: a row whose date cannot be read is
logged, recorded as a :class:`RowIssue` and skipped. Payload validation is
strict and raises :class:`ValidationError` naming the offending field.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, List, Mapping, Sequence

from ..errors import ValidationError
from ..models import (
    ALL_DAY,
    CALENDAR_CATEGORIES,
    SEMESTER_OFF,
    Audience,
    DateRange,
    DateType,
    Event,
    EventDate,
    MonthOnly,
    NormalizationReport,
    RowIssue,
    SingleDate,
    WeekInMonth,
)
from ..utils.datetime_utils import (
    DateExpression,
    coerce_date,
    get_current_timestamp,
    interpret_date_expression,
    iter_days,
    month_from_value,
)
from ..utils.text_cleaning import clean_cell, normalize_token
from .spreadsheet import FieldMap, detect_schema, read_csv_rows

logger = logging.getLogger(__name__)

CSV_SOURCE = "CSV Upload"

INVALID_DATE_MARKERS = ("within this semester", "within semester", "tbd", "tba", "to be determined")
_DATE_TYPE_WORDS = {"date", "date_range", "month_only", "week_in_month", "week", "month"}

_FIRST_SEMESTER = {"1", "first", "1st"}
_SECOND_SEMESTER = {"2", "second", "2nd"}
_SEMESTER_SUFFIXES = (" semester", " sem")

_AUDIENCE_SYNONYMS = {
    Audience.STUDENT: {"student", "students", "student only", "students only", "learner", "learners"},
    Audience.FACULTY: {
        "faculty", "faculties", "faculty only", "staff", "teachers", "professors", "instructors",
    },
    Audience.ALL: {"all", "everyone", "public", "general", "both", "all students", "all faculty"},
}


# ---------------------------------------------------------------------------
# Field-level normalisers
# ---------------------------------------------------------------------------

def normalize_semester(value: Any) -> int | str | None:
    """Map a semester cell to ``1``, ``2`` or ``"Off"``; ``None`` when unrecognised."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value in (1, 2) else None
    token = normalize_token(value)
    if not token:
        return None
    if token in ("off", "off semester", "off sem"):
        return SEMESTER_OFF
    for suffix in _SEMESTER_SUFFIXES:
        if token.endswith(suffix):
            token = token[: -len(suffix)].strip()
            break
    if token in _FIRST_SEMESTER:
        return 1
    if token in _SECOND_SEMESTER:
        return 2
    return None


def normalize_user_type(value: Any) -> str | None:
    """Map audience synonyms to ``student``, ``faculty`` or ``all``."""
    text = " ".join(str(value or "").split()).lower()
    if not text:
        return None
    for audience, synonyms in _AUDIENCE_SYNONYMS.items():
        if text in synonyms:
            return audience.value
    return None


def normalize_category(value: Any) -> str:
    """Spreadsheet rows are calendar entries: Academic or Institutional."""
    text = clean_cell(value).lower()
    for category in CALENDAR_CATEGORIES:
        if text == category.lower():
            return category
    return CALENDAR_CATEGORIES[0]


def is_invalid_date_marker(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in INVALID_DATE_MARKERS)


def variant_from_expression(expression: DateExpression) -> EventDate:
    if expression.kind == "month":
        return MonthOnly(expression.day.year, expression.day.month)
    if expression.kind == "week":
        return WeekInMonth(expression.day.year, expression.day.month, expression.week or 1)
    return SingleDate(expression.day)


# ---------------------------------------------------------------------------
# Spreadsheet rows
# ---------------------------------------------------------------------------

class _RowSkipped(Exception):
    """Internal signal carrying the reason a row produced no events."""


def _row_year(fields: FieldMap, row: Sequence[str], default_year: int) -> int:
    raw = fields.value(row, "year")
    if not raw:
        return default_year
    try:
        return int(float(raw))
    except ValueError:
        raise _RowSkipped(f"invalid Year {raw!r}") from None


def _row_month(fields: FieldMap, row: Sequence[str]) -> int:
    raw = fields.value(row, "month")
    month = month_from_value(raw)
    if month is None:
        raise _RowSkipped(f"invalid or missing Month {raw!r}")
    return month


def _parse_day(text: str, label: str, year: int) -> date:
    expressions = interpret_date_expression(text, year)
    if not expressions:
        raise _RowSkipped(f"could not parse {label} {text!r}")
    return expressions[0].day


def _typed_row_dates(fields: FieldMap, row: Sequence[str], default_year: int) -> List[EventDate]:
    """Date variants for a row of a DateType/StartDate/EndDate sheet."""
    raw_type = fields.value(row, "date_type")
    date_type = DateType.parse(raw_type)
    if date_type is None:
        raise _RowSkipped(f"unknown DateType {raw_type!r}")
    year = _row_year(fields, row, default_year)

    if date_type is DateType.MONTH_ONLY:
        return [MonthOnly(year, _row_month(fields, row))]

    if date_type is DateType.WEEK_IN_MONTH:
        raw_week = fields.value(row, "week_of_month")
        if not raw_week.isdigit() or not 1 <= int(raw_week) <= 5:
            raise _RowSkipped(f"week-in-month row needs WeekOfMonth 1-5, got {raw_week!r}")
        return [WeekInMonth(year, _row_month(fields, row), int(raw_week))]

    start_text = fields.value(row, "start_date")
    if date_type is DateType.DATE_RANGE:
        end_text = fields.value(row, "end_date")
        if not start_text or not end_text:
            raise _RowSkipped("date range needs both StartDate and EndDate")
        start = _parse_day(start_text, "StartDate", year)
        end = _parse_day(end_text, "EndDate", year)
        if end < start:
            raise _RowSkipped(f"EndDate {end} is before StartDate {start}")
        if start == end:
            return [SingleDate(start)]
        return [DateRange(start, end, day) for day in iter_days(start, end)]

    text = start_text or fields.value(row, "date")
    if not text:
        raise _RowSkipped("missing StartDate")
    if is_invalid_date_marker(text):
        raise _RowSkipped(f"invalid date entry {text!r}")
    expressions = interpret_date_expression(text, year)
    if not expressions:
        raise _RowSkipped(f"could not parse StartDate {text!r}")
    return [variant_from_expression(expression) for expression in expressions]


def _legacy_row_dates(fields: FieldMap, row: Sequence[str], default_year: int) -> List[EventDate]:
    """Date variants for a sheet with a single free-form date column."""
    text = fields.value(row, "date")
    if not text:
        raise _RowSkipped("missing date")
    if text.lower() in _DATE_TYPE_WORDS:
        raise _RowSkipped(f"date column holds a DateType value {text!r}; check the header row")
    if is_invalid_date_marker(text):
        raise _RowSkipped(f"invalid date entry {text!r}")
    year = _row_year(fields, row, default_year)
    expressions = interpret_date_expression(text, year)
    if not expressions:
        raise _RowSkipped(f"could not parse date {text!r}")
    return [variant_from_expression(expression) for expression in expressions]


def normalize_rows(
    rows: Sequence[Sequence[str]] | str,
    *,
    default_year: int | None = None,
    created_by: str | None = None,
) -> NormalizationReport:
    """Detect the header of *rows* and expand every data row into events.

    *rows* may be raw CSV text. Raises :class:`SchemaDetectionError` when the
    header is unusable; individual bad rows only add to ``report.issues``.
    """
    if isinstance(rows, str):
        rows = read_csv_rows(rows)
    report = NormalizationReport()
    if not rows:
        return report

    fields = detect_schema(rows[0])
    year = default_year if default_year is not None else get_current_timestamp().year
    row_dates = _typed_row_dates if fields.is_new_format else _legacy_row_dates

    for index, row in enumerate(rows[1:], start=2):
        title = fields.value(row, "title")
        if not title:
            continue
        try:
            variants = row_dates(fields, row, year)
        except _RowSkipped as exc:
            logger.warning("Skipping row %d (%s): %s", index, title, exc)
            report.issues.append(RowIssue(index, str(exc)))
            continue

        raw_semester = fields.value(row, "semester")
        semester = normalize_semester(raw_semester)
        if raw_semester and semester is None:
            logger.warning("Row %d: invalid semester %r, expected 1, 2 or Off", index, raw_semester)

        common = {
            "title": title,
            "description": fields.value(row, "description"),
            "category": normalize_category(fields.value(row, "category")),
            "time": fields.value(row, "time") or ALL_DAY,
            "semester": semester,
            "user_type": normalize_user_type(fields.value(row, "user_type")) or Audience.ALL.value,
            "source": CSV_SOURCE,
            "created_by": created_by,
        }
        report.events.extend(Event(when=variant, **common) for variant in variants)

    logger.info(
        "Normalised %d events from %d rows (%d skipped)",
        len(report.events),
        len(rows) - 1,
        len(report.issues),
    )
    return report


# ---------------------------------------------------------------------------
# Structured payloads (JSON bodies, form posts, updates)
# ---------------------------------------------------------------------------

def _require_date(data: Mapping[str, Any], key: str, default_year: int) -> date:
    value = data.get(key)
    day = coerce_date(value, default_year)
    if day is None:
        if value in (None, ""):
            raise ValidationError(f"{key} is required", field=key)
        raise ValidationError(f"{key} is not a valid date: {value!r}", field=key)
    return day


def _require_int(data: Mapping[str, Any], key: str, low: int, high: int) -> int:
    value = data.get(key)
    number = month_from_value(value) if key == "month" else None
    if number is None:
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{key} is required", field=key) from None
    if not low <= number <= high:
        raise ValidationError(f"{key} must be between {low} and {high}", field=key)
    return number


def date_from_payload(data: Mapping[str, Any], *, default_year: int | None = None) -> EventDate:
    """Build the date variant named by ``data['dateType']`` from camelCase keys."""
    year = default_year if default_year is not None else get_current_timestamp().year
    date_type = DateType.parse(data.get("dateType"))
    if date_type is None:
        raise ValidationError(f"unknown dateType {data.get('dateType')!r}", field="dateType")

    if date_type is DateType.DATE_RANGE:
        start = _require_date(data, "startDate", year)
        end = _require_date(data, "endDate", year)
        if end < start:
            raise ValidationError("endDate must not be before startDate", field="endDate")
        return DateRange(start, end, coerce_date(data.get("isoDate"), year))

    if date_type is DateType.MONTH_ONLY:
        return MonthOnly(_require_int(data, "year", 1, 9999), _require_int(data, "month", 1, 12))

    if date_type is DateType.WEEK_IN_MONTH:
        return WeekInMonth(
            _require_int(data, "year", 1, 9999),
            _require_int(data, "month", 1, 12),
            _require_int(data, "weekOfMonth", 1, 5),
        )

    key = "isoDate" if data.get("isoDate") not in (None, "") else "date"
    if key == "date" and data.get("date") in (None, ""):
        raise ValidationError("isoDate or date is required", field="isoDate")
    return SingleDate(_require_date(data, key, year))


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def event_from_payload(
    data: Mapping[str, Any],
    *,
    source: str = "Manual Entry",
    created_by: str | None = None,
    default_category: str = "Event",
    default_year: int | None = None,
) -> Event:
    """Validate a manual entry payload and build an :class:`Event`."""
    title = clean_cell(data.get("title"))
    if not title:
        raise ValidationError("title is required", field="title")
    when = date_from_payload(data, default_year=default_year)

    semester = normalize_semester(data.get("semester"))
    if data.get("semester") not in (None, "") and semester is None:
        logger.warning("Ignoring unrecognised semester %r for %s", data.get("semester"), title)

    return Event(
        title=title,
        when=when,
        description=str(data.get("description") or "").strip(),
        category=clean_cell(data.get("category")) or default_category,
        time=clean_cell(data.get("time")) or ALL_DAY,
        semester=semester,
        user_type=normalize_user_type(data.get("userType")),
        type=clean_cell(data.get("type")) or None,
        source=clean_cell(data.get("source")) or source,
        created_by=created_by,
        is_pinned=_flag(data.get("isPinned", False)),
        is_urgent=_flag(data.get("isUrgent", False)),
    )


__all__ = [
    "CSV_SOURCE",
    "INVALID_DATE_MARKERS",
    "normalize_semester",
    "normalize_user_type",
    "normalize_category",
    "is_invalid_date_marker",
    "variant_from_expression",
    "normalize_rows",
    "date_from_payload",
    "event_from_payload",
]
