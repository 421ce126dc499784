"""Definition of the `Event` dataclass used throughout the project.

An event's date is a tagged union: ``Event.when`` holds exactly one of
:class:`SingleDate`, :class:`DateRange`, :class:`MonthOnly` or
:class:`WeekInMonth`, and each variant carries only the fields that are
authoritative for its ``dateType``. Everything else written to MongoDB
(``isoDate`` for month-only events, the ``date`` display string, ...) is
derived from the variant in :meth:`Event.to_document`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Union

from ..utils.datetime_utils import (
    coerce_date,
    format_display_date,
    month_from_value,
    to_storage_datetime,
    week_display_day,
)

# Type alias for embedding vectors
Embedding = List[float]

CALENDAR_CATEGORIES = ("Institutional", "Academic")
FEED_CATEGORIES = ("Announcement", "News", "Event")
SEMESTER_OFF = "Off"
ALL_DAY = "All Day"

# Every document key owned by the date variants. On update, keys the new
# variant does not write are unset so stale values cannot contradict it.
DATE_FIELDS = (
    "dateType",
    "isoDate",
    "date",
    "startDate",
    "endDate",
    "month",
    "year",
    "weekOfMonth",
)

# Optional keys to_document() omits when empty. Omitted ones are unset on
# write so a cleared value cannot outlive the embedding built without it.
CLEARABLE_FIELDS = (
    "semester",
    "userType",
    "type",
    "isPinned",
    "isUrgent",
)


class DateType(str, Enum):
    DATE = "date"
    DATE_RANGE = "date_range"
    MONTH_ONLY = "month_only"
    WEEK_IN_MONTH = "week_in_month"

    @classmethod
    def parse(cls, value: Any) -> "DateType | None":
        """Map a stored or typed value (legacy ``month``/``week`` included) to a member."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower().replace(" ", "_").replace("-", "_")
        if not text:
            return cls.DATE
        return _DATE_TYPE_ALIASES.get(text)


_DATE_TYPE_ALIASES = {
    "date": DateType.DATE,
    "single": DateType.DATE,
    "date_range": DateType.DATE_RANGE,
    "daterange": DateType.DATE_RANGE,
    "range": DateType.DATE_RANGE,
    "month_only": DateType.MONTH_ONLY,
    "monthonly": DateType.MONTH_ONLY,
    "month": DateType.MONTH_ONLY,
    "week_in_month": DateType.WEEK_IN_MONTH,
    "weekinmonth": DateType.WEEK_IN_MONTH,
    "week_of_month": DateType.WEEK_IN_MONTH,
    "week": DateType.WEEK_IN_MONTH,
}


class Audience(str, Enum):
    STUDENT = "student"
    FACULTY = "faculty"
    ALL = "all"


@dataclass(frozen=True, slots=True)
class SingleDate:
    day: date

    date_type: ClassVar[DateType] = DateType.DATE

    @property
    def display_day(self) -> date:
        return self.day

    def fields(self) -> Dict[str, Any]:
        return {
            "isoDate": to_storage_datetime(self.day),
            "year": self.day.year,
            "month": self.day.month,
        }


@dataclass(frozen=True, slots=True)
class DateRange:
    """A multi-day span; ``occurrence`` is the day this stored record marks."""

    start: date
    end: date
    occurrence: date | None = None

    date_type: ClassVar[DateType] = DateType.DATE_RANGE

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"date range ends ({self.end}) before it starts ({self.start})")
        if self.occurrence is None or not self.start <= self.occurrence <= self.end:
            object.__setattr__(self, "occurrence", self.start)

    @property
    def display_day(self) -> date:
        return self.occurrence  # type: ignore[return-value]

    @property
    def day_count(self) -> int:
        return (self.end - self.start).days + 1

    def fields(self) -> Dict[str, Any]:
        return {
            "isoDate": to_storage_datetime(self.display_day),
            "startDate": to_storage_datetime(self.start),
            "endDate": to_storage_datetime(self.end),
            "year": self.display_day.year,
            "month": self.display_day.month,
        }


@dataclass(frozen=True, slots=True)
class MonthOnly:
    year: int
    month: int

    date_type: ClassVar[DateType] = DateType.MONTH_ONLY

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be 1-12, got {self.month}")

    @property
    def display_day(self) -> date:
        return date(self.year, self.month, 1)

    def fields(self) -> Dict[str, Any]:
        return {
            "isoDate": to_storage_datetime(self.display_day),
            "month": self.month,
            "year": self.year,
        }


@dataclass(frozen=True, slots=True)
class WeekInMonth:
    year: int
    month: int
    week: int

    date_type: ClassVar[DateType] = DateType.WEEK_IN_MONTH

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be 1-12, got {self.month}")
        if not 1 <= self.week <= 5:
            raise ValueError(f"week of month must be 1-5, got {self.week}")

    @property
    def display_day(self) -> date:
        return date(self.year, self.month, week_display_day(self.week))

    def fields(self) -> Dict[str, Any]:
        return {
            "isoDate": to_storage_datetime(self.display_day),
            "weekOfMonth": self.week,
            "month": self.month,
            "year": self.year,
        }


EventDate = Union[SingleDate, DateRange, MonthOnly, WeekInMonth]


@dataclass(slots=True)
class Event:
    """A calendar entry or feed post stored in the ``schedule`` collection."""

    title: str
    when: EventDate
    description: str = ""
    category: str = CALENDAR_CATEGORIES[0]
    time: str = ALL_DAY
    semester: int | str | None = None
    user_type: str | None = None
    type: str | None = None
    source: str = "Manual Entry"
    created_by: str | None = None
    image_file_id: str | None = None
    image_url: str | None = None
    is_pinned: bool = False
    is_urgent: bool = False
    embedding: Embedding | None = None
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def date_type(self) -> DateType:
        return self.when.date_type

    @property
    def display_day(self) -> date:
        return self.when.display_day

    @property
    def iso_date(self) -> datetime:
        return to_storage_datetime(self.when.display_day)

    @property
    def year(self) -> int:
        return self.when.display_day.year

    def date_document(self) -> Dict[str, Any]:
        """Return the date keys for the active variant, derived values included."""
        document = {"dateType": self.date_type.value, **self.when.fields()}
        document["date"] = format_display_date(self.display_day)
        return document

    def to_document(self, *, include_embedding: bool = True) -> Dict[str, Any]:
        """Serialise to the MongoDB document shape shared with the mobile client."""
        document: Dict[str, Any] = {
            **self.extra,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "time": self.time,
            "source": self.source,
            **self.date_document(),
        }
        optional = {
            "semester": self.semester,
            "userType": self.user_type,
            "type": self.type,
            "createdBy": self.created_by,
            "imageFileId": self.image_file_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        document.update({key: value for key, value in optional.items() if value is not None})
        if self.image_url:
            document["image"] = self.image_url
            document["images"] = [self.image_url]
        if self.is_pinned:
            document["isPinned"] = True
        if self.is_urgent:
            document["isUrgent"] = True
        if include_embedding and self.embedding:
            document["embedding"] = list(self.embedding)
        return document

    def to_response(self) -> Dict[str, Any]:
        """JSON-safe view for API responses: string id, ISO dates, no vector."""
        document = self.to_document(include_embedding=False)
        for key, value in list(document.items()):
            if isinstance(value, (datetime, date)):
                document[key] = value.isoformat()
        document["id"] = self.id
        document.setdefault("isPinned", False)
        document.setdefault("isUrgent", False)
        document.setdefault("images", [])
        return document

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "Event":
        """Rebuild an Event from a stored document.

        Raises ``ValueError`` when the document has no usable date.
        """
        known = {
            "_id", "title", "description", "category", "time", "semester", "userType",
            "type", "source", "createdBy", "uploadedBy", "imageFileId", "image", "images",
            "isPinned", "isUrgent", "embedding", "createdAt", "updatedAt", "score",
            "similarity", *DATE_FIELDS,
        }
        raw_id = document.get("_id")
        return cls(
            title=str(document.get("title") or ""),
            when=date_from_document(document),
            description=str(document.get("description") or ""),
            category=str(document.get("category") or CALENDAR_CATEGORIES[0]),
            time=str(document.get("time") or ALL_DAY),
            semester=_stored_semester(document.get("semester")),
            user_type=document.get("userType") or None,
            type=document.get("type") or None,
            source=str(document.get("source") or "Manual Entry"),
            created_by=document.get("createdBy") or document.get("uploadedBy"),
            image_file_id=str(document["imageFileId"]) if document.get("imageFileId") else None,
            image_url=document.get("image") or None,
            is_pinned=bool(document.get("isPinned", False)),
            is_urgent=bool(document.get("isUrgent", False)),
            embedding=list(document["embedding"]) if document.get("embedding") else None,
            id=str(raw_id) if raw_id is not None else None,
            created_at=document.get("createdAt"),
            updated_at=document.get("updatedAt"),
            extra={key: value for key, value in document.items() if key not in known},
        )


def _stored_semester(value: Any) -> int | str | None:
    if value is None or value == "":
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    if text.lower() == "off":
        return SEMESTER_OFF
    return text


def _int_or_none(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def date_from_document(document: Mapping[str, Any]) -> EventDate:
    """Return the date variant encoded by a stored or merged document."""
    kind = DateType.parse(document.get("dateType")) or DateType.DATE
    iso_day = coerce_date(document.get("isoDate")) or coerce_date(document.get("date"))

    if kind is DateType.DATE_RANGE:
        start = coerce_date(document.get("startDate"))
        end = coerce_date(document.get("endDate"))
        if start and end:
            return DateRange(start, end, iso_day)
    elif kind in (DateType.MONTH_ONLY, DateType.WEEK_IN_MONTH):
        month = month_from_value(document.get("month"))
        year = _int_or_none(document.get("year"))
        if iso_day is not None:
            month = month or iso_day.month
            year = year or iso_day.year
        week = _int_or_none(document.get("weekOfMonth"))
        if month and year:
            if kind is DateType.WEEK_IN_MONTH and week:
                return WeekInMonth(year, month, week)
            if kind is DateType.MONTH_ONLY:
                return MonthOnly(year, month)

    if iso_day is None:
        raise ValueError(f"document {document.get('_id')!r} has no usable date")
    return SingleDate(iso_day)


__all__ = [
    "Embedding",
    "Event",
    "EventDate",
    "SingleDate",
    "DateRange",
    "MonthOnly",
    "WeekInMonth",
    "DateType",
    "Audience",
    "CALENDAR_CATEGORIES",
    "FEED_CATEGORIES",
    "SEMESTER_OFF",
    "ALL_DAY",
    "DATE_FIELDS",
    "CLEARABLE_FIELDS",
    "date_from_document",
]
