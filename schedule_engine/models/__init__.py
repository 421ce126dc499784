"""Domain models used across the project."""

from .event import (  # noqa: F401
    ALL_DAY,
    CALENDAR_CATEGORIES,
    CLEARABLE_FIELDS,
    DATE_FIELDS,
    FEED_CATEGORIES,
    SEMESTER_OFF,
    Audience,
    DateRange,
    DateType,
    Embedding,
    Event,
    EventDate,
    MonthOnly,
    SingleDate,
    WeekInMonth,
)
from .ingestion import BackfillReport, IngestionSummary, NormalizationReport, RowIssue  # noqa: F401
from .query import EventFilter, ScoredEvent  # noqa: F401

__all__ = [
    "ALL_DAY",
    "CALENDAR_CATEGORIES",
    "CLEARABLE_FIELDS",
    "DATE_FIELDS",
    "FEED_CATEGORIES",
    "SEMESTER_OFF",
    "Audience",
    "DateRange",
    "DateType",
    "Embedding",
    "Event",
    "EventDate",
    "MonthOnly",
    "SingleDate",
    "WeekInMonth",
    "BackfillReport",
    "IngestionSummary",
    "NormalizationReport",
    "RowIssue",
    "EventFilter",
    "ScoredEvent",
]
