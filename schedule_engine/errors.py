"""Exception types raised by the schedule engine.

Validation errors are raised before any write happens. Store failures are
not wrapped: ``pymongo.errors.PyMongoError`` reaches the caller unchanged.
"""

from __future__ import annotations

from typing import Iterable


class ScheduleError(Exception):
    """Base class for schedule engine errors."""


class ValidationError(ScheduleError):
    """Raised when caller input is missing, malformed or out of bounds."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class SchemaDetectionError(ValidationError):
    """Raised when a spreadsheet header does not carry enough known columns."""

    def __init__(self, message: str, *, found_fields: Iterable[str] = ()) -> None:
        super().__init__(message, field="header")
        self.found_fields = list(found_fields)


class PayloadTooLargeError(ValidationError):
    """Raised when a request body exceeds the configured size cap."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"Payload too large (max {limit // (1024 * 1024)}MB)", field="body")
        self.limit = limit


class EventNotFoundError(ScheduleError):
    """Raised when no stored event matches the requested id."""

    def __init__(self, event_id: str) -> None:
        super().__init__(f"Event not found: {event_id}")
        self.event_id = event_id


class EmbeddingError(ScheduleError):
    """Raised by embedding providers; always handled by the generator."""


__all__ = [
    "ScheduleError",
    "ValidationError",
    "SchemaDetectionError",
    "PayloadTooLargeError",
    "EventNotFoundError",
    "EmbeddingError",
]
