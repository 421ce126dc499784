"""Query criteria and ranked results for the retrieval engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict

from .event import Event

SURFACE_CALENDAR = "calendar"
SURFACE_FEED = "feed"
SURFACE_ALL = "all"


@dataclass(slots=True)
class EventFilter:
    """Structured filter for :func:`schedule_engine.services.retrieval.RetrievalEngine.list_events`.

    ``surface`` picks the category partition when no explicit ``category``
    or ``type`` is given: ``"calendar"`` (Institutional/Academic),
    ``"feed"`` (Announcement/News/Event) or ``"all"``.
    """

    start_date: date | None = None
    end_date: date | None = None
    category: str | None = None
    type: str | None = None
    surface: str = SURFACE_CALENDAR
    semester: Any = None
    user_type: str | None = None
    exam_type: str | None = None
    limit: int = 100
    skip: int = 0

    @property
    def single_year(self) -> int | None:
        """The query year when both bounds fall inside the same calendar year."""
        if self.start_date and self.end_date and self.start_date.year == self.end_date.year:
            return self.start_date.year
        return None


@dataclass(slots=True)
class ScoredEvent:
    """An event returned by semantic search with its similarity."""

    event: Event
    similarity: float

    @property
    def score(self) -> float:
        """Similarity on the 0-100 display scale."""
        return round(self.similarity * 100, 2)

    def to_response(self) -> Dict[str, Any]:
        payload = self.event.to_response()
        payload["similarity"] = self.similarity
        payload["score"] = self.score
        return payload


__all__ = [
    "EventFilter",
    "ScoredEvent",
    "SURFACE_CALENDAR",
    "SURFACE_FEED",
    "SURFACE_ALL",
]
