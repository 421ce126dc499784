"""Semantic and structured retrieval over the schedule collection."""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Sequence

import numpy as np
from pymongo import DESCENDING

from ..config import (
    DEFAULT_QUERY_LIMIT,
    FALLBACK_CANDIDATE_MULTIPLIER,
    FALLBACK_MIN_CANDIDATES,
)
from ..errors import ValidationError
from ..models import (
    CALENDAR_CATEGORIES,
    FEED_CATEGORIES,
    DateType,
    Event,
    EventFilter,
    ScoredEvent,
)
from ..models.query import SURFACE_ALL, SURFACE_CALENDAR, SURFACE_FEED
from ..utils.datetime_utils import to_storage_datetime
from .embeddings import EmbeddingGenerator
from .normalization import normalize_semester, normalize_user_type
from .storage import EventStore
from .vector_index import SearchHit, VectorIndex

logger = logging.getLogger(__name__)

EXAM_PATTERNS = {
    "prelim": r"\b(prelim|preliminary)\b",
    "preliminary": r"\b(prelim|preliminary)\b",
    "midterm": r"\bmidterm\b",
    "final": r"\bfinal\b",
    "finals": r"\bfinal\b",
}

CALENDAR_EVENT_TYPE = "calendar_event"
_MIN_KEYWORD_LENGTH = 3


def _with_lowercase(values: Iterable[str]) -> List[str]:
    values = list(values)
    return values + [value.lower() for value in values]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*; 0 for empty, zero or mismatched vectors."""
    if len(a) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def audience_allows(event: Event, user_type: str | None) -> bool:
    """Student and faculty viewers see their own events plus ones for everyone."""
    if user_type in (None, "all"):
        return True
    return event.user_type in (None, "", "all", user_type)


def within_year(event: Event, year: int) -> bool:
    """Compare the year the event is filed under, not the years a range spans."""
    return event.year == year


# ---------------------------------------------------------------------------
# Structured filters
# ---------------------------------------------------------------------------

def _date_clause(start: date | None, end: date | None) -> Dict[str, Any] | None:
    if start is None and end is None:
        return None
    bounds: Dict[str, Any] = {}
    if start is not None:
        bounds["$gte"] = to_storage_datetime(start)
    if end is not None:
        bounds["$lte"] = to_storage_datetime(end)

    ranged = DateType.DATE_RANGE.value
    alternatives: List[Dict[str, Any]] = [
        {"dateType": {"$ne": ranged}, "isoDate": bounds},
        {"dateType": ranged, "startDate": bounds},
        {"dateType": ranged, "endDate": bounds},
    ]
    if start is not None and end is not None:
        alternatives.append({
            "dateType": ranged,
            "startDate": {"$lte": to_storage_datetime(start)},
            "endDate": {"$gte": to_storage_datetime(end)},
        })
    return {"$or": alternatives}


def _category_clauses(criteria: EventFilter) -> List[Dict[str, Any]]:
    if criteria.category:
        return [{"category": criteria.category}]
    if criteria.type or criteria.surface == SURFACE_ALL:
        return []
    if criteria.surface == SURFACE_FEED:
        return [{"category": {"$nin": _with_lowercase(CALENDAR_CATEGORIES)}}]
    if criteria.surface == SURFACE_CALENDAR:
        return [
            {
                "$or": [
                    {"category": {"$in": _with_lowercase(CALENDAR_CATEGORIES)}},
                    {"type": CALENDAR_EVENT_TYPE},
                    {"category": {"$exists": False}},
                ]
            },
            {"category": {"$nin": _with_lowercase(FEED_CATEGORIES)}},
        ]
    raise ValidationError(f"Unknown surface {criteria.surface!r}", field="surface")


def _semester_clause(value: Any) -> Dict[str, Any] | None:
    if value is None or value == "":
        return None
    semester = normalize_semester(value)
    if semester is None:
        raise ValidationError(f"Invalid semester {value!r}; expected 1, 2 or Off", field="semester")
    if isinstance(semester, int):
        return {"semester": {"$in": [semester, str(semester)]}}
    return {"semester": {"$in": [semester, semester.lower()]}}


def _audience_clause(value: str | None) -> Dict[str, Any] | None:
    if not value:
        return None
    user_type = normalize_user_type(value)
    if user_type is None:
        raise ValidationError(f"Invalid user type {value!r}", field="userType")
    if user_type == "all":
        return None
    # ``None`` in ``$in`` also matches documents without the field.
    return {"userType": {"$in": [user_type, "all", None]}}


def _exam_clause(value: str | None) -> Dict[str, Any] | None:
    if not value:
        return None
    pattern = EXAM_PATTERNS.get(value.strip().lower())
    if pattern is None:
        raise ValidationError(
            f"Unknown exam type {value!r}; expected prelim, midterm or final", field="examType"
        )
    return {"title": {"$regex": pattern, "$options": "i"}}


def _year_clause(year: int | None) -> Dict[str, Any] | None:
    if year is None:
        return None
    return {
        "$or": [
            {"year": year},
            {
                "year": {"$exists": False},
                "isoDate": {
                    "$gte": to_storage_datetime(date(year, 1, 1)),
                    "$lt": to_storage_datetime(date(year + 1, 1, 1)),
                },
            },
        ]
    }


def build_filter_query(criteria: EventFilter) -> Dict[str, Any]:
    """Translate *criteria* into a MongoDB predicate.

    Raises :class:`ValidationError` for an unknown semester, audience or
    exam type.
    """
    clauses: List[Dict[str, Any]] = []
    for clause in (
        _date_clause(criteria.start_date, criteria.end_date),
        *_category_clauses(criteria),
        {"type": criteria.type} if criteria.type and criteria.type != "all" else None,
        _semester_clause(criteria.semester),
        _audience_clause(criteria.user_type),
        _exam_clause(criteria.exam_type),
        _year_clause(criteria.single_year),
    ):
        if clause:
            clauses.append(clause)
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class RetrievalEngine:
    """Answers semantic and structured queries against an :class:`EventStore`."""

    def __init__(
        self,
        store: EventStore,
        index: VectorIndex,
        generator: EmbeddingGenerator | None = None,
        *,
        fallback_multiplier: int = FALLBACK_CANDIDATE_MULTIPLIER,
        fallback_min_candidates: int = FALLBACK_MIN_CANDIDATES,
    ) -> None:
        self.store = store
        self.index = index
        self.generator = generator
        self.fallback_multiplier = fallback_multiplier
        self.fallback_min_candidates = fallback_min_candidates

    # -- helpers ---------------------------------------------------------------

    @staticmethod
    def _to_events(documents: Iterable[Mapping[str, Any]]) -> List[Event]:
        events: List[Event] = []
        for document in documents:
            try:
                events.append(Event.from_document(document))
            except ValueError as exc:
                logger.warning("Skipping malformed event document %s: %s", document.get("_id"), exc)
        return events

    @staticmethod
    def _to_scored(hits: Iterable[SearchHit]) -> List[ScoredEvent]:
        scored: List[ScoredEvent] = []
        for document, similarity in hits:
            try:
                event = Event.from_document(document)
            except ValueError as exc:
                logger.warning("Skipping malformed event document %s: %s", document.get("_id"), exc)
                continue
            scored.append(ScoredEvent(event, similarity))
        return scored

    def fallback_search(self, query_vector: Sequence[float], k: int) -> List[SearchHit]:
        """Brute-force cosine ranking over a bounded candidate set."""
        limit = max(k * self.fallback_multiplier, self.fallback_min_candidates)
        candidates = self.store.find_with_embeddings(limit)
        ranked: List[SearchHit] = []
        for document in candidates:
            vector = document.pop("embedding", None) or []
            similarity = cosine_similarity(query_vector, vector)
            ranked.append((document, similarity))
        ranked.sort(key=lambda hit: hit[1], reverse=True)
        logger.info("Fallback ranked %d candidates", len(ranked))
        # Scores are floored at zero only after ordering.
        return [(document, max(0.0, similarity)) for document, similarity in ranked[:k]]

    # -- semantic --------------------------------------------------------------

    def semantic_search(
        self,
        query_vector: Sequence[float],
        k: int,
        *,
        user_type: str | None = None,
    ) -> List[ScoredEvent]:
        """Top *k* events by similarity, vector index first, cosine fallback second."""
        if k <= 0:
            return []
        audience = normalize_user_type(user_type) if user_type else None
        fetch = k if audience in (None, "all") else k * 3

        try:
            hits = self.index.search(query_vector, fetch)
        except Exception as exc:  # index unavailable
            logger.warning("Vector search failed, falling back to cosine similarity: %s", exc)
            try:
                hits = self.fallback_search(query_vector, fetch)
            except Exception as fallback_exc:
                logger.error("Fallback search failed as well: %s", fallback_exc)
                raise exc
        results = [item for item in self._to_scored(hits) if audience_allows(item.event, audience)]
        return results[:k]

    def keyword_search(self, text: str, k: int, *, user_type: str | None = None) -> List[ScoredEvent]:
        """Title/description matching used when the query cannot be embedded."""
        terms = sorted({word.lower() for word in re.findall(r"\w+", text) if len(word) >= _MIN_KEYWORD_LENGTH})
        if not terms or k <= 0:
            return []
        patterns = [re.compile(rf"\b{re.escape(term)}", re.IGNORECASE) for term in terms]
        query = {
            "$or": [
                {field: {"$regex": rf"\b{re.escape(term)}", "$options": "i"}}
                for term in terms
                for field in ("title", "description")
            ]
        }
        limit = max(k * self.fallback_multiplier, self.fallback_min_candidates)
        documents = self.store.find(query, sort=(), limit=limit)

        audience = normalize_user_type(user_type) if user_type else None
        scored: List[ScoredEvent] = []
        for event in self._to_events(documents):
            if not audience_allows(event, audience):
                continue
            haystack = f"{event.title} {event.description}"
            matched = sum(1 for pattern in patterns if pattern.search(haystack))
            if matched:
                scored.append(ScoredEvent(event, matched / len(terms)))
        scored.sort(key=lambda item: item.similarity, reverse=True)
        return scored[:k]

    def search_text(self, text: str, k: int, *, user_type: str | None = None) -> List[ScoredEvent]:
        """Embed *text* and search; degrade to keyword matching if embedding fails."""
        if self.generator is None:
            return self.keyword_search(text, k, user_type=user_type)
        outcome = self.generator.embed_text(text)
        if not outcome.ok:
            logger.warning("Query embedding unavailable (%s); using keyword search", outcome.error)
            return self.keyword_search(text, k, user_type=user_type)
        return self.semantic_search(outcome.vector, k, user_type=user_type)

    # -- structured ------------------------------------------------------------

    def list_events(self, criteria: EventFilter) -> List[Event]:
        """Events matching *criteria*, ascending by ``isoDate``."""
        query = build_filter_query(criteria)
        logger.debug("Schedule query: %s", query)
        documents = self.store.find(query, skip=criteria.skip, limit=criteria.limit)
        events = self._to_events(documents)

        year = criteria.single_year
        if year is not None:
            kept = [event for event in events if within_year(event, year)]
            if len(kept) != len(events):
                logger.info("Year guard dropped %d events outside %d", len(events) - len(kept), year)
            events = kept
        return events

    def list_feed(
        self,
        *,
        category: str | None = None,
        type: str | None = None,
        limit: int = DEFAULT_QUERY_LIMIT,
        skip: int = 0,
    ) -> List[Event]:
        """Announcements, news and posts, newest first."""
        if category and category.lower() in {c.lower() for c in CALENDAR_CATEGORIES}:
            return []
        clauses = [build_filter_query(EventFilter(surface=SURFACE_FEED))]
        if category:
            clauses.append({"category": category})
        if type and type != "all":
            clauses.append({"type": type})
        query = clauses[0] if len(clauses) == 1 else {"$and": clauses}
        documents = self.store.find(query, sort=(("createdAt", DESCENDING),), skip=skip, limit=limit)
        return self._to_events(documents)


__all__ = [
    "EXAM_PATTERNS",
    "cosine_similarity",
    "audience_allows",
    "within_year",
    "build_filter_query",
    "RetrievalEngine",
]
