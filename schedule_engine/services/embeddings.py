"""Embedding utilities: event text synthesis and vector providers.

Embedding is best effort. :class:`EmbeddingGenerator` never raises for a
provider failure; it returns an :class:`EmbeddingOutcome` and callers decide
whether to store the event without a vector.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, List, Protocol, Sequence

import requests

from ..clients.http_client import get_session
from ..clients.openai_client import get_openai
from ..config import (
    EMBED_CONCURRENCY,
    EMBEDDING_DIMENSIONS,
    EMBEDDING_MODEL,
    EMBEDDING_PROVIDER,
    EMBEDDING_SERVICE_URL,
    EMBEDDING_TIMEOUT_SECONDS,
)
from ..errors import EmbeddingError
from ..models import ALL_DAY, SEMESTER_OFF, DateRange, Embedding, Event, MonthOnly, WeekInMonth
from ..utils.datetime_utils import format_long_date, format_short_date, ordinal

logger = logging.getLogger(__name__)

_AUDIENCE_LABELS = {"student": "Students", "faculty": "Faculty", "all": "Everyone"}


# ---------------------------------------------------------------------------
# Text synthesis
# ---------------------------------------------------------------------------

def _semester_label(semester: Any) -> str:
    if semester in (1, "1"):
        return "1st Semester"
    if semester in (2, "2"):
        return "2nd Semester"
    if str(semester).lower() == SEMESTER_OFF.lower():
        return "Off Semester"
    return f"Semester {semester}"


def _date_phrase(event: Event) -> str:
    when = event.when
    if isinstance(when, MonthOnly):
        return f"Month: {when.display_day:%B} {when.year}."
    if isinstance(when, WeekInMonth):
        return f"Week: {ordinal(when.week)} week of {when.display_day:%B} {when.year}."

    day = event.display_day
    formats = [
        format_long_date(day),
        format_short_date(day, with_year=True),
        format_short_date(day, long_month=True),
        format_short_date(day),
    ]
    phrase = f"Date: {', '.join(formats)}."
    if isinstance(when, DateRange):
        phrase += f" Date Range: {format_long_date(when.start)} to {format_long_date(when.end)}."
    return phrase


def synthesize(event: Event) -> str:
    """Render the text embedded for *event*.

    The output depends only on fields a reader would search by, so two
    events with equal searchable fields always get the same text.
    """
    parts: List[str] = []
    if event.title:
        parts.append(f"{event.title}.")
    if event.description:
        parts.append(f"{event.description}.")
    if event.category:
        parts.append(f"Category: {event.category}.")
    parts.append(_date_phrase(event))
    if event.time and event.time != ALL_DAY:
        parts.append(f"Time: {event.time}.")
    if event.semester not in (None, ""):
        parts.append(f"Semester: {_semester_label(event.semester)}.")
    if event.user_type in _AUDIENCE_LABELS:
        parts.append(f"Audience: {_AUDIENCE_LABELS[event.user_type]}.")
    return " ".join(parts)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

class EmbeddingProvider(Protocol):
    def embed(self, text: str) -> Embedding:
        ...


class OpenAIEmbeddingProvider:
    """Embeddings from the OpenAI API."""

    def __init__(self, client: Any = None, *, model: str = EMBEDDING_MODEL, dimensions: int = EMBEDDING_DIMENSIONS) -> None:
        self._client = client
        self.model = model
        self.dimensions = dimensions

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_openai()
        return self._client

    def embed(self, text: str) -> Embedding:
        logger.debug("Generating embedding for text (first 50 chars): %s…", text[:50])
        try:
            response = self.client.embeddings.create(
                model=self.model,
                input=text,
                dimensions=self.dimensions,
            )
        except Exception as exc:  # pragma: no cover – network failure
            raise EmbeddingError(f"OpenAI embedding request failed: {exc}") from exc
        return list(response.data[0].embedding)


class HttpEmbeddingProvider:
    """Embeddings from a self-hosted text-embeddings server.

    The server is expected to accept ``POST {"inputs": text}`` and answer
    with either ``[[...]]``, ``[...]`` or ``{"embedding": [...]}``.
    """

    def __init__(
        self,
        url: str | None = EMBEDDING_SERVICE_URL,
        *,
        session: requests.Session | None = None,
        timeout: float = EMBEDDING_TIMEOUT_SECONDS,
    ) -> None:
        if not url:
            raise EnvironmentError("EMBEDDING_SERVICE_URL is not set in environment variables")
        self.url = url
        self.session = session or get_session()
        self.timeout = timeout

    def embed(self, text: str) -> Embedding:
        try:
            response = self.session.post(self.url, json={"inputs": text}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise EmbeddingError(f"Embedding service unreachable: {exc}") from exc

        if response.status_code != 200:
            logger.error("Error from embedding service: %s - %s", response.status_code, response.text)
            raise EmbeddingError(f"Embedding service error: {response.status_code}")

        payload = response.json()
        if isinstance(payload, dict):
            payload = payload.get("embedding") or payload.get("embeddings") or []
        if payload and isinstance(payload[0], list):
            payload = payload[0]
        return [float(value) for value in payload]


def build_embedding_provider(name: str = EMBEDDING_PROVIDER) -> EmbeddingProvider:
    """Return the provider selected by ``EMBEDDING_PROVIDER``."""
    if name == "openai":
        return OpenAIEmbeddingProvider()
    if name == "http":
        return HttpEmbeddingProvider()
    raise ValueError(f"Unknown embedding provider {name!r}; expected 'openai' or 'http'")


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class EmbeddingOutcome:
    """Either a vector or the reason there is none."""

    text: str
    vector: Embedding | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return bool(self.vector)


class EmbeddingGenerator:
    def __init__(self, provider: EmbeddingProvider, *, concurrency: int = EMBED_CONCURRENCY) -> None:
        self.provider = provider
        self.concurrency = max(1, concurrency)

    def embed_text(self, text: str) -> EmbeddingOutcome:
        try:
            vector = self.provider.embed(text)
        except Exception as exc:  # provider failure
            logger.warning("Embedding generation failed: %s", exc)
            return EmbeddingOutcome(text, error=str(exc))
        if not vector:
            logger.warning("Embedding provider returned an empty vector")
            return EmbeddingOutcome(text, error="empty embedding")
        return EmbeddingOutcome(text, vector=list(vector))

    def embed_event(self, event: Event) -> EmbeddingOutcome:
        """Synthesise the text for *event* and embed it."""
        return self.embed_text(synthesize(event))

    def embed_many(self, events: Sequence[Event]) -> List[EmbeddingOutcome]:
        """Embed *events*; outcomes are returned in input order."""
        if self.concurrency == 1 or len(events) <= 1:
            return [self.embed_event(event) for event in events]
        logger.info("Embedding %d events with %d workers", len(events), self.concurrency)
        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            return list(pool.map(self.embed_event, events))


__all__ = [
    "synthesize",
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "HttpEmbeddingProvider",
    "build_embedding_provider",
    "EmbeddingOutcome",
    "EmbeddingGenerator",
]
