"""Bulk upsert of normalised events keyed by (title, isoDate)."""

from __future__ import annotations

import logging
from typing import Sequence

from ..models import Event, IngestionSummary, RowIssue
from .embeddings import EmbeddingGenerator, EmbeddingOutcome
from .storage import EventStore
from .vector_index import VectorIndex, vector_metadata

logger = logging.getLogger(__name__)


def mirror_vector(index: VectorIndex | None, event_id: str | None, document: dict, vector) -> None:
    """Best-effort copy of *vector* into an external index."""
    if index is None or not event_id or not vector:
        return
    try:
        index.upsert(event_id, vector, vector_metadata(document))
    except Exception as exc:  # pragma: no cover – network failure
        logger.warning("Vector index upsert failed for %s: %s", event_id, exc)


def ingest_events(
    store: EventStore,
    events: Sequence[Event],
    *,
    generator: EmbeddingGenerator | None = None,
    index: VectorIndex | None = None,
    issues: Sequence[RowIssue] = (),
) -> IngestionSummary:
    """Embed then upsert *events* one by one, counting inserts and updates.

    Embeddings may be computed concurrently; writes are sequential and in
    input order. An occurrence whose embedding failed is stored without one.
    """
    summary = IngestionSummary(skipped=len(issues), issues=list(issues))
    if generator is not None:
        outcomes = generator.embed_many(events)
    else:
        outcomes = [EmbeddingOutcome("") for _ in events]

    for event, outcome in zip(events, outcomes):
        event.embedding = outcome.vector
        if generator is not None and not outcome.ok:
            summary.embedding_failures += 1
        document = event.to_document()
        inserted, event_id = store.upsert_occurrence(document)
        if inserted:
            summary.inserted += 1
        else:
            summary.updated += 1
        summary.total_processed += 1
        mirror_vector(index, event_id, document, outcome.vector)

    logger.info(
        "Ingested %d events: %d inserted, %d updated, %d skipped, %d without embedding",
        summary.total_processed,
        summary.inserted,
        summary.updated,
        summary.skipped,
        summary.embedding_failures,
    )
    return summary


__all__ = ["ingest_events", "mirror_vector"]
