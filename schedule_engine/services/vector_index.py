"""Approximate nearest-neighbour backends for schedule embeddings.

Both backends return ``(document, similarity)`` pairs best first, with
similarity in ``[0, 1]``. Atlas searches the ``embedding`` field of the
schedule collection directly; Pinecone keeps a mirror of the vectors keyed
by event id, so documents are hydrated from MongoDB after the query.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Protocol, Sequence, Tuple

from ..config import (
    PINECONE_NAMESPACE,
    VECTOR_BACKEND,
    VECTOR_CANDIDATE_MULTIPLIER,
    VECTOR_INDEX_NAME,
    VECTOR_MIN_CANDIDATES,
)
from .storage import EventStore

logger = logging.getLogger(__name__)

SearchHit = Tuple[Dict[str, Any], float]


class VectorIndex(Protocol):
    def search(self, vector: Sequence[float], k: int) -> List[SearchHit]:
        ...

    def upsert(self, event_id: str, vector: Sequence[float], metadata: Mapping[str, Any]) -> None:
        ...

    def delete(self, event_id: str) -> None:
        ...

    def delete_all(self) -> None:
        ...


def _clamp(score: float) -> float:
    return max(0.0, min(1.0, float(score)))


class AtlasVectorIndex:
    """MongoDB Atlas Vector Search over the schedule collection."""

    def __init__(
        self,
        store: EventStore,
        index_name: str = VECTOR_INDEX_NAME,
        *,
        candidate_multiplier: int = VECTOR_CANDIDATE_MULTIPLIER,
        min_candidates: int = VECTOR_MIN_CANDIDATES,
    ) -> None:
        self.store = store
        self.index_name = index_name
        self.candidate_multiplier = candidate_multiplier
        self.min_candidates = min_candidates

    def pipeline(self, vector: Sequence[float], k: int) -> List[Dict[str, Any]]:
        return [
            {
                "$vectorSearch": {
                    "index": self.index_name,
                    "path": "embedding",
                    "queryVector": list(vector),
                    "numCandidates": max(k * self.candidate_multiplier, self.min_candidates),
                    "limit": k,
                }
            },
            {"$set": {"similarity": {"$meta": "vectorSearchScore"}}},
            {"$unset": "embedding"},
        ]

    def search(self, vector: Sequence[float], k: int) -> List[SearchHit]:
        documents = self.store.aggregate(self.pipeline(vector, k))
        return [(document, _clamp(document.pop("similarity", 0.0))) for document in documents]

    # Vectors live on the documents themselves; nothing to mirror.
    def upsert(self, event_id: str, vector: Sequence[float], metadata: Mapping[str, Any]) -> None:
        return None

    def delete(self, event_id: str) -> None:
        return None

    def delete_all(self) -> None:
        return None


class PineconeVectorIndex:
    """Pinecone namespace mirroring schedule embeddings by event id."""

    def __init__(self, index: Any, store: EventStore, namespace: str = PINECONE_NAMESPACE) -> None:
        self.index = index
        self.store = store
        self.namespace = namespace

    def search(self, vector: Sequence[float], k: int) -> List[SearchHit]:
        response = self.index.query(
            namespace=self.namespace,
            vector=list(vector),
            top_k=k,
            include_metadata=False,
        )
        matches = [(str(match.id), _clamp(match.score)) for match in response.matches]
        if not matches:
            return []

        documents = {str(doc["_id"]): doc for doc in self.store.get_many([event_id for event_id, _ in matches])}
        hits: List[SearchHit] = []
        for event_id, score in matches:
            document = documents.get(event_id)
            if document is None:
                logger.warning("Pinecone returned %s but it is missing from MongoDB", event_id)
                continue
            document.pop("embedding", None)
            hits.append((document, score))
        return hits

    def upsert(self, event_id: str, vector: Sequence[float], metadata: Mapping[str, Any]) -> None:
        logger.info("Upserting event to Pinecone: %s", metadata.get("title"))
        self.index.upsert(
            namespace=self.namespace,
            vectors=[(event_id, list(vector), dict(metadata))],
        )

    def delete(self, event_id: str) -> None:
        self.index.delete(ids=[event_id], namespace=self.namespace)

    def delete_all(self) -> None:
        self.index.delete(delete_all=True, namespace=self.namespace)


def vector_metadata(document: Mapping[str, Any]) -> Dict[str, Any]:
    """Flat, Pinecone-safe metadata for an event document."""
    metadata = {
        "title": document.get("title", ""),
        "category": document.get("category", ""),
        "dateType": document.get("dateType", "date"),
    }
    iso_date = document.get("isoDate")
    if iso_date is not None:
        metadata["isoDate"] = iso_date.isoformat() if hasattr(iso_date, "isoformat") else str(iso_date)
    if document.get("userType"):
        metadata["userType"] = document["userType"]
    return metadata


def build_vector_index(store: EventStore, backend: str = VECTOR_BACKEND) -> VectorIndex:
    """Return the index selected by ``VECTOR_BACKEND``."""
    if backend == "atlas":
        return AtlasVectorIndex(store)
    if backend == "pinecone":
        from ..clients.pinecone_client import get_index

        return PineconeVectorIndex(get_index(), store)
    raise ValueError(f"Unknown vector backend {backend!r}; expected 'atlas' or 'pinecone'")


__all__ = [
    "SearchHit",
    "VectorIndex",
    "AtlasVectorIndex",
    "PineconeVectorIndex",
    "vector_metadata",
    "build_vector_index",
]
