"""Service layer modules grouping business logic by concern.

This module provides convenience re-exports so that callers can simply do for
example `from schedule_engine.services import detect_schema` without having to
know which underlying module provides the symbol.
"""

from .embeddings import (  # noqa: F401
    EmbeddingGenerator,
    EmbeddingOutcome,
    HttpEmbeddingProvider,
    OpenAIEmbeddingProvider,
    build_embedding_provider,
    synthesize,
)
from .ingestion import ingest_events  # noqa: F401
from .multipart import MultipartPart, decode_multipart, extract_boundary, read_body  # noqa: F401
from .normalization import (  # noqa: F401
    event_from_payload,
    normalize_rows,
    normalize_semester,
    normalize_user_type,
)
from .retrieval import RetrievalEngine, build_filter_query, cosine_similarity  # noqa: F401
from .spreadsheet import FieldMap, detect_schema, read_csv_rows  # noqa: F401
from .storage import EventStore, GridFSBlobStore  # noqa: F401
from .vector_index import AtlasVectorIndex, PineconeVectorIndex, build_vector_index  # noqa: F401

__all__ = [
    "EmbeddingGenerator",
    "EmbeddingOutcome",
    "HttpEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "build_embedding_provider",
    "synthesize",
    "ingest_events",
    "MultipartPart",
    "decode_multipart",
    "extract_boundary",
    "read_body",
    "event_from_payload",
    "normalize_rows",
    "normalize_semester",
    "normalize_user_type",
    "RetrievalEngine",
    "build_filter_query",
    "cosine_similarity",
    "FieldMap",
    "detect_schema",
    "read_csv_rows",
    "EventStore",
    "GridFSBlobStore",
    "AtlasVectorIndex",
    "PineconeVectorIndex",
    "build_vector_index",
]
