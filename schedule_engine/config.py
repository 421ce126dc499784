"""Centralised configuration for schedule_engine.

Environment variables are loaded once and all related constants are
grouped by service for easier maintenance. ``ScheduleSettings`` is a frozen
snapshot of the values the schedule service needs, so the service can be
built once at process start and handed to request handlers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Load environment variables from `.env` (if present)
# ---------------------------------------------------------------------------
load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


# ---------------------------------------------------------------------------
# Core credentials (from environment)
# ---------------------------------------------------------------------------
MONGODB_URI: str | None = os.getenv("MONGODB_URI")
OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")
PINECONE_API_KEY: str | None = os.getenv("PINECONE_API_KEY")

# ---------------------------------------------------------------------------
# Document store
# ---------------------------------------------------------------------------
MONGODB_DATABASE: str = os.getenv("MONGODB_DATABASE", "school_portal")
SCHEDULE_COLLECTION: str = os.getenv("SCHEDULE_COLLECTION", "schedule")
IMAGE_BUCKET: str = os.getenv("IMAGE_BUCKET", "images")

# ---------------------------------------------------------------------------
# Embeddings
# accepted providers: "openai", "http"
# ---------------------------------------------------------------------------
EMBEDDING_PROVIDER: str = os.getenv("EMBEDDING_PROVIDER", "openai")
EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_DIMENSIONS: int = _env_int("EMBEDDING_DIMENSIONS", 384)
EMBEDDING_SERVICE_URL: str | None = os.getenv("EMBEDDING_SERVICE_URL")
EMBEDDING_TIMEOUT_SECONDS: int = _env_int("EMBEDDING_TIMEOUT_SECONDS", 30)
EMBED_CONCURRENCY: int = _env_int("EMBED_CONCURRENCY", 1)

# ---------------------------------------------------------------------------
# Vector index
# accepted backends: "atlas", "pinecone"
# ---------------------------------------------------------------------------
VECTOR_BACKEND: str = os.getenv("VECTOR_BACKEND", "atlas")
VECTOR_INDEX_NAME: str = os.getenv("VECTOR_INDEX_NAME", "schedule_vector_index")
PINECONE_INDEX_NAME: str = os.getenv("PINECONE_INDEX_NAME", "schedule")
PINECONE_NAMESPACE: str = os.getenv("PINECONE_NAMESPACE", "schedule-events")

# Atlas asks for max(k * multiplier, minimum) candidates for recall headroom
VECTOR_CANDIDATE_MULTIPLIER: int = 10
VECTOR_MIN_CANDIDATES: int = 100
# Brute-force fallback scans at most max(k * multiplier, minimum) documents
FALLBACK_CANDIDATE_MULTIPLIER: int = 5
FALLBACK_MIN_CANDIDATES: int = 100

# ---------------------------------------------------------------------------
# Request payloads
# accepted payload kinds: "multipart", "json"
# ---------------------------------------------------------------------------
MAX_UPLOAD_BYTES: int = _env_int("MAX_UPLOAD_BYTES", 50 * 1024 * 1024)
MAX_JSON_BODY_BYTES: int = _env_int("MAX_JSON_BODY_BYTES", 1024 * 1024)
# The mobile client posts multipart without always setting Content-Type.
DEFAULT_PAYLOAD_KIND: str = os.getenv("DEFAULT_PAYLOAD_KIND", "multipart")
PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000")

# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
DEFAULT_QUERY_LIMIT: int = 100
DEFAULT_SEARCH_K: int = 10

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


@dataclass(frozen=True, slots=True)
class ScheduleSettings:
    """Values the schedule service reads at request time."""

    max_upload_bytes: int = MAX_UPLOAD_BYTES
    max_json_body_bytes: int = MAX_JSON_BODY_BYTES
    default_payload_kind: str = DEFAULT_PAYLOAD_KIND
    public_base_url: str = PUBLIC_BASE_URL
    embed_concurrency: int = EMBED_CONCURRENCY

    def __post_init__(self) -> None:
        if self.default_payload_kind not in ("multipart", "json"):
            raise ValueError(
                f"default_payload_kind must be 'multipart' or 'json', got {self.default_payload_kind!r}"
            )
        if self.embed_concurrency < 1:
            raise ValueError("embed_concurrency must be at least 1")


# ---------------------------------------------------------------------------
# Re-exported names
# ---------------------------------------------------------------------------
__all__ = [
    # credentials
    "MONGODB_URI",
    "OPENAI_API_KEY",
    "PINECONE_API_KEY",
    # store
    "MONGODB_DATABASE",
    "SCHEDULE_COLLECTION",
    "IMAGE_BUCKET",
    # embeddings
    "EMBEDDING_PROVIDER",
    "EMBEDDING_MODEL",
    "EMBEDDING_DIMENSIONS",
    "EMBEDDING_SERVICE_URL",
    "EMBEDDING_TIMEOUT_SECONDS",
    "EMBED_CONCURRENCY",
    # vector index
    "VECTOR_BACKEND",
    "VECTOR_INDEX_NAME",
    "PINECONE_INDEX_NAME",
    "PINECONE_NAMESPACE",
    "VECTOR_CANDIDATE_MULTIPLIER",
    "VECTOR_MIN_CANDIDATES",
    "FALLBACK_CANDIDATE_MULTIPLIER",
    "FALLBACK_MIN_CANDIDATES",
    # payloads
    "MAX_UPLOAD_BYTES",
    "MAX_JSON_BODY_BYTES",
    "DEFAULT_PAYLOAD_KIND",
    "PUBLIC_BASE_URL",
    # queries
    "DEFAULT_QUERY_LIMIT",
    "DEFAULT_SEARCH_K",
    # logging
    "LOG_LEVEL",
    "ScheduleSettings",
]
