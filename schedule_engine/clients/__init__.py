"""Convenience re-exports for singleton SDK accessors."""

from .http_client import get_session as get_embedding_session  # noqa: F401
from .mongodb_client import get_database, get_mongo_client, get_schedule_collection  # noqa: F401
from .openai_client import get_openai  # noqa: F401
from .pinecone_client import get_index as get_pinecone_index  # noqa: F401
from .pinecone_client import get_pinecone  # noqa: F401

__all__ = [
    "get_embedding_session",
    "get_database",
    "get_mongo_client",
    "get_schedule_collection",
    "get_openai",
    "get_pinecone_index",
    "get_pinecone",
]
