"""Singleton accessor for the MongoDB client and the schedule collection."""

from __future__ import annotations

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from ..config import MONGODB_DATABASE, MONGODB_URI, SCHEDULE_COLLECTION

_client: MongoClient | None = None


def get_mongo_client() -> MongoClient:
    """Return a singleton :class:`pymongo.MongoClient`."""
    global _client
    if _client is None:
        if not MONGODB_URI:
            raise EnvironmentError("MONGODB_URI is not set in environment variables")
        _client = MongoClient(MONGODB_URI, tz_aware=True)
    return _client


def get_database(name: str = MONGODB_DATABASE) -> Database:
    return get_mongo_client()[name]


def get_schedule_collection() -> Collection:
    """Return the collection holding calendar events and feed posts."""
    return get_database()[SCHEDULE_COLLECTION]

__all__ = ["get_mongo_client", "get_database", "get_schedule_collection"]
