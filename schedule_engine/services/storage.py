"""Persistence layer: MongoDB schedule documents and GridFS image blobs.

Store errors (``pymongo.errors.PyMongoError``) are not caught here; they
reach the caller unchanged.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

import gridfs
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING
from pymongo.collection import Collection
from pymongo.database import Database

from ..clients.mongodb_client import get_database, get_schedule_collection
from ..config import IMAGE_BUCKET
from ..errors import ValidationError
from ..models import CLEARABLE_FIELDS, DATE_FIELDS
from ..utils.datetime_utils import get_current_timestamp

logger = logging.getLogger(__name__)

# Fields that exist only for the store and never come from the caller.
_PROTECTED_FIELDS = ("_id", "createdAt")


def parse_object_id(event_id: Any) -> ObjectId:
    """Return *event_id* as an ObjectId or raise :class:`ValidationError`."""
    if isinstance(event_id, ObjectId):
        return event_id
    try:
        return ObjectId(str(event_id))
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid event id: {event_id!r}", field="id") from None


def stale_date_fields(document: Mapping[str, Any]) -> List[str]:
    """Date keys the active variant of *document* does not write."""
    return [name for name in DATE_FIELDS if name not in document]


def stale_fields(document: Mapping[str, Any]) -> List[str]:
    """Keys to unset so the stored copy holds exactly what *document* writes."""
    return stale_date_fields(document) + [name for name in CLEARABLE_FIELDS if name not in document]


class EventStore:
    """Thin wrapper around the ``schedule`` collection."""

    def __init__(self, collection: Collection | None = None) -> None:
        self.collection = collection if collection is not None else get_schedule_collection()

    # -- writes ---------------------------------------------------------------

    def insert(self, document: Mapping[str, Any]) -> str:
        now = get_current_timestamp()
        payload = {**document, "createdAt": document.get("createdAt") or now, "updatedAt": now}
        payload.pop("_id", None)
        result = self.collection.insert_one(payload)
        logger.info("Stored event to MongoDB with _id=%s", result.inserted_id)
        return str(result.inserted_id)

    def update(
        self,
        event_id: Any,
        set_fields: Mapping[str, Any],
        unset_fields: Iterable[str] = (),
    ) -> bool:
        """Apply ``$set``/``$unset`` to one event; returns False when no document matched."""
        updates: Dict[str, Any] = {
            "$set": {
                **{k: v for k, v in set_fields.items() if k not in _PROTECTED_FIELDS},
                "updatedAt": get_current_timestamp(),
            }
        }
        unset = {name: "" for name in unset_fields if name not in set_fields}
        if unset:
            updates["$unset"] = unset
        result = self.collection.update_one({"_id": parse_object_id(event_id)}, updates)
        return result.matched_count > 0

    def upsert_occurrence(self, document: Mapping[str, Any]) -> Tuple[bool, str | None]:
        """Insert or refresh the occurrence keyed by (title, isoDate).

        Returns ``(inserted, event_id)``.
        """
        now = get_current_timestamp()
        fields = {k: v for k, v in document.items() if k not in _PROTECTED_FIELDS}
        fields["updatedAt"] = now
        unset = {name: "" for name in stale_fields(document)}
        if "embedding" not in document:
            unset["embedding"] = ""

        updates: Dict[str, Any] = {"$set": fields, "$setOnInsert": {"createdAt": now}}
        if unset:
            updates["$unset"] = unset
        key = {"title": document["title"], "isoDate": document["isoDate"]}
        result = self.collection.update_one(key, updates, upsert=True)
        if result.upserted_id is not None:
            return True, str(result.upserted_id)
        existing = self.collection.find_one(key, {"_id": 1})
        return False, str(existing["_id"]) if existing else None

    def set_embedding(self, event_id: Any, vector: Sequence[float]) -> None:
        self.collection.update_one({"_id": parse_object_id(event_id)}, {"$set": {"embedding": list(vector)}})

    def delete(self, event_id: Any) -> int:
        result = self.collection.delete_one({"_id": parse_object_id(event_id)})
        return result.deleted_count

    def delete_all(self) -> int:
        result = self.collection.delete_many({})
        logger.info("Deleted %d events", result.deleted_count)
        return result.deleted_count

    # -- reads ----------------------------------------------------------------

    def get(self, event_id: Any) -> Dict[str, Any] | None:
        return self.collection.find_one({"_id": parse_object_id(event_id)})

    def get_many(self, event_ids: Sequence[Any]) -> List[Dict[str, Any]]:
        ids = [parse_object_id(event_id) for event_id in event_ids]
        return list(self.collection.find({"_id": {"$in": ids}}))

    def find(
        self,
        query: Mapping[str, Any],
        *,
        sort: Sequence[tuple] = (("isoDate", ASCENDING),),
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        cursor = self.collection.find(dict(query))
        if sort:
            cursor = cursor.sort(list(sort))
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def find_with_embeddings(self, limit: int) -> List[Dict[str, Any]]:
        """Candidate documents for brute-force similarity ranking."""
        return list(self.collection.find({"embedding": {"$exists": True}}).limit(limit))

    def find_missing_embeddings(self, limit: int = 0) -> List[Dict[str, Any]]:
        query = {"$or": [{"embedding": {"$exists": False}}, {"embedding": None}, {"embedding": []}]}
        cursor = self.collection.find(query)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def aggregate(self, pipeline: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        return list(self.collection.aggregate(list(pipeline)))


class GridFSBlobStore:
    """Image attachments stored in a GridFS bucket."""

    def __init__(self, database: Database | None = None, bucket_name: str = IMAGE_BUCKET) -> None:
        self.bucket = gridfs.GridFSBucket(
            database if database is not None else get_database(),
            bucket_name=bucket_name,
        )

    def upload(
        self,
        data: bytes,
        filename: str,
        content_type: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> str:
        file_id = self.bucket.upload_from_stream(
            filename,
            data,
            metadata={**(metadata or {}), "contentType": content_type},
        )
        logger.info("Uploaded image %s (%d bytes) as %s", filename, len(data), file_id)
        return str(file_id)

    def delete(self, file_id: Any) -> None:
        self.bucket.delete(parse_object_id(file_id))


__all__ = [
    "parse_object_id",
    "stale_date_fields",
    "stale_fields",
    "EventStore",
    "GridFSBlobStore",
]
