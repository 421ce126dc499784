"""Schedule orchestration: create, update, ingest, query and delete events.

``ScheduleService`` is built once with its collaborators (see
:func:`build_schedule_service`) and handed to request handlers by reference.
Embedding, vector-index mirroring and image storage are best effort; the
event document is written even when they fail.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Tuple

from ..config import DEFAULT_QUERY_LIMIT, DEFAULT_SEARCH_K, ScheduleSettings
from ..errors import EventNotFoundError, ValidationError
from ..models import (
    DATE_FIELDS,
    BackfillReport,
    Event,
    EventFilter,
    IngestionSummary,
    ScoredEvent,
)
from ..services.embeddings import EmbeddingGenerator, build_embedding_provider, synthesize
from ..services.ingestion import ingest_events, mirror_vector
from ..services.multipart import (
    MultipartPart,
    decode_multipart,
    ensure_size,
    extract_boundary,
    find_file_part,
)
from ..services.normalization import event_from_payload, normalize_rows
from ..services.retrieval import RetrievalEngine
from ..services.spreadsheet import decode_csv_bytes
from ..services.storage import EventStore, GridFSBlobStore, stale_fields
from ..services.vector_index import VectorIndex, build_vector_index
from ..utils.datetime_utils import coerce_date, get_current_timestamp

logger = logging.getLogger(__name__)

PAYLOAD_MULTIPART = "multipart"
PAYLOAD_JSON = "json"

UPDATABLE_FIELDS = frozenset({
    "title",
    "description",
    "category",
    "time",
    "type",
    "semester",
    "userType",
    "isPinned",
    "isUrgent",
    *DATE_FIELDS,
})
_IMAGE_FIELD_NAMES = ("image", "file", "photo")


class ScheduleService:
    def __init__(
        self,
        store: EventStore,
        generator: EmbeddingGenerator,
        retrieval: RetrievalEngine,
        *,
        blob_store: GridFSBlobStore | None = None,
        index: VectorIndex | None = None,
        settings: ScheduleSettings | None = None,
    ) -> None:
        self.store = store
        self.generator = generator
        self.retrieval = retrieval
        self.blob_store = blob_store
        self.index = index
        self.settings = settings or ScheduleSettings()

    # ------------------------------------------------------------------
    # Request payloads
    # ------------------------------------------------------------------

    def payload_kind(self, content_type: str | None) -> str:
        """``multipart`` or ``json``; anything else gets the configured default."""
        lowered = (content_type or "").lower()
        if "multipart/form-data" in lowered:
            return PAYLOAD_MULTIPART
        if "application/json" in lowered:
            return PAYLOAD_JSON
        logger.debug("Unrecognised Content-Type %r; assuming %s", content_type, self.settings.default_payload_kind)
        return self.settings.default_payload_kind

    def _parse_json(self, body: bytes) -> Dict[str, Any]:
        ensure_size(body, self.settings.max_json_body_bytes)
        try:
            data = json.loads(body.decode("utf-8") if isinstance(body, bytes) else body)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValidationError(f"Invalid JSON body: {exc}", field="body") from None
        if not isinstance(data, dict):
            raise ValidationError("JSON body must be an object", field="body")
        return data

    def _parse_form(self, body: bytes, content_type: str | None) -> Tuple[Dict[str, str], MultipartPart | None]:
        ensure_size(body, self.settings.max_upload_bytes)
        parts = decode_multipart(body, extract_boundary(content_type))
        fields = {part.name: part.text() for part in parts if not part.filename}
        image = next(
            (
                part
                for part in parts
                if part.filename and (part.name in _IMAGE_FIELD_NAMES or part.content_type.startswith("image/"))
            ),
            None,
        )
        logger.debug("Form fields: %s, image: %s", sorted(fields), bool(image))
        return fields, image

    def _parse_body(self, body: bytes, content_type: str | None) -> Tuple[str, Dict[str, Any], MultipartPart | None]:
        kind = self.payload_kind(content_type)
        if kind == PAYLOAD_JSON:
            return kind, self._parse_json(body), None
        fields, image = self._parse_form(body, content_type)
        return kind, fields, image

    def _attach_image(self, event: Event, image: MultipartPart | None, user_id: str | None) -> None:
        if image is None or self.blob_store is None:
            return
        try:
            file_id = self.blob_store.upload(
                image.data,
                image.filename or "upload",
                image.content_type,
                {"uploadedBy": user_id, "uploadedAt": get_current_timestamp()},
            )
        except Exception as exc:  # pragma: no cover – blob store failure
            logger.warning("Image upload failed for %s: %s", event.title, exc)
            return
        event.image_file_id = file_id
        event.image_url = f"{self.settings.public_base_url.rstrip('/')}/api/images/{file_id}"

    def _delete_image(self, file_id: Any) -> None:
        if not file_id or self.blob_store is None:
            return
        try:
            self.blob_store.delete(file_id)
        except Exception as exc:  # pragma: no cover – blob store failure
            logger.warning("Could not delete image %s: %s", file_id, exc)

    def _unmirror(self, event_id: str) -> None:
        if self.index is None:
            return
        try:
            self.index.delete(event_id)
        except Exception as exc:  # pragma: no cover – network failure
            logger.warning("Vector index delete failed for %s: %s", event_id, exc)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_event(self, body: bytes, content_type: str | None = None, *, user_id: str | None = None) -> Event:
        """Create one event from a form post or a JSON body."""
        kind, data, image = self._parse_body(body, content_type)
        if kind == PAYLOAD_MULTIPART:
            if not data.get("title") or not (data.get("date") or data.get("isoDate")):
                missing = "title" if not data.get("title") else "date"
                raise ValidationError(f"{missing} is required", field=missing)
            event = event_from_payload(data, created_by=user_id, default_category="General")
            event.type = event.type or ("event" if event.category == "Event" else "announcement")
        else:
            event = event_from_payload(data, created_by=user_id, default_category="Event")

        self._attach_image(event, image, user_id)

        outcome = self.generator.embed_event(event)
        event.embedding = outcome.vector
        now = get_current_timestamp()
        event.created_at = now
        event.updated_at = now

        document = event.to_document()
        event.id = self.store.insert(document)
        mirror_vector(self.index, event.id, document, outcome.vector)
        logger.info("Created %s event %s (%s)", kind, event.id, event.title)
        return event

    def update_event(
        self,
        event_id: str,
        body: bytes,
        content_type: str | None = None,
        *,
        user_id: str | None = None,
    ) -> Event:
        """Merge whitelisted fields over the stored event and re-embed when its text changed."""
        _, data, image = self._parse_body(body, content_type)
        updates = {key: value for key, value in data.items() if key in UPDATABLE_FIELDS}
        if not updates and image is None:
            raise ValidationError("No updatable fields provided", field="body")

        stored = self.store.get(event_id)
        if stored is None:
            raise EventNotFoundError(event_id)
        try:
            current = Event.from_document(stored)
        except ValueError:
            current = None

        merged = {**(current.to_document(include_embedding=False) if current else dict(stored)), **updates}
        # A new display ``date`` must not lose to the stored ``isoDate``.
        if "date" in updates and "isoDate" not in updates:
            merged.pop("isoDate", None)
        merged.pop("_id", None)

        rebuilt = event_from_payload(
            merged,
            source=(current.source if current else stored.get("source")) or "Manual Entry",
            created_by=current.created_by if current else stored.get("createdBy"),
            default_category=current.category if current else "Event",
        )
        event = replace(
            rebuilt,
            source=current.source if current else rebuilt.source,
            id=str(stored["_id"]),
            image_file_id=current.image_file_id if current else None,
            image_url=current.image_url if current else None,
            created_at=stored.get("createdAt"),
            extra=current.extra if current else {},
            embedding=current.embedding if current else None,
        )

        previous_image = event.image_file_id
        if image is not None:
            self._attach_image(event, image, user_id)
            if event.image_file_id != previous_image:
                self._delete_image(previous_image)

        reembedded = False
        if current is None or event.embedding is None or synthesize(event) != synthesize(current):
            outcome = self.generator.embed_event(event)
            event.embedding = outcome.vector
            reembedded = True
            if not outcome.ok:
                logger.warning("Removing stale embedding from %s", event.id)

        event.updated_at = get_current_timestamp()
        document = event.to_document()
        unset = stale_fields(document)
        if not event.embedding:
            unset.append("embedding")
        if not self.store.update(event.id, document, unset):
            raise EventNotFoundError(event_id)

        if reembedded:
            if event.embedding:
                mirror_vector(self.index, event.id, document, event.embedding)
            else:
                self._unmirror(event.id)
        logger.info("Updated event %s (%s)", event.id, ", ".join(sorted(updates)) or "image")
        return event

    def upload_spreadsheet(
        self,
        body: bytes,
        content_type: str | None,
        *,
        user_id: str | None = None,
    ) -> IngestionSummary:
        """Ingest the CSV file carried by a multipart upload."""
        ensure_size(body, self.settings.max_upload_bytes)
        parts = decode_multipart(body, extract_boundary(content_type))
        upload = find_file_part(parts)
        if upload is None:
            raise ValidationError("No file uploaded", field="file")
        if not (upload.filename or "").lower().endswith(".csv"):
            raise ValidationError("Only CSV files are supported", field="file")
        logger.info("Processing spreadsheet %s (%d bytes)", upload.filename, len(upload.data))
        return self.ingest_csv(decode_csv_bytes(upload.data), user_id=user_id)

    def ingest_csv(self, text: str, *, user_id: str | None = None, default_year: int | None = None) -> IngestionSummary:
        """Normalise CSV *text* and upsert every occurrence.

        Header problems raise before anything is written.
        """
        report = normalize_rows(text, default_year=default_year, created_by=user_id)
        if not report.events:
            raise ValidationError("No valid events found in CSV", field="file")
        return ingest_events(
            self.store,
            report.events,
            generator=self.generator,
            index=self.index,
            issues=report.issues,
        )

    def delete_event(self, event_id: str) -> None:
        stored = self.store.get(event_id)
        if stored is None or self.store.delete(event_id) == 0:
            raise EventNotFoundError(event_id)
        self._delete_image(stored.get("imageFileId"))
        self._unmirror(str(stored["_id"]))
        logger.info("Deleted event %s", event_id)

    def delete_all_events(self) -> int:
        deleted = self.store.delete_all()
        if self.index is not None:
            try:
                self.index.delete_all()
            except Exception as exc:  # pragma: no cover – network failure
                logger.warning("Vector index purge failed: %s", exc)
        return deleted

    def backfill_embeddings(self, limit: int | None = None) -> BackfillReport:
        """Embed stored events that have no vector yet."""
        report = BackfillReport()
        for document in self.store.find_missing_embeddings(limit or 0):
            report.scanned += 1
            try:
                event = Event.from_document(document)
            except ValueError as exc:
                logger.warning("Skipping malformed event %s: %s", document.get("_id"), exc)
                report.failed += 1
                continue
            outcome = self.generator.embed_event(event)
            if not outcome.ok:
                report.failed += 1
                continue
            self.store.set_embedding(event.id, outcome.vector)
            mirror_vector(self.index, event.id, event.to_document(include_embedding=False), outcome.vector)
            report.embedded += 1
        logger.info(
            "Backfill scanned %d events: %d embedded, %d failed",
            report.scanned,
            report.embedded,
            report.failed,
        )
        return report

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_event(self, event_id: str) -> Event:
        stored = self.store.get(event_id)
        if stored is None:
            raise EventNotFoundError(event_id)
        return Event.from_document(stored)

    def list_events(self, criteria: EventFilter | None = None) -> List[Event]:
        return self.retrieval.list_events(criteria or EventFilter())

    def list_feed(self, **kwargs: Any) -> List[Event]:
        return self.retrieval.list_feed(**kwargs)

    def semantic_search(self, text: str, k: int = DEFAULT_SEARCH_K, user_type: str | None = None) -> List[ScoredEvent]:
        if not text or not text.strip():
            raise ValidationError("query text is required", field="query")
        return self.retrieval.search_text(text.strip(), k, user_type=user_type)


def build_schedule_service(settings: ScheduleSettings | None = None, *, collection: Any = None) -> ScheduleService:
    """Wire the service from configuration; call once at process start."""
    settings = settings or ScheduleSettings()
    store = EventStore(collection)
    generator = EmbeddingGenerator(build_embedding_provider(), concurrency=settings.embed_concurrency)
    index = build_vector_index(store)
    return ScheduleService(
        store,
        generator,
        RetrievalEngine(store, index, generator),
        blob_store=GridFSBlobStore(),
        index=index,
        settings=settings,
    )


def to_filter(params: Mapping[str, Any]) -> EventFilter:
    """Build an :class:`EventFilter` from query-string style parameters."""
    def _int(name: str, default: int) -> int:
        raw = params.get(name)
        if raw in (None, ""):
            return default
        try:
            return max(0, int(raw))
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be an integer", field=name) from None

    start = coerce_date(params.get("startDate")) if params.get("startDate") else None
    end = coerce_date(params.get("endDate")) if params.get("endDate") else None
    if params.get("startDate") and start is None:
        raise ValidationError("startDate is not a valid date", field="startDate")
    if params.get("endDate") and end is None:
        raise ValidationError("endDate is not a valid date", field="endDate")
    return EventFilter(
        start_date=start,
        end_date=end,
        category=params.get("category") or None,
        type=params.get("type") or None,
        surface=params.get("surface") or "calendar",
        semester=params.get("semester"),
        user_type=params.get("userType") or None,
        exam_type=params.get("examType") or None,
        limit=_int("limit", DEFAULT_QUERY_LIMIT),
        skip=_int("skip", 0),
    )


__all__ = ["ScheduleService", "build_schedule_service", "to_filter", "UPDATABLE_FIELDS"]
