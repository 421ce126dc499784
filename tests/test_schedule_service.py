import json
import unittest
from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock
import os
import sys

from bson import ObjectId

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from schedule_engine.config import ScheduleSettings
from schedule_engine.errors import EventNotFoundError, PayloadTooLargeError, ValidationError
from schedule_engine.models import DateRange, Event, EventFilter, SingleDate
from schedule_engine.services.embeddings import EmbeddingOutcome, synthesize
from schedule_engine.services.storage import EventStore
from schedule_engine.workflows.schedule_service import ScheduleService, to_filter

BOUNDARY = "formBoundary7MA4YWxk"
MULTIPART = f"multipart/form-data; boundary={BOUNDARY}"


def utc(year, month, day):
    return datetime(year, month, day, tzinfo=timezone.utc)


def form(fields=(), files=()):
    chunks = []
    for name, value in fields:
        chunks.append(
            f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n{value}\r\n'.encode()
        )
    for name, filename, content_type, data in files:
        chunks.append(
            (
                f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
                f"Content-Type: {content_type}\r\n\r\n"
            ).encode()
            + data
            + b"\r\n"
        )
    chunks.append(f"--{BOUNDARY}--\r\n".encode())
    return b"".join(chunks)


def as_json(payload):
    return json.dumps(payload).encode()


class ScheduleServiceTestCase(unittest.TestCase):

    def setUp(self):
        self.store = MagicMock()
        self.generator = MagicMock()
        self.generator.embed_event.return_value = EmbeddingOutcome("text", vector=[0.1, 0.2])
        self.retrieval = MagicMock()
        self.blob_store = MagicMock()
        self.index = MagicMock()
        self.service = ScheduleService(
            self.store,
            self.generator,
            self.retrieval,
            blob_store=self.blob_store,
            index=self.index,
            settings=ScheduleSettings(public_base_url="http://portal.local/", max_json_body_bytes=2048),
        )


class TestCreateEvent(ScheduleServiceTestCase):

    def test_create_from_json(self):
        self.store.insert.return_value = "evt-1"

        event = self.service.create_event(
            as_json({"title": "Sports Fest", "date": "2025-02-10", "userType": "students"}),
            "application/json",
            user_id="admin-1",
        )

        self.assertEqual(event.id, "evt-1")
        self.assertEqual(event.when, SingleDate(date(2025, 2, 10)))
        self.assertEqual(event.category, "Event")
        document = self.store.insert.call_args[0][0]
        self.assertEqual(document["embedding"], [0.1, 0.2])
        self.assertEqual(document["createdBy"], "admin-1")
        self.assertEqual(document["userType"], "student")
        self.index.upsert.assert_called_once()
        self.assertEqual(self.index.upsert.call_args[0][:2], ("evt-1", [0.1, 0.2]))

    def test_embedding_failure_still_stores_event(self):
        self.generator.embed_event.return_value = EmbeddingOutcome("text", error="timeout")
        self.store.insert.return_value = "evt-2"

        event = self.service.create_event(as_json({"title": "Exam", "date": "2025-03-03"}), "application/json")

        self.assertIsNone(event.embedding)
        self.assertNotIn("embedding", self.store.insert.call_args[0][0])
        self.index.upsert.assert_not_called()

    def test_create_from_form_with_image(self):
        self.store.insert.return_value = "evt-3"
        self.blob_store.upload.return_value = "img-9"
        body = form(
            fields=[("title", "Enrollment Notice"), ("date", "2025-06-01"), ("description", "Bring your ID")],
            files=[("image", "notice.png", "image/png", b"\x89PNGdata")],
        )

        event = self.service.create_event(body, MULTIPART, user_id="admin-1")

        self.assertEqual(event.category, "General")
        self.assertEqual(event.type, "announcement")
        self.assertEqual(event.image_url, "http://portal.local/api/images/img-9")
        upload_args = self.blob_store.upload.call_args[0]
        self.assertEqual(upload_args[:3], (b"\x89PNGdata", "notice.png", "image/png"))
        document = self.store.insert.call_args[0][0]
        self.assertEqual(document["images"], ["http://portal.local/api/images/img-9"])
        self.assertEqual(document["imageFileId"], "img-9")

    def test_form_event_category_gets_event_type(self):
        self.store.insert.return_value = "evt-4"
        body = form(fields=[("title", "Concert"), ("date", "2025-06-01"), ("category", "Event")])
        self.assertEqual(self.service.create_event(body, MULTIPART).type, "event")

    def test_form_requires_date(self):
        with self.assertRaises(ValidationError) as ctx:
            self.service.create_event(form(fields=[("title", "No Date")]), MULTIPART)
        self.assertEqual(ctx.exception.field, "date")
        self.store.insert.assert_not_called()

    def test_missing_content_type_defaults_to_form(self):
        self.assertEqual(self.service.payload_kind(None), "multipart")
        self.assertEqual(self.service.payload_kind("application/json; charset=utf-8"), "json")
        with self.assertRaises(ValidationError):
            self.service.create_event(as_json({"title": "x"}), None)

    def test_bad_json(self):
        with self.assertRaises(ValidationError):
            self.service.create_event(b"{not json", "application/json")
        with self.assertRaises(ValidationError):
            self.service.create_event(b"[1, 2]", "application/json")

    def test_json_size_cap(self):
        body = as_json({"title": "x" * 4096, "date": "2025-01-01"})
        with self.assertRaises(PayloadTooLargeError):
            self.service.create_event(body, "application/json")


class TestUpdateEvent(ScheduleServiceTestCase):

    def stored(self, **overrides):
        document = {
            "_id": ObjectId(),
            "title": "Midterm Exams",
            "description": "Bring blue books",
            "category": "Academic",
            "dateType": "date",
            "isoDate": utc(2025, 3, 10),
            "date": "Mar 10, 2025",
            "year": 2025,
            "month": 3,
            "embedding": [0.9, 0.9],
            "createdAt": utc(2025, 1, 1),
        }
        document.update(overrides)
        self.store.get.return_value = document
        self.store.update.return_value = True
        return document

    def test_description_change_reembeds(self):
        stored = self.stored()
        self.generator.embed_event.return_value = EmbeddingOutcome("text", vector=[0.4, 0.5])

        event = self.service.update_event(str(stored["_id"]), as_json({"description": "Room change"}), "application/json")

        self.assertEqual(event.description, "Room change")
        self.assertEqual(event.when, SingleDate(date(2025, 3, 10)))
        self.generator.embed_event.assert_called_once()
        event_id, document, unset = self.store.update.call_args[0]
        self.assertEqual(event_id, str(stored["_id"]))
        self.assertEqual(document["embedding"], [0.4, 0.5])
        self.assertEqual(document["createdAt"], utc(2025, 1, 1))
        self.assertEqual(
            sorted(unset),
            ["endDate", "isPinned", "isUrgent", "semester", "startDate", "type", "userType", "weekOfMonth"],
        )
        self.index.upsert.assert_called_once()

    def test_flag_change_keeps_embedding(self):
        stored = self.stored()

        event = self.service.update_event(str(stored["_id"]), as_json({"isPinned": True}), "application/json")

        self.assertTrue(event.is_pinned)
        self.generator.embed_event.assert_not_called()
        document = self.store.update.call_args[0][1]
        self.assertEqual(document["embedding"], [0.9, 0.9])
        self.index.upsert.assert_not_called()

    def test_date_type_change_unsets_range_fields(self):
        stored = self.stored(
            dateType="date_range",
            startDate=utc(2025, 3, 10),
            endDate=utc(2025, 3, 14),
        )

        event = self.service.update_event(str(stored["_id"]), as_json({"dateType": "date"}), "application/json")

        self.assertEqual(event.when, SingleDate(date(2025, 3, 10)))
        document, unset = self.store.update.call_args[0][1:]
        self.assertEqual(document["dateType"], "date")
        self.assertIn("startDate", unset)
        self.assertIn("endDate", unset)

    def test_switch_to_range(self):
        stored = self.stored()

        event = self.service.update_event(
            str(stored["_id"]),
            as_json({"dateType": "date_range", "startDate": "2025-03-10", "endDate": "2025-03-14"}),
            "application/json",
        )

        self.assertEqual(event.when, DateRange(date(2025, 3, 10), date(2025, 3, 14), date(2025, 3, 10)))
        unset = self.store.update.call_args[0][2]
        self.assertNotIn("startDate", unset)

    def test_failed_reembed_drops_vector(self):
        stored = self.stored()
        self.generator.embed_event.return_value = EmbeddingOutcome("text", error="down")

        self.service.update_event(str(stored["_id"]), as_json({"title": "Midterms"}), "application/json")

        document, unset = self.store.update.call_args[0][1:]
        self.assertNotIn("embedding", document)
        self.assertIn("embedding", unset)
        self.index.delete.assert_called_once_with(str(stored["_id"]))

    def test_not_found(self):
        self.store.get.return_value = None
        with self.assertRaises(EventNotFoundError):
            self.service.update_event(str(ObjectId()), as_json({"title": "x"}), "application/json")

    def test_document_removed_during_update(self):
        stored = self.stored()
        self.store.update.return_value = False
        with self.assertRaises(EventNotFoundError):
            self.service.update_event(str(stored["_id"]), as_json({"title": "x"}), "application/json")

    def test_nothing_to_update(self):
        with self.assertRaises(ValidationError):
            self.service.update_event(str(ObjectId()), as_json({"createdBy": "intruder"}), "application/json")
        self.store.get.assert_not_called()


class DocumentCollection:
    """Applies ``$set``/``$unset`` to documents looked up by ``_id``."""

    def __init__(self, *documents):
        self.documents = {document["_id"]: dict(document) for document in documents}

    def find_one(self, key, projection=None):
        return self.documents.get(key["_id"])

    def update_one(self, key, updates, upsert=False):
        document = self.documents.get(key["_id"])
        if document is None:
            return SimpleNamespace(matched_count=0, upserted_id=None)
        document.update(updates.get("$set", {}))
        for name in updates.get("$unset", {}):
            document.pop(name, None)
        return SimpleNamespace(matched_count=1, upserted_id=None)


class TestUpdateRoundTrip(ScheduleServiceTestCase):
    """Updates written through a real EventStore."""

    def setUp(self):
        super().setUp()
        self.event_id = ObjectId()
        self.collection = DocumentCollection({
            "_id": self.event_id,
            "title": "Midterm Exams",
            "description": "Bring blue books",
            "category": "Academic",
            "dateType": "date",
            "isoDate": utc(2025, 3, 10),
            "date": "Mar 10, 2025",
            "year": 2025,
            "month": 3,
            "semester": 1,
            "userType": "student",
            "isPinned": True,
            "embedding": [0.9, 0.9],
            "createdAt": utc(2025, 1, 1),
        })
        self.service.store = EventStore(self.collection)
        self.embedded = []

        def embed(event):
            self.embedded.append(synthesize(event))
            return EmbeddingOutcome(self.embedded[-1], vector=[0.3, 0.4])

        self.generator.embed_event.side_effect = embed

    def test_clearing_semester_and_unpinning_removes_fields(self):
        self.service.update_event(
            str(self.event_id), as_json({"semester": "", "isPinned": False}), "application/json"
        )

        stored = self.collection.documents[self.event_id]
        self.assertNotIn("semester", stored)
        self.assertNotIn("isPinned", stored)
        self.assertEqual(stored["userType"], "student")
        self.assertEqual(stored["embedding"], [0.3, 0.4])
        self.assertEqual(self.embedded, [synthesize(Event.from_document(stored))])

    def test_unpinning_alone_keeps_embedding(self):
        self.service.update_event(str(self.event_id), as_json({"isPinned": False}), "application/json")

        stored = self.collection.documents[self.event_id]
        self.assertNotIn("isPinned", stored)
        self.assertEqual(stored["semester"], 1)
        self.assertEqual(stored["embedding"], [0.9, 0.9])
        self.generator.embed_event.assert_not_called()


class TestSpreadsheetUpload(ScheduleServiceTestCase):

    CSV = (
        b"Title,DateType,StartDate,EndDate\n"
        b"Finals Week,date_range,2025-05-01,2025-05-03\n"
        b"Backwards,date_range,2025-05-03,2025-05-01\n"
    )

    def setUp(self):
        super().setUp()
        self.generator.embed_many.side_effect = lambda events: [
            EmbeddingOutcome("t", vector=[0.1]) for _ in events
        ]
        self.store.upsert_occurrence.side_effect = [(True, "a"), (False, "b"), (True, "c")]

    def test_upload_csv(self):
        body = form(files=[("file", "schedule.csv", "text/csv", self.CSV)])

        summary = self.service.upload_spreadsheet(body, MULTIPART, user_id="admin-1")

        self.assertEqual((summary.inserted, summary.updated), (2, 1))
        self.assertEqual(summary.total_processed, 3)
        self.assertEqual(summary.skipped, 1)
        self.assertEqual(summary.to_response()["warnings"][0][:6], "Row 3:")
        documents = [call.args[0] for call in self.store.upsert_occurrence.call_args_list]
        self.assertTrue(all(document["createdBy"] == "admin-1" for document in documents))
        self.assertEqual(self.index.upsert.call_count, 3)

    def test_rejects_non_csv(self):
        body = form(files=[("file", "schedule.xlsx", "application/octet-stream", b"PK")])
        with self.assertRaises(ValidationError):
            self.service.upload_spreadsheet(body, MULTIPART)

    def test_requires_file(self):
        with self.assertRaises(ValidationError):
            self.service.upload_spreadsheet(form(fields=[("title", "x")]), MULTIPART)

    def test_all_rows_invalid(self):
        with self.assertRaises(ValidationError):
            self.service.ingest_csv("Event,Date,Type\nParty,TBD,Academic\n")
        self.store.upsert_occurrence.assert_not_called()


class TestDeleteAndBackfill(ScheduleServiceTestCase):

    def test_delete_event(self):
        oid = ObjectId()
        self.store.get.return_value = {"_id": oid, "title": "x", "imageFileId": "img-1"}
        self.store.delete.return_value = 1

        self.service.delete_event(str(oid))

        self.blob_store.delete.assert_called_once_with("img-1")
        self.index.delete.assert_called_once_with(str(oid))

    def test_delete_missing_event(self):
        self.store.get.return_value = None
        with self.assertRaises(EventNotFoundError):
            self.service.delete_event(str(ObjectId()))
        self.store.delete.assert_not_called()

    def test_delete_all_events(self):
        self.store.delete_all.return_value = 7
        self.assertEqual(self.service.delete_all_events(), 7)
        self.index.delete_all.assert_called_once()

    def test_backfill_embeddings(self):
        good = {"_id": ObjectId(), "title": "Exam", "isoDate": utc(2025, 3, 3)}
        broken = {"_id": ObjectId(), "title": "No date"}
        failing = {"_id": ObjectId(), "title": "Retry later", "isoDate": utc(2025, 3, 4)}
        self.store.find_missing_embeddings.return_value = [good, broken, failing]
        self.generator.embed_event.side_effect = [
            EmbeddingOutcome("a", vector=[0.7]),
            EmbeddingOutcome("b", error="timeout"),
        ]

        report = self.service.backfill_embeddings(limit=10)

        self.store.find_missing_embeddings.assert_called_once_with(10)
        self.assertEqual((report.scanned, report.embedded, report.failed), (3, 1, 2))
        self.store.set_embedding.assert_called_once_with(str(good["_id"]), [0.7])


class TestReads(ScheduleServiceTestCase):

    def test_semantic_search_requires_text(self):
        with self.assertRaises(ValidationError):
            self.service.semantic_search("   ")

    def test_semantic_search_delegates(self):
        self.retrieval.search_text.return_value = []
        self.service.semantic_search(" finals schedule ", 5, user_type="student")
        self.retrieval.search_text.assert_called_once_with("finals schedule", 5, user_type="student")

    def test_get_event_not_found(self):
        self.store.get.return_value = None
        with self.assertRaises(EventNotFoundError):
            self.service.get_event(str(ObjectId()))


class TestToFilter(unittest.TestCase):

    def test_query_parameters(self):
        criteria = to_filter({
            "startDate": "2025-03-01",
            "endDate": "2025-03-31",
            "semester": "1",
            "userType": "student",
            "examType": "midterm",
            "limit": "25",
        })
        self.assertEqual(criteria.start_date, date(2025, 3, 1))
        self.assertEqual(criteria.end_date, date(2025, 3, 31))
        self.assertEqual(criteria.exam_type, "midterm")
        self.assertEqual((criteria.limit, criteria.skip), (25, 0))
        self.assertEqual(criteria.surface, "calendar")

    def test_defaults(self):
        self.assertEqual(to_filter({}), EventFilter())

    def test_invalid_values(self):
        with self.assertRaises(ValidationError):
            to_filter({"limit": "lots"})
        with self.assertRaises(ValidationError):
            to_filter({"startDate": "someday"})


if __name__ == '__main__':
    unittest.main()
