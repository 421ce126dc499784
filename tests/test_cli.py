import io
import unittest
from contextlib import redirect_stdout
from datetime import date
from unittest.mock import MagicMock, patch
import json
import os
import sys
import tempfile

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from schedule_engine.__main__ import main
from schedule_engine.errors import ValidationError
from schedule_engine.models import Event, IngestionSummary, ScoredEvent, SingleDate


class TestCommandLine(unittest.TestCase):

    @patch("schedule_engine.__main__.build_schedule_service")
    def test_import_csv(self, build):
        service = build.return_value
        service.ingest_csv.return_value = IngestionSummary(inserted=2, total_processed=2)
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "schedule.csv")
            with open(path, "w", encoding="utf-8") as handle:
                handle.write("Event,Date,Type\nExam,Jan 5,Academic\n")
            out = io.StringIO()
            with redirect_stdout(out):
                code = main(["import-csv", path, "--user", "registrar", "--year", "2025"])

        self.assertEqual(code, 0)
        service.ingest_csv.assert_called_once_with(
            "Event,Date,Type\nExam,Jan 5,Academic\n", user_id="registrar", default_year=2025
        )
        self.assertEqual(json.loads(out.getvalue())["inserted"], 2)

    @patch("schedule_engine.__main__.build_schedule_service")
    def test_search(self, build):
        event = Event("Finals", SingleDate(date(2025, 5, 1)), id="abc")
        build.return_value.semantic_search.return_value = [ScoredEvent(event, 0.8)]
        out = io.StringIO()
        with redirect_stdout(out):
            code = main(["search", "final exams", "-k", "3", "--user-type", "student"])

        self.assertEqual(code, 0)
        build.return_value.semantic_search.assert_called_once_with("final exams", 3, user_type="student")
        self.assertEqual(json.loads(out.getvalue())[0]["score"], 80.0)

    @patch("schedule_engine.__main__.backfill.run")
    def test_backfill(self, run):
        self.assertEqual(main(["backfill-embeddings", "--limit", "50"]), 0)
        run.assert_called_once_with(50)

    @patch("schedule_engine.__main__.build_schedule_service")
    def test_errors_return_non_zero(self, build):
        build.return_value.semantic_search.side_effect = ValidationError("query text is required")
        self.assertEqual(main(["search", " "]), 1)


class TestBackfillWorkflow(unittest.TestCase):

    def test_run_uses_given_service(self):
        from schedule_engine.models import BackfillReport
        from schedule_engine.workflows import backfill

        service = MagicMock()
        service.backfill_embeddings.return_value = BackfillReport(scanned=3, embedded=2, failed=1)

        report = backfill.run(limit=5, service=service)

        service.backfill_embeddings.assert_called_once_with(5)
        self.assertEqual(report.embedded, 2)


if __name__ == '__main__':
    unittest.main()
