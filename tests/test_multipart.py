import io
import unittest
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from schedule_engine.errors import PayloadTooLargeError, ValidationError
from schedule_engine.services.multipart import (
    DEFAULT_PART_CONTENT_TYPE,
    decode_multipart,
    ensure_size,
    extract_boundary,
    find_file_part,
    find_part,
    read_body,
)

BOUNDARY = "----portalBoundary42"


def build_body(parts, boundary=BOUNDARY, newline=b"\r\n"):
    """Assemble a multipart body from ``(headers, data)`` pairs."""
    chunks = []
    for headers, data in parts:
        chunks.append(b"--" + boundary.encode() + newline)
        for header in headers:
            chunks.append(header.encode() + newline)
        chunks.append(newline)
        chunks.append(data + newline)
    chunks.append(b"--" + boundary.encode() + b"--" + newline)
    return b"".join(chunks)


class TestExtractBoundary(unittest.TestCase):

    def test_plain_boundary(self):
        self.assertEqual(extract_boundary(f"multipart/form-data; boundary={BOUNDARY}"), BOUNDARY)

    def test_quoted_boundary(self):
        self.assertEqual(extract_boundary('multipart/form-data; boundary="abc123"'), "abc123")

    def test_rejects_other_content_types(self):
        with self.assertRaises(ValidationError):
            extract_boundary("application/json")
        with self.assertRaises(ValidationError):
            extract_boundary(None)

    def test_missing_boundary(self):
        with self.assertRaises(ValidationError) as ctx:
            extract_boundary("multipart/form-data")
        self.assertEqual(ctx.exception.field, "content-type")


class TestDecodeMultipart(unittest.TestCase):

    def test_fields_and_file_in_order(self):
        png = b"\x89PNG\r\n\x1a\nbinary"
        body = build_body([
            (['Content-Disposition: form-data; name="title"'], b"Foundation Day"),
            (['Content-Disposition: form-data; name="date"'], b"2025-08-04"),
            (
                ['Content-Disposition: form-data; name="image"; filename="poster.png"', "Content-Type: image/png"],
                png,
            ),
        ])

        parts = decode_multipart(body, BOUNDARY)

        self.assertEqual([part.name for part in parts], ["title", "date", "image"])
        self.assertEqual(parts[0].text(), "Foundation Day")
        self.assertIsNone(parts[0].filename)
        self.assertEqual(parts[0].content_type, DEFAULT_PART_CONTENT_TYPE)
        self.assertEqual(parts[2].filename, "poster.png")
        self.assertEqual(parts[2].content_type, "image/png")
        self.assertEqual(parts[2].data, png)

    def test_bare_lf_line_endings(self):
        body = build_body(
            [(['Content-Disposition: form-data; name="title"'], b"Intramurals")],
            newline=b"\n",
        )
        parts = decode_multipart(body, BOUNDARY)
        self.assertEqual(len(parts), 1)
        self.assertEqual(parts[0].text(), "Intramurals")

    def test_parts_without_name_are_dropped(self):
        body = build_body([
            (['Content-Disposition: form-data'], b"orphan"),
            (['Content-Disposition: form-data; name="title"'], b"Kept"),
        ])
        parts = decode_multipart(body, BOUNDARY)
        self.assertEqual([part.name for part in parts], ["title"])

    def test_empty_body(self):
        self.assertEqual(decode_multipart(b"", BOUNDARY), [])

    def test_find_helpers(self):
        body = build_body([
            (['Content-Disposition: form-data; name="title"'], b"Exam"),
            (['Content-Disposition: form-data; name="file"; filename="sched.csv"', "Content-Type: text/csv"], b"a,b"),
        ])
        parts = decode_multipart(body, BOUNDARY)
        self.assertEqual(find_part(parts, "title").text(), "Exam")
        self.assertIsNone(find_part(parts, "missing"))
        self.assertEqual(find_file_part(parts).filename, "sched.csv")


class TestBodyLimits(unittest.TestCase):

    def test_read_body_within_limit(self):
        self.assertEqual(read_body(io.BytesIO(b"x" * 100), max_bytes=100), b"x" * 100)

    def test_read_body_over_limit(self):
        with self.assertRaises(PayloadTooLargeError) as ctx:
            read_body(io.BytesIO(b"x" * 101), max_bytes=100)
        self.assertEqual(ctx.exception.limit, 100)

    def test_ensure_size(self):
        self.assertEqual(ensure_size(b"abc", max_bytes=3), b"abc")
        with self.assertRaises(PayloadTooLargeError):
            ensure_size(b"abcd", max_bytes=3)


if __name__ == '__main__':
    unittest.main()
