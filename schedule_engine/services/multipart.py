"""Minimal multipart/form-data decoding for uploads.

The whole body is buffered (bounded by ``MAX_UPLOAD_BYTES``) and then split
on the boundary marker; there is no streaming parse.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import BinaryIO, Dict, List

from ..config import MAX_UPLOAD_BYTES
from ..errors import PayloadTooLargeError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PART_CONTENT_TYPE = "application/octet-stream"
_READ_CHUNK_SIZE = 64 * 1024

_NAME_RE = re.compile(r'(?:^|;)\s*name="([^"]*)"', re.IGNORECASE)
_FILENAME_RE = re.compile(r'(?:^|;)\s*filename="([^"]*)"', re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class MultipartPart:
    name: str
    filename: str | None
    content_type: str
    data: bytes

    def text(self, encoding: str = "utf-8") -> str:
        """Decoded, stripped field value."""
        return self.data.decode(encoding, errors="replace").strip()


def extract_boundary(content_type: str | None) -> str:
    """Return the boundary token of a ``multipart/form-data`` Content-Type."""
    if not content_type or "multipart/form-data" not in content_type.lower():
        raise ValidationError("Content-Type must be multipart/form-data", field="content-type")
    match = re.search(r"boundary=([^;]+)", content_type, flags=re.IGNORECASE)
    if not match:
        raise ValidationError("Missing boundary in Content-Type header", field="content-type")
    boundary = match.group(1).strip().strip("\"'")
    if not boundary:
        raise ValidationError("Empty boundary in Content-Type header", field="content-type")
    return boundary


def read_body(stream: BinaryIO, max_bytes: int = MAX_UPLOAD_BYTES) -> bytes:
    """Buffer *stream*, aborting as soon as more than *max_bytes* have arrived."""
    chunks: List[bytes] = []
    total = 0
    while True:
        chunk = stream.read(_READ_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            logger.warning("Rejecting request body: exceeded %d bytes", max_bytes)
            raise PayloadTooLargeError(max_bytes)
        chunks.append(chunk)
    return b"".join(chunks)


def ensure_size(body: bytes, max_bytes: int = MAX_UPLOAD_BYTES) -> bytes:
    if len(body) > max_bytes:
        raise PayloadTooLargeError(max_bytes)
    return body


def _parse_headers(raw: bytes) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for line in raw.decode("utf-8", errors="replace").splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        headers[key.strip().lower()] = value.strip()
    return headers


def _parse_part(segment: bytes) -> MultipartPart | None:
    # Separator is normally CRLFCRLF; tolerate bare LF clients.
    separator = b"\r\n\r\n"
    index = segment.find(separator)
    if index == -1:
        separator = b"\n\n"
        index = segment.find(separator)
    if index == -1:
        return None

    headers = _parse_headers(segment[:index])
    body = segment[index + len(separator):]
    # The line break before the next boundary belongs to the delimiter.
    if body.endswith(b"\r\n"):
        body = body[:-2]
    elif body.endswith(b"\n"):
        body = body[:-1]

    disposition = headers.get("content-disposition", "")
    name_match = _NAME_RE.search(disposition)
    if not name_match or not name_match.group(1):
        return None
    filename_match = _FILENAME_RE.search(disposition)

    return MultipartPart(
        name=name_match.group(1),
        filename=filename_match.group(1) if filename_match and filename_match.group(1) else None,
        content_type=headers.get("content-type") or DEFAULT_PART_CONTENT_TYPE,
        data=body,
    )


def decode_multipart(body: bytes, boundary: str) -> List[MultipartPart]:
    """Split *body* into named parts, in order. Parts without a name are dropped."""
    delimiter = b"--" + boundary.encode("latin-1")
    parts: List[MultipartPart] = []

    position = body.find(delimiter)
    while position != -1:
        start = position + len(delimiter)
        if body[start:start + 2] == b"--":
            break
        following = body.find(delimiter, start)
        segment = body[start:following] if following != -1 else body[start:]
        # Drop the line break that terminates the boundary line itself.
        if segment.startswith(b"\r\n"):
            segment = segment[2:]
        elif segment.startswith(b"\n"):
            segment = segment[1:]
        part = _parse_part(segment)
        if part is not None:
            parts.append(part)
        if following == -1:
            break
        position = following

    logger.debug("Decoded %d multipart parts", len(parts))
    return parts


def find_part(parts: List[MultipartPart], name: str) -> MultipartPart | None:
    return next((part for part in parts if part.name == name), None)


def find_file_part(parts: List[MultipartPart]) -> MultipartPart | None:
    return next((part for part in parts if part.filename), None)


__all__ = [
    "MultipartPart",
    "DEFAULT_PART_CONTENT_TYPE",
    "extract_boundary",
    "read_body",
    "ensure_size",
    "decode_multipart",
    "find_part",
    "find_file_part",
]
