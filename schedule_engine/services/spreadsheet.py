"""CSV reading and header detection for schedule spreadsheets."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence

from ..errors import SchemaDetectionError
from ..utils.text_cleaning import clean_cell, normalize_header, strip_bom

logger = logging.getLogger(__name__)

# Logical field -> normalised header spellings that map onto it.
HEADER_ALIASES: Dict[str, frozenset[str]] = {
    "title": frozenset({"event", "title", "name", "eventname", "eventtitle"}),
    "category": frozenset({"type", "category", "eventtype"}),
    "date_type": frozenset({"datetype"}),
    "start_date": frozenset({"startdate", "start"}),
    "end_date": frozenset({"enddate", "end"}),
    "year": frozenset({"year"}),
    "month": frozenset({"month"}),
    "week_of_month": frozenset({"weekofmonth", "weekinmonth", "week"}),
    "description": frozenset({"description", "desc", "details"}),
    "time": frozenset({"time", "eventtime"}),
    "semester": frozenset({"semester", "sem", "term"}),
    "user_type": frozenset({"usertype", "audience", "audiencetype", "targetuser"}),
    "date": frozenset({"date", "eventdate", "when"}),
}

MIN_RECOGNIZED_FIELDS = 3
_NEW_FORMAT_FIELDS = ("date_type", "start_date", "end_date")


@dataclass(frozen=True, slots=True)
class FieldMap:
    """Column index of every recognised field in a header row."""

    columns: Dict[str, int]

    def __contains__(self, name: str) -> bool:
        return name in self.columns

    @property
    def fields(self) -> List[str]:
        return sorted(self.columns, key=self.columns.__getitem__)

    @property
    def is_new_format(self) -> bool:
        """True when the sheet uses DateType/StartDate/EndDate columns."""
        return any(name in self.columns for name in _NEW_FORMAT_FIELDS)

    def value(self, row: Sequence[str], name: str) -> str:
        """Cleaned cell for *name*, or ``""`` when the column or cell is missing."""
        index = self.columns.get(name)
        if index is None or index >= len(row):
            return ""
        return clean_cell(row[index])


def read_csv_rows(text: str) -> List[List[str]]:
    """Parse CSV *text* into rows, dropping blank lines.

    Quoting follows RFC 4180: doubled quotes are literal, commas inside
    quotes do not split.
    """
    reader = csv.reader(io.StringIO(strip_bom(text)))
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    logger.debug("Read %d non-blank CSV rows", len(rows))
    return rows


def decode_csv_bytes(data: bytes) -> str:
    """Decode uploaded bytes, tolerating a UTF-8 BOM."""
    return data.decode("utf-8-sig", errors="replace")


def detect_schema(header: Iterable[str]) -> FieldMap:
    """Map *header* cells onto logical fields.

    The first column matching a field wins. Raises
    :class:`SchemaDetectionError` unless a title column and at least two
    other recognised columns are present.
    """
    columns: Dict[str, int] = {}
    for index, cell in enumerate(header):
        normalised = normalize_header(str(cell or ""))
        if not normalised:
            continue
        for name, aliases in HEADER_ALIASES.items():
            if normalised in aliases and name not in columns:
                columns[name] = index
                break

    found = sorted(columns, key=columns.__getitem__)
    if "title" not in columns or len(columns) < MIN_RECOGNIZED_FIELDS:
        logger.warning("Spreadsheet header rejected; recognised fields: %s", found)
        raise SchemaDetectionError(
            "Could not detect CSV format: insufficient schema "
            f"(need an event/title column and at least two more known columns; found: {', '.join(found) or 'none'})",
            found_fields=found,
        )
    logger.info("Detected spreadsheet columns: %s", ", ".join(found))
    return FieldMap(columns)


__all__ = [
    "HEADER_ALIASES",
    "MIN_RECOGNIZED_FIELDS",
    "FieldMap",
    "read_csv_rows",
    "decode_csv_bytes",
    "detect_schema",
]
