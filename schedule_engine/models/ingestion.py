"""Result records produced by spreadsheet normalisation and bulk ingestion."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from .event import Event


@dataclass(frozen=True, slots=True)
class RowIssue:
    """A spreadsheet row that was skipped; ``row`` is 1-based and counts the header."""

    row: int
    reason: str


@dataclass(slots=True)
class NormalizationReport:
    events: List[Event] = field(default_factory=list)
    issues: List[RowIssue] = field(default_factory=list)


@dataclass(slots=True)
class IngestionSummary:
    inserted: int = 0
    updated: int = 0
    total_processed: int = 0
    skipped: int = 0
    embedding_failures: int = 0
    issues: List[RowIssue] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "totalProcessed": self.total_processed,
            "skipped": self.skipped,
            "warnings": [f"Row {issue.row}: {issue.reason}" for issue in self.issues],
        }


@dataclass(slots=True)
class BackfillReport:
    scanned: int = 0
    embedded: int = 0
    failed: int = 0


__all__ = ["RowIssue", "NormalizationReport", "IngestionSummary", "BackfillReport"]
