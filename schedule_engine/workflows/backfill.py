"""Embed stored schedule events that were saved without a vector."""

from __future__ import annotations

import logging

from ..logging_config import logging as _  # noqa: F401  # ensure config applied early
from ..models import BackfillReport
from .schedule_service import ScheduleService, build_schedule_service

logger = logging.getLogger(__name__)


def run(limit: int | None = None, service: ScheduleService | None = None) -> BackfillReport:
    """Execute one backfill pass."""
    logger.info("Starting schedule embedding backfill")
    service = service or build_schedule_service()
    report = service.backfill_embeddings(limit)
    _log_stats(report)
    return report


def _log_stats(report: BackfillReport) -> None:
    logger.info("=== Schedule Embedding Backfill ===")
    logger.info("Events without embedding: %d", report.scanned)
    logger.info("Embeddings generated: %d", report.embedded)
    logger.info("Failures: %d", report.failed)
    logger.info("===================================")

__all__ = ["run"]
