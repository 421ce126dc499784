"""Command-line entry point: ``python -m schedule_engine <command>``."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List

from .config import DEFAULT_SEARCH_K
from .errors import ScheduleError
from .logging_config import logging as _  # noqa: F401  # ensure config applied early
from .workflows import backfill
from .workflows.schedule_service import build_schedule_service

logger = logging.getLogger("schedule_engine")


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="schedule_engine", description="School schedule ingestion and search")
    commands = parser.add_subparsers(dest="command", required=True)

    import_csv = commands.add_parser("import-csv", help="Upsert events from a schedule CSV file")
    import_csv.add_argument("path", type=Path)
    import_csv.add_argument("--user", default=None, help="Recorded as createdBy")
    import_csv.add_argument("--year", type=int, default=None, help="Year for rows without one")

    fill = commands.add_parser("backfill-embeddings", help="Embed events stored without a vector")
    fill.add_argument("--limit", type=int, default=None)

    search = commands.add_parser("search", help="Semantic search over schedule events")
    search.add_argument("query")
    search.add_argument("-k", type=int, default=DEFAULT_SEARCH_K)
    search.add_argument("--user-type", default=None, choices=("student", "faculty", "all"))
    return parser


def main(argv: List[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    try:
        if args.command == "backfill-embeddings":
            backfill.run(args.limit)
            return 0

        service = build_schedule_service()
        if args.command == "import-csv":
            text = args.path.read_bytes().decode("utf-8-sig", errors="replace")
            summary = service.ingest_csv(text, user_id=args.user, default_year=args.year)
            print(json.dumps(summary.to_response(), indent=2))
        else:
            results = service.semantic_search(args.query, args.k, user_type=args.user_type)
            print(json.dumps([item.to_response() for item in results], indent=2, default=str))
    except ScheduleError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
