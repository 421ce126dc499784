"""Top-level package for the schedule-engine project.

This package exposes the schedule service factory so callers can do
`from schedule_engine import build_schedule_service` once at start-up, or run
maintenance commands with `python -m schedule_engine`.
"""

from importlib import metadata as _metadata

try:
    __version__: str = _metadata.version("schedule-engine")
except _metadata.PackageNotFoundError:  # pragma: no cover – running from source
    __version__ = "0.0.0"

from .workflows import ScheduleService, build_schedule_service  # convenience re-export

__all__ = ["ScheduleService", "build_schedule_service", "__version__"]
