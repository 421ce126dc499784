"""Workflows composing the service layer."""

from .schedule_service import ScheduleService, build_schedule_service, to_filter  # noqa: F401

__all__ = ["ScheduleService", "build_schedule_service", "to_filter"]
