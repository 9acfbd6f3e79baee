"""Scheduling: pace, derived release times, and control operations."""

from backcast.schedule.models import (
    ActivePlayback,
    CatchUpSummary,
    PausedPlayback,
    ScheduleEntry,
    ScheduleState,
)
from backcast.schedule.pace import CatchUpPace, RatioPace, normalize_rate, parse_pace
from backcast.schedule.scheduler import derive

__all__ = [
    "ActivePlayback",
    "CatchUpPace",
    "CatchUpSummary",
    "PausedPlayback",
    "RatioPace",
    "ScheduleEntry",
    "ScheduleState",
    "derive",
    "normalize_rate",
    "parse_pace",
]
