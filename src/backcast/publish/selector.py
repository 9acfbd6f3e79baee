"""Selection of entries whose release time has passed."""

from datetime import datetime

from backcast.schedule.models import ScheduleEntry


def count_eligible(schedule: list[ScheduleEntry], reference_instant: datetime) -> int:
    """Number of entries released strictly before ``reference_instant``.

    Release times are non-decreasing, so the eligible entries always form a
    prefix of the schedule.
    """
    count = 0
    for entry in schedule:
        if entry.release_at >= reference_instant:
            break
        count += 1
    return count


def next_release(schedule: list[ScheduleEntry], reference_instant: datetime) -> ScheduleEntry | None:
    """First entry still withheld at ``reference_instant``, or None if caught up."""
    index = count_eligible(schedule, reference_instant)
    if index < len(schedule):
        return schedule[index]
    return None
