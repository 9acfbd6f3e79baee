"""Rate transform from original publish times to derived release times."""

from datetime import datetime

from backcast.feeds.models import Entry
from backcast.schedule.models import ScheduleEntry
from backcast.schedule.pace import pace_out_of_range


def derive_instant(original: datetime, anchor: datetime, reference: datetime, rate: float) -> datetime:
    """Map one original instant onto the derived timeline.

    Raises:
        InvalidParameterError: If the result falls outside the datetime range
    """
    try:
        return anchor + (original - reference) / rate
    except OverflowError as e:
        raise pace_out_of_range(rate) from e


def derive(
    entries: list[Entry],
    anchor: datetime,
    reference: datetime,
    rate: float,
) -> list[ScheduleEntry]:
    """Compute the full schedule for a list of dated entries.

    Entries must already be sorted oldest first and all carry a publish date;
    numbering follows input order.

    Args:
        entries: Dated entries, ascending by publish date
        anchor: Derived instant of ``reference``
        reference: Original instant the schedule is anchored on
        rate: Speed ratio, > 0

    Returns:
        One ScheduleEntry per input entry, numbered from 1
    """
    if rate <= 0:
        raise ValueError(f"rate must be positive, got {rate}")

    schedule = []
    for number, entry in enumerate(entries, start=1):
        if entry.published is None:
            raise ValueError(f"Entry {number} ({entry.display_title}) has no publish date")
        schedule.append(
            ScheduleEntry(
                number=number,
                title=entry.display_title,
                release_at=derive_instant(entry.published, anchor, reference, rate),
            )
        )
    return schedule
