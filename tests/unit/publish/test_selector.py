"""Tests for release selection."""

from datetime import datetime, timedelta, timezone

from backcast.publish.selector import count_eligible, next_release
from backcast.schedule.models import ScheduleEntry

NOW = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)


def schedule(*offsets_hours: float) -> list[ScheduleEntry]:
    return [
        ScheduleEntry(number=n, title=f"Episode {n}", release_at=NOW + timedelta(hours=h))
        for n, h in enumerate(offsets_hours, start=1)
    ]


class TestCountEligible:
    """Test count_eligible."""

    def test_strictly_before(self) -> None:
        """Test an entry released exactly at the reference instant is withheld."""
        assert count_eligible(schedule(-2, -1, 0, 1), NOW) == 2

    def test_all_released(self) -> None:
        assert count_eligible(schedule(-3, -2, -1), NOW) == 3

    def test_none_released(self) -> None:
        assert count_eligible(schedule(1, 2), NOW) == 0

    def test_empty(self) -> None:
        assert count_eligible([], NOW) == 0

    def test_same_instant_entries(self) -> None:
        assert count_eligible(schedule(-1, -1, 1, 1), NOW) == 2


class TestNextRelease:
    """Test next_release."""

    def test_first_withheld(self) -> None:
        upcoming = next_release(schedule(-2, 0, 5), NOW)
        assert upcoming is not None
        assert upcoming.number == 2

    def test_caught_up(self) -> None:
        assert next_release(schedule(-2, -1), NOW) is None
