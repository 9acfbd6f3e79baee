"""Tests for pace models and normalization."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from backcast.schedule.pace import (
    PACE_ADAPTER,
    CatchUpPace,
    RatioPace,
    normalize_rate,
    parse_pace,
)
from backcast.utils.errors import InvalidParameterError

REFERENCE = datetime(2020, 1, 1, tzinfo=timezone.utc)


class TestPaceModels:
    """Test the pace variants."""

    def test_ratio_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            RatioPace(ratio=0)

    def test_days_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            CatchUpPace(days=-3)

    def test_infinite_values_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RatioPace(ratio=float("inf"))
        with pytest.raises(ValidationError):
            CatchUpPace(days=float("inf"))

    def test_tagged_json(self) -> None:
        """Test the kind tag selects the variant when loading."""
        pace = PACE_ADAPTER.validate_python({"kind": "catch_up", "days": 90})
        assert pace == CatchUpPace(days=90)
        assert RatioPace(ratio=1.5).model_dump() == {"kind": "ratio", "ratio": 1.5}

    def test_labels(self) -> None:
        assert RatioPace(ratio=2).label == "2x"
        assert CatchUpPace(days=30).label == "30days"


class TestParsePace:
    """Test command-line pace parsing."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("2", RatioPace(ratio=2)),
            ("1.5x", RatioPace(ratio=1.5)),
            ("30d", CatchUpPace(days=30)),
            ("90days", CatchUpPace(days=90)),
            (" 3X ", RatioPace(ratio=3)),
        ],
    )
    def test_valid(self, text: str, expected: RatioPace | CatchUpPace) -> None:
        assert parse_pace(text) == expected

    @pytest.mark.parametrize(
        "text", ["fast", "0", "-2x", "d", "inf", "infx", "infd", "nan", "-infdays"]
    )
    def test_invalid(self, text: str) -> None:
        with pytest.raises(ValueError):
            parse_pace(text)


class TestNormalizeRate:
    """Test conversion of paces to a ratio."""

    def test_ratio_unchanged(self) -> None:
        now = REFERENCE + timedelta(days=100)
        assert normalize_rate(RatioPace(ratio=2.5), REFERENCE, now, 1.0, now) == 2.5

    def test_catch_up_at_creation(self) -> None:
        """Test a 100-day backlog caught up in 50 days needs a 3x pace."""
        now = REFERENCE + timedelta(days=100)

        rate = normalize_rate(CatchUpPace(days=50), REFERENCE, now, 1.0, now)

        assert rate == pytest.approx(3.0)

    def test_catch_up_reaches_live_edge(self) -> None:
        """Test the derived timeline meets real time after the given days."""
        now = REFERENCE + timedelta(days=365)
        rate = normalize_rate(CatchUpPace(days=30), REFERENCE, now, 1.0, now)

        later = now + timedelta(days=30)
        position = REFERENCE + (later - now) * rate

        assert abs((position - later).total_seconds()) < 1

    def test_catch_up_accounts_for_progress(self) -> None:
        """Test the backlog is measured from the current position, not the start."""
        anchor = REFERENCE + timedelta(days=100)
        now = anchor + timedelta(days=20)
        # At 2x for 20 days the feed has covered 40 of the 120 days behind
        rate = normalize_rate(CatchUpPace(days=40), REFERENCE, anchor, 2.0, now)

        assert rate == pytest.approx(1 + 80 / 40)

    def test_catch_up_when_ahead(self) -> None:
        """Test a feed already at the live edge gets real-time pace."""
        now = REFERENCE
        assert normalize_rate(CatchUpPace(days=10), REFERENCE, now, 1.0, now) == 1.0

    def test_catch_up_period_too_short(self) -> None:
        """Test a period that rounds to zero time is rejected, not divided by."""
        now = REFERENCE + timedelta(days=100)

        with pytest.raises(InvalidParameterError, match="out of range"):
            normalize_rate(CatchUpPace(days=1e-12), REFERENCE, now, 1.0, now)
