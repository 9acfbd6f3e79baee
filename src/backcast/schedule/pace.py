"""Publication pace.

A pace is either a fixed speed ratio or a target catch-up period. Catch-up
paces are normalized to an equivalent ratio whenever they are applied.
"""

from datetime import datetime, timedelta
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

from backcast.utils.errors import InvalidParameterError


class RatioPace(BaseModel):
    """Publish ``ratio`` days of back-catalog per real day."""

    kind: Literal["ratio"] = "ratio"
    ratio: float = Field(gt=0, allow_inf_nan=False)

    @property
    def label(self) -> str:
        return f"{self.ratio:g}x"


class CatchUpPace(BaseModel):
    """Reach the live edge of the feed after ``days`` days."""

    kind: Literal["catch_up"] = "catch_up"
    days: float = Field(gt=0, allow_inf_nan=False)

    @property
    def label(self) -> str:
        return f"{self.days:g}days"


Pace = Annotated[RatioPace | CatchUpPace, Field(discriminator="kind")]

PACE_ADAPTER: TypeAdapter[RatioPace | CatchUpPace] = TypeAdapter(Pace)


def parse_pace(value: str) -> RatioPace | CatchUpPace:
    """Parse a pace as typed on the command line.

    ``"2"`` or ``"2x"`` is a ratio; ``"30d"`` or ``"30days"`` is a catch-up period.

    Raises:
        ValueError: If the value isn't a positive pace
    """
    text = value.strip().lower()
    try:
        if text.endswith("days"):
            return CatchUpPace(days=float(text[:-4]))
        if text.endswith("d"):
            return CatchUpPace(days=float(text[:-1]))
        if text.endswith("x"):
            text = text[:-1]
        return RatioPace(ratio=float(text))
    except ValueError as e:
        raise ValueError(f"Invalid pace {value!r}: use e.g. '1.5x' or '30d'") from e


def pace_out_of_range(rate: float) -> InvalidParameterError:
    return InvalidParameterError(
        f"Pace out of range: rate {rate:g} puts releases outside the representable calendar",
        suggestion="Choose a less extreme pace",
    )


def original_position(
    reference: datetime, anchor: datetime, rate: float, now: datetime
) -> datetime:
    """Point on the original timeline that the derived timeline has reached."""
    try:
        return reference + (now - anchor) * rate
    except OverflowError as e:
        raise pace_out_of_range(rate) from e


def normalize_rate(
    pace: RatioPace | CatchUpPace,
    reference: datetime,
    anchor: datetime,
    rate: float,
    now: datetime,
) -> float:
    """Equivalent speed ratio for a pace at ``now``.

    For a catch-up pace the backlog ``B`` (how far the derived timeline lags
    the real one) must be consumed in ``days`` while real time keeps moving,
    giving ``1 + B / days``.

    Args:
        pace: Pace to normalize
        reference: Original instant of the start episode
        anchor: Current anchor
        rate: Current rate, used to locate the current position
        now: Instant to normalize at

    Returns:
        Positive ratio

    Raises:
        InvalidParameterError: If the period is too short to express as a rate
    """
    if isinstance(pace, RatioPace):
        return pace.ratio

    position = original_position(reference, anchor, rate, now)
    backlog = max(now - position, timedelta(0))
    try:
        return 1 + backlog / timedelta(days=pace.days)
    except (OverflowError, ZeroDivisionError) as e:
        raise InvalidParameterError(
            f"Pace out of range: cannot catch up in {pace.days:g} days",
            suggestion="Choose a catch-up period of at least a few minutes",
        ) from e
