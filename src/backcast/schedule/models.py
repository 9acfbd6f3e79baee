"""Persisted schedule models."""

from datetime import date, datetime
from typing import Annotated, Literal
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from backcast.schedule.pace import CatchUpPace, Pace
from backcast.utils.datetime import ensure_utc, now_utc

SCHEMA_VERSION = 1


class ActivePlayback(BaseModel):
    """Releases follow the derived timeline."""

    status: Literal["active"] = "active"


class PausedPlayback(BaseModel):
    """Releases are frozen at ``paused_at``."""

    status: Literal["paused"] = "paused"
    paused_at: datetime

    @field_validator("paused_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


Playback = Annotated[ActivePlayback | PausedPlayback, Field(discriminator="status")]


class ScheduleEntry(BaseModel):
    """Derived release time for one upstream entry."""

    number: int = Field(ge=1)
    title: str
    release_at: datetime

    @field_validator("release_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class ScheduleState(BaseModel):
    """Everything persisted about one Backcast feed (``schedule.json``)."""

    schema_version: int = SCHEMA_VERSION
    uuid: str = Field(default_factory=lambda: str(uuid4()))
    podcast_title: str | None = None
    feed_dir: str
    source_url: str
    subscribe_url: str
    pace: Pace
    rate: float = Field(gt=0, allow_inf_nan=False)
    anchor: datetime
    reference_published_at: datetime
    playback: Playback = Field(default_factory=ActivePlayback)
    entries: list[ScheduleEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=now_utc)

    @field_validator("anchor", "reference_published_at", "created_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def is_paused(self) -> bool:
        return isinstance(self.playback, PausedPlayback)

    def reference_instant(self, now: datetime) -> datetime:
        """Instant eligibility is judged at: the pause instant, or ``now``."""
        if isinstance(self.playback, PausedPlayback):
            return self.playback.paused_at
        return now

    @property
    def pace_label(self) -> str:
        return self.pace.label

    def describe_pace(self) -> str:
        """Human readable pace, e.g. ``"2x"`` or ``"catch up in 30 days (1.85x)"``."""
        if isinstance(self.pace, CatchUpPace):
            return f"catch up in {self.pace.days:g} days ({self.rate:.3g}x)"
        return f"{self.pace.ratio:g}x"


class CatchUpSummary(BaseModel):
    """Where a feed stands relative to the live edge."""

    episodes_to_catch_up: int
    weeks_behind: int
    days_behind: int
    weeks_to_catch_up: int
    days_to_catch_up: int
    catch_up_date: date | None
    subscribe_url: str
    uuid: str

