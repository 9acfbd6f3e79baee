"""Control operations on a feed's schedule.

Every operation is a pure function: it takes the current state and the
current instant, and returns a new state with a moved anchor, a new pace or
a new playback status. Callers recompute ``entries`` and republish.

Releases are judged at the state's reference instant (the pause instant while
paused, else ``now``), so all controls work the same on a paused feed.
"""

import logging
from datetime import datetime, timedelta

from backcast.publish.selector import count_eligible
from backcast.schedule.models import ActivePlayback, PausedPlayback, ScheduleState
from backcast.schedule.pace import CatchUpPace, RatioPace, normalize_rate, pace_out_of_range
from backcast.utils.errors import InvalidParameterError

logger = logging.getLogger(__name__)

# Pulls a published-now episode strictly before the reference instant
PUBLISH_NOW_MARGIN = timedelta(seconds=1)


def change_pace(
    state: ScheduleState, new_pace: RatioPace | CatchUpPace, now: datetime
) -> ScheduleState:
    """Switch pace without changing which entries are already released.

    The anchor is moved so the derived timeline passes through the same
    original-timeline position at the reference instant ``t``:
    ``new_anchor = t - (t - anchor) * old_rate / new_rate``.
    """
    t = state.reference_instant(now)
    new_rate = normalize_rate(new_pace, state.reference_published_at, state.anchor, state.rate, t)
    try:
        new_anchor = t - (t - state.anchor) * (state.rate / new_rate)
    except OverflowError as e:
        raise pace_out_of_range(new_rate) from e

    logger.info(f"Pace {state.describe_pace()} -> {new_pace.label} (rate {new_rate:.4g})")
    return state.model_copy(update={"pace": new_pace, "rate": new_rate, "anchor": new_anchor})


def rewind_by(state: ScheduleState, duration: timedelta) -> ScheduleState:
    """Delay every release by ``duration``."""
    if duration < timedelta(0):
        raise InvalidParameterError(
            f"Cannot rewind by a negative duration ({duration})",
            suggestion="Use fast-forward to move releases earlier",
        )
    try:
        anchor = state.anchor + duration
    except OverflowError as e:
        raise InvalidParameterError(f"Cannot rewind by {duration}: too far") from e
    return state.model_copy(update={"anchor": anchor})


def fast_forward_by(state: ScheduleState, duration: timedelta) -> ScheduleState:
    """Advance every release by ``duration``."""
    if duration < timedelta(0):
        raise InvalidParameterError(
            f"Cannot fast-forward by a negative duration ({duration})",
            suggestion="Use rewind to move releases later",
        )
    try:
        anchor = state.anchor - duration
    except OverflowError as e:
        raise InvalidParameterError(f"Cannot fast-forward by {duration}: too far") from e
    return state.model_copy(update={"anchor": anchor})


def _check_episode_count(k: int) -> None:
    if k < 1:
        raise InvalidParameterError(f"Episode count must be at least 1, got {k}")


def rewind_by_episodes(state: ScheduleState, k: int, now: datetime) -> ScheduleState:
    """Withhold the last ``k`` released entries again.

    The shift is the gap between the current next-to-publish instant (the
    reference instant when caught up) and the release of the entry ``k``
    places earlier, clamped to the first entry.

    Raises:
        InvalidParameterError: If ``k < 1`` or nothing has been released yet
    """
    _check_episode_count(k)
    t = state.reference_instant(now)
    schedule = state.entries
    released = count_eligible(schedule, t)

    if released == 0:
        raise InvalidParameterError("Nothing has been published yet, cannot rewind")

    current = schedule[released].release_at if released < len(schedule) else t
    target = schedule[max(released - k, 0)].release_at
    return rewind_by(state, current - target)


def fast_forward_by_episodes(state: ScheduleState, k: int, now: datetime) -> ScheduleState:
    """Release the next ``k`` withheld entries (fewer if the feed runs out).

    The shift is the gap between the reference instant and the release of
    the last entry to publish, plus the publish-now margin.

    Raises:
        InvalidParameterError: If ``k < 1`` or the feed has caught up
    """
    _check_episode_count(k)
    t = state.reference_instant(now)
    schedule = state.entries
    released = count_eligible(schedule, t)

    if released >= len(schedule):
        raise InvalidParameterError("Feed has caught up, nothing left to fast-forward")

    target = schedule[min(released + k, len(schedule)) - 1].release_at
    return fast_forward_by(state, (target - t) + PUBLISH_NOW_MARGIN)


def publish_episode_now(state: ScheduleState, number: int, now: datetime) -> ScheduleState:
    """Release episode ``number`` (and every earlier one) immediately.

    Later entries keep their spacing relative to it.

    Raises:
        InvalidParameterError: If the number is out of range or already released
    """
    schedule = state.entries
    if not 1 <= number <= len(schedule):
        raise InvalidParameterError(
            f"Episode {number} does not exist (feed has {len(schedule)} episodes)"
        )

    t = state.reference_instant(now)
    target = schedule[number - 1].release_at
    if target < t:
        raise InvalidParameterError(f"Episode {number} is already published")

    return fast_forward_by(state, (target - t) + PUBLISH_NOW_MARGIN)


def publish_next_episode_now(state: ScheduleState, now: datetime) -> ScheduleState:
    """Release the first withheld episode immediately.

    Raises:
        InvalidParameterError: If the feed has caught up
    """
    released = count_eligible(state.entries, state.reference_instant(now))
    if released >= len(state.entries):
        raise InvalidParameterError("Feed has caught up, no episode left to publish")
    return publish_episode_now(state, released + 1, now)


def pause(state: ScheduleState, now: datetime) -> ScheduleState:
    """Freeze releases at ``now``.

    Raises:
        InvalidParameterError: If already paused
    """
    if state.is_paused:
        raise InvalidParameterError("Feed is already paused")
    return state.model_copy(update={"playback": PausedPlayback(paused_at=now)})


def resume(state: ScheduleState, now: datetime) -> tuple[ScheduleState, timedelta]:
    """Resume releases, skipping over the paused interval.

    Returns:
        Tuple of (new state, how long the feed was paused)

    Raises:
        InvalidParameterError: If not paused
    """
    if not isinstance(state.playback, PausedPlayback):
        raise InvalidParameterError("Feed is not paused")

    paused_for = now - state.playback.paused_at
    resumed = state.model_copy(
        update={"anchor": state.anchor + paused_for, "playback": ActivePlayback()}
    )
    return resumed, paused_for
