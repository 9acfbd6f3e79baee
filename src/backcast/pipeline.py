"""Feed orchestration: creation, updates, and control operations.

Every operation loads the persisted state, works on it, and writes it back.
Nothing is kept in memory between operations, and every operation on a feed
runs under that feed's lock.
"""

import asyncio
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from backcast.config.schema import GlobalConfig
from backcast.feeds.document import FeedDocument
from backcast.feeds.fetcher import FeedFetcher
from backcast.feeds.models import split_dated
from backcast.feeds.reconciler import FetchPreference, Reconciler
from backcast.publish.rewriter import rewrite
from backcast.publish.selector import count_eligible
from backcast.schedule import controls
from backcast.schedule.models import CatchUpSummary, ScheduleState
from backcast.schedule.pace import CatchUpPace, RatioPace, normalize_rate, original_position
from backcast.schedule.scheduler import derive
from backcast.storage.store import FeedStore
from backcast.utils.datetime import now_utc
from backcast.utils.errors import (
    FeedNotFoundError,
    InvalidParameterError,
    MalformedTimestampError,
    StorageError,
)
from backcast.utils.retry import RetryConfig

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5


@dataclass
class UpdateSummary:
    """Result of updating every feed."""

    processed: int = 0
    with_new_entries: int = 0
    failed: list[str] = field(default_factory=list)
    elapsed: float = 0.0  # seconds


def slugify(title: str) -> str:
    """Directory-safe form of a podcast title."""
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug or "podcast"


def normalize_source_url(url: str) -> str:
    """Add ``https://`` to URLs typed without a scheme."""
    url = url.strip()
    if "://" not in url:
        return f"https://{url}"
    return url


class FeedOrchestrator:
    """Runs Backcast operations against a feeds directory.

    Example:
        >>> orchestrator = FeedOrchestrator.from_config(ConfigManager().load_config())
        >>> state = await orchestrator.create("example.com/feed.rss", RatioPace(ratio=2))
        >>> await orchestrator.pause(state.uuid)
    """

    def __init__(
        self,
        store: FeedStore,
        fetcher: FeedFetcher,
        concurrency: int = DEFAULT_CONCURRENCY,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Feed directory storage
            fetcher: Upstream downloader
            concurrency: Feeds updated in parallel by update_all
            clock: Source of "now"; tests pass a fixed clock
        """
        self.store = store
        self.fetcher = fetcher
        self.reconciler = Reconciler(fetcher, store)
        self.concurrency = concurrency
        self.clock = clock

    @classmethod
    def from_config(cls, config: GlobalConfig) -> "FeedOrchestrator":
        """Build an orchestrator from the global configuration."""
        store = FeedStore(config.feeds_dir, config.public_base_url)
        fetcher = FeedFetcher(
            timeout=config.fetch.timeout_seconds,
            user_agent=config.fetch.user_agent,
            retry_config=RetryConfig(max_attempts=config.fetch.max_attempts),
        )
        return cls(store, fetcher, concurrency=config.update.concurrency)

    # Creation

    async def create(
        self,
        source_url: str,
        pace: RatioPace | CatchUpPace,
        start_episode: int = 1,
    ) -> ScheduleState:
        """Create a new Backcast feed.

        Args:
            source_url: Upstream feed URL (``https://`` is added if missing)
            pace: Publication pace
            start_episode: 1-based episode the derived timeline starts at

        Returns:
            State of the new feed after its first update

        Raises:
            UpstreamFetchError: If the feed can't be downloaded
            MalformedTimestampError: If no entry has a usable publish date
            InvalidParameterError: If start_episode is out of range or the pace is too extreme
        """
        source_url = normalize_source_url(source_url)
        document = await self.fetcher.fetch(source_url)

        dated, undated = split_dated(document.entries())
        if not dated:
            raise MalformedTimestampError(
                f"No entry in {source_url} has a usable publish date",
                suggestion="Backcast can only schedule feeds whose items carry a pubDate",
            )
        if not 1 <= start_episode <= len(dated):
            raise InvalidParameterError(
                f"Start episode must be between 1 and {len(dated)}, got {start_episode}"
            )
        if undated:
            logger.warning(f"{len(undated)} entries without a usable publish date will be skipped")

        now = self.clock()
        reference = dated[start_episode - 1].published
        assert reference is not None

        base_name = f"{slugify(document.title)}_{pace.label}_ep{start_episode}_{now:%Y-%m-%d}"
        dir_name = self.store.allocate_dir_name(base_name)
        self.store.create_feed_dir(dir_name)

        try:
            await self.store.write_cached(dir_name, document)
            state = ScheduleState(
                podcast_title=document.title or None,
                feed_dir=dir_name,
                source_url=source_url,
                subscribe_url=self.store.subscribe_url(dir_name),
                pace=pace,
                rate=normalize_rate(pace, reference, now, 1.0, now),
                anchor=now,
                reference_published_at=reference,
                created_at=now,
            )
            await self.store.save_state(state)
            await self.update(dir_name, FetchPreference.USE_CACHED)
            state = await self.store.load_state(dir_name)
            # An extreme pace can schedule fine yet not be reportable
            self.summarize(state)
        except BaseException:
            logger.debug(f"Removing partially created feed {dir_name}")
            await self.store.remove_feed_dir(dir_name)
            raise

        logger.info(f"Created {dir_name} ({state.describe_pace()}), subscribe at {state.subscribe_url}")
        return state

    # Updates

    async def update(
        self, key: str, preference: FetchPreference = FetchPreference.DOWNLOAD
    ) -> bool:
        """Refresh a feed's schedule and output document.

        A failure to save the schedule is logged and the output is still
        written; a failure to write the output fails the update.

        Args:
            key: UUID, directory name or subscribe URL
            preference: Download upstream or use the cached copy

        Returns:
            True if the upstream entry count changed

        Raises:
            FeedNotFoundError: If no feed matches ``key``
            UpstreamFetchError: If there is neither a download nor a cached copy
            StorageError: If the output can't be written
        """
        dir_name = await self._resolve_dir_name(key)
        async with self.store.lock(dir_name):
            state = await self.store.load_state(dir_name)
            result = await self.reconciler.reconcile(state, preference)
            state, output = self._recompute(state, result.document, self.clock())

            try:
                await self.store.save_state(state)
            except StorageError as e:
                logger.error(f"{dir_name}: {e}; writing output anyway")

            await self.store.write_output(dir_name, output)

        logger.debug(f"Updated {dir_name} from {result.source.value}")
        return result.had_new_entries

    async def update_all(self) -> UpdateSummary:
        """Update every feed, downloading upstream.

        A failing feed is logged and counted without stopping the others.
        """
        start = time.monotonic()
        dir_names = self.store.list_dir_names()
        semaphore = asyncio.Semaphore(self.concurrency)

        async def update_with_limit(dir_name: str) -> bool:
            async with semaphore:
                return await self.update(dir_name, FetchPreference.DOWNLOAD)

        results = await asyncio.gather(
            *(update_with_limit(name) for name in dir_names), return_exceptions=True
        )

        summary = UpdateSummary()
        for dir_name, result in zip(dir_names, results):
            if isinstance(result, Exception):
                logger.error(f"Failed to update {dir_name}: {result}")
                summary.failed.append(dir_name)
            elif isinstance(result, BaseException):
                raise result
            else:
                summary.processed += 1
                if result:
                    summary.with_new_entries += 1

        summary.elapsed = time.monotonic() - start
        logger.info(
            f"Updated {summary.processed} feeds ({summary.with_new_entries} with new entries, "
            f"{len(summary.failed)} failed) in {summary.elapsed:.1f}s"
        )
        return summary

    # Controls

    async def pause(self, key: str) -> ScheduleState:
        return await self._control(key, controls.pause)

    async def resume(self, key: str) -> tuple[ScheduleState, timedelta]:
        """Resume a paused feed.

        Returns:
            Tuple of (new state, how long the feed was paused)
        """
        paused_for = timedelta(0)

        def apply(state: ScheduleState, now: datetime) -> ScheduleState:
            nonlocal paused_for
            state, paused_for = controls.resume(state, now)
            return state

        state = await self._control(key, apply)
        return state, paused_for

    async def change_pace(self, key: str, pace: RatioPace | CatchUpPace) -> ScheduleState:
        return await self._control(key, lambda state, now: controls.change_pace(state, pace, now))

    async def rewind_by(self, key: str, duration: timedelta) -> ScheduleState:
        return await self._control(key, lambda state, now: controls.rewind_by(state, duration))

    async def fast_forward_by(self, key: str, duration: timedelta) -> ScheduleState:
        return await self._control(
            key, lambda state, now: controls.fast_forward_by(state, duration)
        )

    async def rewind_by_episodes(self, key: str, count: int) -> ScheduleState:
        return await self._control(
            key, lambda state, now: controls.rewind_by_episodes(state, count, now)
        )

    async def fast_forward_by_episodes(self, key: str, count: int) -> ScheduleState:
        return await self._control(
            key, lambda state, now: controls.fast_forward_by_episodes(state, count, now)
        )

    async def publish_episode_now(self, key: str, number: int) -> ScheduleState:
        return await self._control(
            key, lambda state, now: controls.publish_episode_now(state, number, now)
        )

    async def publish_next_episode_now(self, key: str) -> ScheduleState:
        return await self._control(key, controls.publish_next_episode_now)

    async def _control(
        self, key: str, apply: Callable[[ScheduleState, datetime], ScheduleState]
    ) -> ScheduleState:
        """Run a control operation: load, refresh, apply, recompute, commit.

        The schedule is refreshed from the cached upstream document before the
        control is applied, so episode-based controls see current entries.
        State and output are committed together; on failure neither changes.
        """
        dir_name = await self._resolve_dir_name(key)
        async with self.store.lock(dir_name):
            state = await self.store.load_state(dir_name)
            document = (
                await self.reconciler.reconcile(state, FetchPreference.USE_CACHED)
            ).document
            now = self.clock()

            state, _ = self._recompute(state, document, now)
            state = apply(state, now)
            state, output = self._recompute(state, document, now)

            await self.store.commit(state, output)

        return state

    def _recompute(
        self, state: ScheduleState, document: FeedDocument, now: datetime
    ) -> tuple[ScheduleState, FeedDocument]:
        """Derive the schedule from ``document`` and build the output."""
        dated, undated = split_dated(document.entries())
        for entry in undated:
            logger.warning(
                f"{state.feed_dir}: skipping {entry.display_title!r}, "
                f"unusable publish date {entry.raw_published!r}"
            )

        updates: dict = {
            "entries": derive(dated, state.anchor, state.reference_published_at, state.rate)
        }
        if not state.podcast_title and document.title:
            updates["podcast_title"] = document.title
        state = state.model_copy(update=updates)

        output = rewrite(document, dated, state, now, self.store.manage_url(state.uuid))
        return state, output

    # Lookup

    async def list(self) -> list[ScheduleState]:
        """States of all readable feeds, in directory order."""
        states = []
        for dir_name in self.store.list_dir_names():
            try:
                states.append(await self.store.load_state(dir_name))
            except (FeedNotFoundError, StorageError) as e:
                logger.warning(f"Skipping {dir_name}: {e}")
        return states

    async def find_by_uuid(self, uuid: str) -> ScheduleState | None:
        for state in await self.list():
            if state.uuid == uuid:
                return state
        return None

    async def find_by_dir_name(self, dir_name: str) -> ScheduleState | None:
        if not dir_name or "/" in dir_name or dir_name.startswith("."):
            return None
        if not self.store.state_path(dir_name).exists():
            return None
        return await self.store.load_state(dir_name)

    async def find_by_subscribe_url(self, url: str) -> ScheduleState | None:
        for state in await self.list():
            if state.subscribe_url == url:
                return state
        return None

    async def resolve(self, key: str) -> ScheduleState:
        """Find a feed by UUID, directory name, or subscribe URL.

        Raises:
            FeedNotFoundError: If nothing matches
        """
        state = (
            await self.find_by_uuid(key)
            or await self.find_by_dir_name(key)
            or await self.find_by_subscribe_url(key)
        )
        if state is None:
            raise FeedNotFoundError(
                f"No feed matches {key!r}",
                suggestion="Run 'backcast list' to see feed IDs and names",
            )
        return state

    async def _resolve_dir_name(self, key: str) -> str:
        if await self.find_by_dir_name(key) is not None:
            return key
        return (await self.resolve(key)).feed_dir

    # Reporting

    def summarize(self, state: ScheduleState) -> CatchUpSummary:
        """How far behind the live edge a feed is, and when it catches up.

        Catch-up figures exclude episodes published upstream in the meantime.
        """
        t = state.reference_instant(self.clock())
        released = count_eligible(state.entries, t)

        position = original_position(state.reference_published_at, state.anchor, state.rate, t)
        behind = max(t - position, timedelta(0))

        remaining = timedelta(0)
        catch_up_date = None
        if released < len(state.entries):
            remaining = state.entries[-1].release_at - t
            if not state.is_paused:
                catch_up_date = state.entries[-1].release_at.date()

        return CatchUpSummary(
            episodes_to_catch_up=len(state.entries) - released,
            weeks_behind=behind.days // 7,
            days_behind=behind.days,
            weeks_to_catch_up=remaining.days // 7,
            days_to_catch_up=remaining.days,
            catch_up_date=catch_up_date,
            subscribe_url=state.subscribe_url,
            uuid=state.uuid,
        )

