"""Merging of the upstream feed with the cached copy.

Change detection is by entry count only: the cache is replaced when the
downloaded feed has a different number of items than the cached one. Edits
that keep the count the same (a retitled episode, or one added while
another is removed) are not picked up until the count next changes.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from backcast.feeds.document import FeedDocument
from backcast.feeds.fetcher import FeedFetcher
from backcast.schedule.models import ScheduleState
from backcast.storage.store import FeedStore
from backcast.utils.errors import FeedParseError, StorageError, UpstreamFetchError

logger = logging.getLogger(__name__)


class FetchPreference(str, Enum):
    """Where an update should prefer to read the upstream feed from."""

    DOWNLOAD = "download"
    USE_CACHED = "use_cached"


class DocumentSource(str, Enum):
    NETWORK = "network"
    CACHE = "cache"


@dataclass
class ReconcileResult:
    """Outcome of a reconciliation."""

    document: FeedDocument
    had_new_entries: bool
    source: DocumentSource


class Reconciler:
    """Decides which copy of the upstream feed an update works from."""

    def __init__(self, fetcher: FeedFetcher, store: FeedStore) -> None:
        self.fetcher = fetcher
        self.store = store

    async def reconcile(
        self, state: ScheduleState, preference: FetchPreference
    ) -> ReconcileResult:
        """Obtain the upstream document for a feed.

        - Without a readable cached copy the feed is always downloaded.
        - A failed download falls back to the cached copy.
        - A successful download replaces the cache when the entry count changed.

        Args:
            state: Schedule of the feed being updated
            preference: Whether to download or use the cache when possible

        Returns:
            The document to schedule from, whether the entry count changed,
            and where the document came from

        Raises:
            UpstreamFetchError: If neither the network nor the cache has a copy
        """
        dir_name = state.feed_dir
        cached = await self._read_cache(dir_name)

        if cached is not None and preference is FetchPreference.USE_CACHED:
            return ReconcileResult(cached, False, DocumentSource.CACHE)

        try:
            downloaded = await self.fetcher.fetch(state.source_url)
        except UpstreamFetchError as e:
            if cached is None:
                raise UpstreamFetchError(
                    f"No copy of {state.source_url} available for {dir_name}: {e}",
                    suggestion="Check the feed URL; nothing is cached yet",
                ) from e
            logger.warning(f"{dir_name}: download failed, using cached copy: {e}")
            return ReconcileResult(cached, False, DocumentSource.CACHE)

        cached_count = len(cached) if cached is not None else 0
        changed = cached is None or abs(len(downloaded) - cached_count) > 0

        if changed:
            logger.info(f"{dir_name}: upstream has {len(downloaded)} entries (cached {cached_count})")
            try:
                await self.store.write_cached(dir_name, downloaded)
            except StorageError as e:
                logger.error(f"{dir_name}: {e}; continuing with the downloaded copy")

        return ReconcileResult(downloaded, changed, DocumentSource.NETWORK)

    async def _read_cache(self, dir_name: str) -> FeedDocument | None:
        try:
            return await self.store.read_cached(dir_name)
        except FileNotFoundError:
            return None
        except (OSError, FeedParseError) as e:
            logger.warning(f"{dir_name}: cached feed unreadable: {e}")
            return None
