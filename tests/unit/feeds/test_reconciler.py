"""Tests for upstream/cache reconciliation."""

from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import httpx
import pytest

from backcast.feeds.document import FeedDocument
from backcast.feeds.fetcher import FeedFetcher
from backcast.feeds.reconciler import DocumentSource, FetchPreference, Reconciler
from backcast.schedule.models import ScheduleState
from backcast.schedule.pace import RatioPace
from backcast.storage.store import FeedStore
from backcast.utils.errors import StorageError, UpstreamFetchError
from backcast.utils.retry import TEST_RETRY_CONFIG

FEED_URL = "https://example.com/feed.rss"


class TestReconciler:
    """Test Reconciler.reconcile."""

    @pytest.fixture
    def store(self, tmp_path: Path) -> FeedStore:
        store = FeedStore(tmp_path, "https://pods.example.com")
        store.create_feed_dir("show")
        return store

    @pytest.fixture
    def state(self, t0: datetime, fixed_now: datetime) -> ScheduleState:
        return ScheduleState(
            feed_dir="show",
            source_url=FEED_URL,
            subscribe_url="https://pods.example.com/podcasts/show/backcast.rss",
            pace=RatioPace(ratio=1.0),
            rate=1.0,
            anchor=fixed_now,
            reference_published_at=t0,
        )

    @pytest.fixture
    def upstream(self, make_rss: Callable[..., bytes]) -> dict:
        """Mutable upstream: set ``body`` to change what the server returns."""
        return {"body": make_rss(count=5), "status": 200, "calls": 0}

    @pytest.fixture
    def reconciler(self, store: FeedStore, upstream: dict) -> Reconciler:
        def handler(request: httpx.Request) -> httpx.Response:
            upstream["calls"] += 1
            return httpx.Response(upstream["status"], content=upstream["body"])

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        fetcher = FeedFetcher(retry_config=TEST_RETRY_CONFIG, client=client)
        return Reconciler(fetcher, store)

    @pytest.mark.asyncio
    async def test_no_cache_forces_download(
        self, reconciler: Reconciler, state: ScheduleState, store: FeedStore, upstream: dict
    ) -> None:
        """Test USE_CACHED still downloads when nothing is cached."""
        result = await reconciler.reconcile(state, FetchPreference.USE_CACHED)

        assert result.source is DocumentSource.NETWORK
        assert result.had_new_entries is True
        assert upstream["calls"] == 1
        assert store.cache_path("show").exists()

    @pytest.mark.asyncio
    async def test_use_cached_skips_network(
        self,
        reconciler: Reconciler,
        state: ScheduleState,
        store: FeedStore,
        upstream: dict,
        make_rss: Callable[..., bytes],
    ) -> None:
        await store.write_cached("show", FeedDocument.from_bytes(make_rss(count=3)))

        result = await reconciler.reconcile(state, FetchPreference.USE_CACHED)

        assert result.source is DocumentSource.CACHE
        assert len(result.document) == 3
        assert upstream["calls"] == 0

    @pytest.mark.asyncio
    async def test_growth_overwrites_cache(
        self,
        reconciler: Reconciler,
        state: ScheduleState,
        store: FeedStore,
        upstream: dict,
        make_rss: Callable[..., bytes],
    ) -> None:
        """Test N -> N+k entries replaces the cached copy."""
        await store.write_cached("show", FeedDocument.from_bytes(make_rss(count=3)))
        upstream["body"] = make_rss(count=5)

        result = await reconciler.reconcile(state, FetchPreference.DOWNLOAD)

        assert result.had_new_entries is True
        assert result.source is DocumentSource.NETWORK
        assert len(await store.read_cached("show")) == 5

    @pytest.mark.asyncio
    async def test_same_count_keeps_cache(
        self,
        reconciler: Reconciler,
        state: ScheduleState,
        store: FeedStore,
        upstream: dict,
        make_rss: Callable[..., bytes],
    ) -> None:
        """Test a same-count download is used but not cached (count-only detection)."""
        await store.write_cached("show", FeedDocument.from_bytes(make_rss(count=5)))
        upstream["body"] = make_rss(count=5, title="Renamed Show")

        result = await reconciler.reconcile(state, FetchPreference.DOWNLOAD)

        assert result.had_new_entries is False
        assert result.document.title == "Renamed Show"
        assert (await store.read_cached("show")).title == "Test Show"

    @pytest.mark.asyncio
    async def test_failed_download_falls_back_to_cache(
        self,
        reconciler: Reconciler,
        state: ScheduleState,
        store: FeedStore,
        upstream: dict,
        make_rss: Callable[..., bytes],
    ) -> None:
        await store.write_cached("show", FeedDocument.from_bytes(make_rss(count=3)))
        upstream["status"] = 404

        result = await reconciler.reconcile(state, FetchPreference.DOWNLOAD)

        assert result.source is DocumentSource.CACHE
        assert result.had_new_entries is False
        assert len(result.document) == 3

    @pytest.mark.asyncio
    async def test_no_copy_anywhere_raises(
        self, reconciler: Reconciler, state: ScheduleState, upstream: dict
    ) -> None:
        upstream["status"] = 404

        with pytest.raises(UpstreamFetchError, match="No copy"):
            await reconciler.reconcile(state, FetchPreference.DOWNLOAD)

    @pytest.mark.asyncio
    async def test_corrupt_cache_treated_as_missing(
        self, reconciler: Reconciler, state: ScheduleState, store: FeedStore, upstream: dict
    ) -> None:
        store.cache_path("show").write_bytes(b"<rss><channel>")

        result = await reconciler.reconcile(state, FetchPreference.USE_CACHED)

        assert result.source is DocumentSource.NETWORK
        assert upstream["calls"] == 1

    @pytest.mark.asyncio
    async def test_cache_write_failure_is_not_fatal(
        self,
        reconciler: Reconciler,
        state: ScheduleState,
        store: FeedStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test the downloaded copy is still returned when caching fails."""

        async def failing_write(dir_name: str, document: FeedDocument) -> None:
            raise StorageError("disk full")

        monkeypatch.setattr(store, "write_cached", failing_write)

        result = await reconciler.reconcile(state, FetchPreference.DOWNLOAD)

        assert result.source is DocumentSource.NETWORK
        assert len(result.document) == 5
