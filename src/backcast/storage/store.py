"""On-disk layout of Backcast feeds.

Each feed lives in its own directory under ``feeds_dir``::

    <feeds_dir>/<dir_name>/
        schedule.json   persisted ScheduleState
        upstream.rss    cached upstream document
        backcast.rss    derived output served to podcatchers
        .lock           advisory lock file
"""

import asyncio
import logging
import shutil
from pathlib import Path

import aiofiles
from pydantic import ValidationError as PydanticValidationError

from backcast.feeds.document import FeedDocument, read_document, stage_document, write_document
from backcast.schedule.models import ScheduleState
from backcast.storage.lock import FeedLock
from backcast.utils.errors import FeedNotFoundError, StorageError

logger = logging.getLogger(__name__)

STATE_FILE = "schedule.json"
CACHE_FILE = "upstream.rss"
OUTPUT_FILE = "backcast.rss"


class FeedStore:
    """Reads and writes feed directories.

    Example:
        >>> store = FeedStore(Path("~/feeds").expanduser(), "https://pods.example.com")
        >>> state = await store.load_state("some_show_2x_ep1_2024-01-01")
    """

    def __init__(self, feeds_dir: Path, public_base_url: str) -> None:
        """Initialize the store.

        Args:
            feeds_dir: Directory holding one sub-directory per feed
            public_base_url: Address the feeds directory is served from
        """
        self.feeds_dir = feeds_dir
        self.public_base_url = public_base_url.rstrip("/")

    # Paths and URLs

    def feed_dir(self, dir_name: str) -> Path:
        return self.feeds_dir / dir_name

    def state_path(self, dir_name: str) -> Path:
        return self.feed_dir(dir_name) / STATE_FILE

    def cache_path(self, dir_name: str) -> Path:
        return self.feed_dir(dir_name) / CACHE_FILE

    def output_path(self, dir_name: str) -> Path:
        return self.feed_dir(dir_name) / OUTPUT_FILE

    def subscribe_url(self, dir_name: str) -> str:
        """Public URL of a feed's output document."""
        return f"{self.public_base_url}/podcasts/{dir_name}/{OUTPUT_FILE}"

    def manage_url(self, uuid: str) -> str:
        """Public URL of a feed's management page."""
        return f"{self.public_base_url}/edit_feed?uuid={uuid}"

    def lock(self, dir_name: str) -> FeedLock:
        """Single-writer lock for a feed directory."""
        return FeedLock(self.feed_dir(dir_name))

    # Directories

    def list_dir_names(self) -> list[str]:
        """Names of all feed directories, sorted."""
        if not self.feeds_dir.exists():
            return []
        return sorted(
            p.name
            for p in self.feeds_dir.iterdir()
            if p.is_dir() and not p.name.startswith(".")
        )

    def allocate_dir_name(self, base: str) -> str:
        """``base``, or ``base_2``, ``base_3``... if that name is taken."""
        name = base
        suffix = 2
        while self.feed_dir(name).exists():
            name = f"{base}_{suffix}"
            suffix += 1
        return name

    def create_feed_dir(self, dir_name: str) -> Path:
        """Create an empty feed directory.

        Raises:
            StorageError: If the directory exists or can't be created
        """
        path = self.feed_dir(dir_name)
        try:
            path.mkdir(parents=True, exist_ok=False)
        except OSError as e:
            raise StorageError(f"Cannot create feed directory {path}: {e}") from e
        return path

    async def remove_feed_dir(self, dir_name: str) -> None:
        """Delete a feed directory and everything in it."""
        await asyncio.to_thread(shutil.rmtree, self.feed_dir(dir_name), ignore_errors=True)

    # Schedule state

    async def load_state(self, dir_name: str) -> ScheduleState:
        """Load a feed's schedule.

        Raises:
            FeedNotFoundError: If the feed has no schedule file
            StorageError: If the schedule file can't be read or is corrupt
        """
        path = self.state_path(dir_name)
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except FileNotFoundError as e:
            raise FeedNotFoundError(f"No feed named {dir_name!r}") from e
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}") from e

        try:
            return ScheduleState.model_validate_json(content)
        except PydanticValidationError as e:
            raise StorageError(
                f"Corrupt schedule file {path}: {e}",
                suggestion="Restore the file from a backup or recreate the feed",
            ) from e

    async def stage_state(self, state: ScheduleState) -> Path:
        """Write a state next to its schedule file without replacing it."""
        staged = self.state_path(state.feed_dir).with_suffix(".json.tmp")
        try:
            async with aiofiles.open(staged, "w", encoding="utf-8") as f:
                await f.write(state.model_dump_json(indent=2))
        except OSError as e:
            await asyncio.to_thread(staged.unlink, missing_ok=True)
            raise StorageError(f"Failed to write schedule for {state.feed_dir}: {e}") from e
        return staged

    async def save_state(self, state: ScheduleState) -> None:
        """Atomically write a feed's schedule file.

        Raises:
            StorageError: If writing fails
        """
        staged = await self.stage_state(state)
        try:
            await asyncio.to_thread(staged.replace, self.state_path(state.feed_dir))
        except OSError as e:
            raise StorageError(f"Failed to save schedule for {state.feed_dir}: {e}") from e

    # Documents

    async def read_cached(self, dir_name: str) -> FeedDocument:
        """Read the cached upstream document.

        Raises:
            FileNotFoundError: If nothing is cached
            FeedParseError: If the cached copy is unreadable
        """
        return await read_document(self.cache_path(dir_name))

    async def write_cached(self, dir_name: str, document: FeedDocument) -> None:
        """Atomically replace the cached upstream document.

        Raises:
            StorageError: If writing fails
        """
        try:
            await write_document(self.cache_path(dir_name), document)
        except OSError as e:
            raise StorageError(f"Failed to cache upstream feed for {dir_name}: {e}") from e

    async def read_output(self, dir_name: str) -> FeedDocument:
        return await read_document(self.output_path(dir_name))

    async def write_output(self, dir_name: str, document: FeedDocument) -> None:
        """Atomically replace the output document.

        Raises:
            StorageError: If writing fails
        """
        try:
            await write_document(self.output_path(dir_name), document)
        except OSError as e:
            raise StorageError(f"Failed to write output feed for {dir_name}: {e}") from e

    async def commit(self, state: ScheduleState, output: FeedDocument) -> None:
        """Persist a state and its output together.

        Both files are staged first, so a failed write leaves the previous
        pair untouched. If the output can't be swapped in after the state
        was, the previous state is put back.

        Raises:
            StorageError: If either file can't be written
        """
        dir_name = state.feed_dir
        state_path = self.state_path(dir_name)
        output_path = self.output_path(dir_name)

        previous = None
        if state_path.exists():
            async with aiofiles.open(state_path, "rb") as f:
                previous = await f.read()

        staged_state = await self.stage_state(state)
        try:
            staged_output = await stage_document(output_path, output)
        except OSError as e:
            await asyncio.to_thread(staged_state.unlink, missing_ok=True)
            raise StorageError(f"Failed to write output feed for {dir_name}: {e}") from e

        try:
            await asyncio.to_thread(staged_state.replace, state_path)
        except OSError as e:
            await asyncio.to_thread(staged_state.unlink, missing_ok=True)
            await asyncio.to_thread(staged_output.unlink, missing_ok=True)
            raise StorageError(f"Failed to save schedule for {dir_name}: {e}") from e

        try:
            await asyncio.to_thread(staged_output.replace, output_path)
        except OSError as e:
            await asyncio.to_thread(staged_output.unlink, missing_ok=True)
            await self._restore_state(state_path, previous)
            raise StorageError(f"Failed to write output feed for {dir_name}: {e}") from e

    async def _restore_state(self, state_path: Path, previous: bytes | None) -> None:
        if previous is None:
            await asyncio.to_thread(state_path.unlink, missing_ok=True)
            return

        restore = state_path.with_suffix(".json.restore")
        try:
            async with aiofiles.open(restore, "wb") as f:
                await f.write(previous)
            await asyncio.to_thread(restore.replace, state_path)
        except OSError as e:
            logger.error(f"Could not roll back {state_path}: {e}")
