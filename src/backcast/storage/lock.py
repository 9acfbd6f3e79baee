"""Per-feed single-writer lock.

Combines an in-process ``asyncio.Lock`` (so concurrent tasks in one event
loop queue up) with an advisory ``fcntl.flock`` on ``<feed_dir>/.lock`` (so
separate processes, e.g. a scheduled ``update-all`` and a manual command,
serialize too).
"""

import asyncio
import fcntl
import logging
import weakref
from pathlib import Path
from types import TracebackType
from typing import IO

logger = logging.getLogger(__name__)

LOCK_FILE = ".lock"

# asyncio locks belong to one event loop, so each loop gets its own set
_LoopLocks = dict[Path, asyncio.Lock]
_process_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, _LoopLocks]" = (
    weakref.WeakKeyDictionary()
)


def _process_lock(feed_dir: Path) -> asyncio.Lock:
    loop_locks = _process_locks.setdefault(asyncio.get_running_loop(), {})
    key = feed_dir.resolve()
    lock = loop_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        loop_locks[key] = lock
    return lock


class FeedLock:
    """Async context manager holding a feed directory's write lock.

    Example:
        >>> async with FeedLock(feed_dir):
        ...     state = await store.load_state(feed_dir.name)
    """

    def __init__(self, feed_dir: Path) -> None:
        self.feed_dir = feed_dir
        self.lock_path = feed_dir / LOCK_FILE
        self._lock: asyncio.Lock | None = None
        self._handle: IO[str] | None = None

    async def __aenter__(self) -> "FeedLock":
        lock = self._lock = _process_lock(self.feed_dir)
        await lock.acquire()
        try:
            self._handle = await asyncio.to_thread(self._acquire_file_lock)
        except BaseException:
            lock.release()
            self._lock = None
            raise
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            if self._handle is not None:
                await asyncio.to_thread(self._release_file_lock, self._handle)
                self._handle = None
        finally:
            if self._lock is not None:
                self._lock.release()
                self._lock = None

    def _acquire_file_lock(self) -> IO[str]:
        handle = open(self.lock_path, "a")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        except OSError:
            handle.close()
            raise
        logger.debug(f"Locked {self.feed_dir.name}")
        return handle

    @staticmethod
    def _release_file_lock(handle: IO[str]) -> None:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()
