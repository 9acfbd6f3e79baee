"""Feed directory storage and locking."""

from backcast.storage.lock import FeedLock
from backcast.storage.store import CACHE_FILE, OUTPUT_FILE, STATE_FILE, FeedStore

__all__ = ["CACHE_FILE", "OUTPUT_FILE", "STATE_FILE", "FeedLock", "FeedStore"]
