"""Upstream feed reading, writing and downloading."""

from backcast.feeds.document import FeedDocument, read_document, write_document
from backcast.feeds.fetcher import FeedFetcher
from backcast.feeds.models import Entry, split_dated

__all__ = [
    "Entry",
    "FeedDocument",
    "FeedFetcher",
    "read_document",
    "split_dated",
    "write_document",
]
