"""Utility functions and helpers for Backcast."""

from backcast.utils.errors import (
    BackcastError,
    ConfigError,
    FeedNotFoundError,
    FeedParseError,
    InvalidConfigError,
    InvalidParameterError,
    MalformedTimestampError,
    NetworkError,
    NotFoundError,
    StorageError,
    UpstreamFetchError,
    ValidationError,
)
from backcast.utils.paths import (
    get_config_dir,
    get_data_dir,
    get_feeds_dir,
)

__all__ = [
    # Errors
    "BackcastError",
    "ConfigError",
    "InvalidConfigError",
    "NotFoundError",
    "FeedNotFoundError",
    "NetworkError",
    "UpstreamFetchError",
    "FeedParseError",
    "MalformedTimestampError",
    "StorageError",
    "ValidationError",
    "InvalidParameterError",
    # Paths
    "get_config_dir",
    "get_data_dir",
    "get_feeds_dir",
]
