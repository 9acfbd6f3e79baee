"""Custom exceptions for Backcast."""


class BackcastError(Exception):
    """Base exception for all Backcast errors."""

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        super().__init__(message)
        self.suggestion = suggestion


class ConfigError(BackcastError):
    """Configuration-related errors."""

    pass


class InvalidConfigError(ConfigError):
    """Invalid configuration data."""

    pass


class NotFoundError(BackcastError):
    """A requested resource does not exist."""

    pass


class FeedNotFoundError(NotFoundError):
    """No feed directory, schedule file, or identifier matches the request."""

    pass


class NetworkError(BackcastError):
    """Network-related errors."""

    pass


class UpstreamFetchError(NetworkError):
    """The upstream feed could not be downloaded or parsed."""

    pass


class FeedParseError(BackcastError):
    """RSS document could not be parsed."""

    pass


class MalformedTimestampError(FeedParseError):
    """An entry's publish date could not be parsed."""

    pass


class StorageError(BackcastError):
    """Reading or writing a feed's files failed."""

    pass


class ValidationError(BackcastError):
    """User-supplied values failed validation."""

    pass


class InvalidParameterError(ValidationError):
    """An operation was called with an invalid argument or in the wrong state."""

    pass
