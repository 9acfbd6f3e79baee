"""Retry utilities for upstream feed requests.

Implements exponential backoff with jitter for transient network failures.
Both plain and ``async def`` functions can be decorated.
"""

import inspect
import logging
from collections.abc import Callable
from functools import wraps

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

logger = logging.getLogger(__name__)


# Error classification: Which errors should trigger retries?

class RetryableError(Exception):
    """Base class for errors that should trigger retries."""

    pass


class RateLimitError(RetryableError):
    """Upstream host is throttling us (HTTP 429)."""

    pass


class TimeoutError(RetryableError):
    """Request timeout."""

    pass


class ConnectionError(RetryableError):
    """Network connection error."""

    pass


class ServerError(RetryableError):
    """Server-side error (5xx)."""

    pass


class NonRetryableError(Exception):
    """Base class for errors that should NOT trigger retries."""

    pass


class AuthenticationError(NonRetryableError):
    """Feed requires credentials we don't have (401/403)."""

    pass


class InvalidRequestError(NonRetryableError):
    """Feed URL is wrong or gone (other 4xx)."""

    pass


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        max_wait_seconds: float = 30,
        min_wait_seconds: float = 1,
        jitter: bool = True,
    ):
        """Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts (including initial)
            max_wait_seconds: Maximum wait time between retries
            min_wait_seconds: Minimum wait time between retries
            jitter: Whether to add jitter to wait times
        """
        self.max_attempts = max_attempts
        self.max_wait_seconds = max_wait_seconds
        self.min_wait_seconds = min_wait_seconds
        self.jitter = jitter


DEFAULT_RETRY_CONFIG = RetryConfig(
    max_attempts=3,
    max_wait_seconds=30,
    min_wait_seconds=1,
    jitter=True,
)

# Fast configuration for testing (minimal delays)
TEST_RETRY_CONFIG = RetryConfig(
    max_attempts=3,
    max_wait_seconds=0.1,
    min_wait_seconds=0.01,
    jitter=False,
)

DEFAULT_RETRY_ON: tuple[type[Exception], ...] = (
    RateLimitError,
    TimeoutError,
    ConnectionError,
    ServerError,
)


def log_retry_attempt(retry_state: RetryCallState) -> None:
    """Log retry attempts for debugging.

    Args:
        retry_state: Tenacity retry state
    """
    if retry_state.outcome and retry_state.outcome.failed:
        exception = retry_state.outcome.exception()
        attempt_number = retry_state.attempt_number

        logger.warning(
            f"Retry attempt {attempt_number} failed: {type(exception).__name__}: {exception}"
        )


def _retry_kwargs(config: RetryConfig, retry_on: tuple[type[Exception], ...]) -> dict:
    return {
        "stop": stop_after_attempt(config.max_attempts),
        "wait": wait_exponential_jitter(
            initial=config.min_wait_seconds,
            max=config.max_wait_seconds,
            jitter=config.max_wait_seconds if config.jitter else 0,
        ),
        "retry": retry_if_exception_type(retry_on),
        "before_sleep": log_retry_attempt,
        "reraise": True,
    }


def with_retry(
    config: RetryConfig | None = None,
    retry_on: tuple[type[Exception], ...] | None = None,
) -> Callable:
    """Decorator for adding retry logic with exponential backoff.

    The configuration is resolved when the decorated function is called, so
    tests can swap ``DEFAULT_RETRY_CONFIG`` with monkeypatch.

    Usage:
        @with_retry()
        async def fetch():
            ...

        @with_retry(config=RetryConfig(max_attempts=5))
        def important_call():
            ...

    Args:
        config: Retry configuration (uses DEFAULT_RETRY_CONFIG if None)
        retry_on: Exception types to retry on (all RetryableError subclasses if None)

    Returns:
        Decorated function with retry logic
    """
    retry_types = retry_on or DEFAULT_RETRY_ON

    def decorator(func: Callable) -> Callable:
        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                active = config or DEFAULT_RETRY_CONFIG
                try:
                    async for attempt in AsyncRetrying(**_retry_kwargs(active, retry_types)):
                        with attempt:
                            return await func(*args, **kwargs)
                except Exception as e:
                    logger.error(
                        f"Function {func.__name__} failed after {active.max_attempts} attempts: "
                        f"{type(e).__name__}: {e}"
                    )
                    raise

            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            active = config or DEFAULT_RETRY_CONFIG
            try:
                for attempt in Retrying(**_retry_kwargs(active, retry_types)):
                    with attempt:
                        return func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Function {func.__name__} failed after {active.max_attempts} attempts: "
                    f"{type(e).__name__}: {e}"
                )
                raise

        return wrapper

    return decorator


def classify_http_error(status_code: int, error_message: str = "") -> Exception:
    """Classify HTTP error into retryable or non-retryable.

    Args:
        status_code: HTTP status code
        error_message: Error message or URL for context

    Returns:
        Appropriate exception instance
    """
    if status_code == 429:
        return RateLimitError(f"Rate limit exceeded: {error_message}")

    if 500 <= status_code < 600:
        return ServerError(f"Server error (HTTP {status_code}): {error_message}")

    if status_code == 408:
        return TimeoutError(f"Request timeout: {error_message}")

    if status_code in (401, 403):
        return AuthenticationError(f"Authentication failed (HTTP {status_code}): {error_message}")

    if 400 <= status_code < 500:
        return InvalidRequestError(f"Invalid request (HTTP {status_code}): {error_message}")

    return NonRetryableError(f"HTTP error {status_code}: {error_message}")
