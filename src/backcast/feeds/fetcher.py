"""Upstream feed download."""

import logging

import httpx

from backcast.feeds.document import FeedDocument
from backcast.utils.errors import FeedParseError, UpstreamFetchError
from backcast.utils.retry import (
    ConnectionError,
    NonRetryableError,
    RetryableError,
    RetryConfig,
    TimeoutError,
    classify_http_error,
    with_retry,
)

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "backcast/0.1"


class FeedFetcher:
    """Downloads and parses upstream RSS feeds.

    Transient failures (timeouts, connection errors, 5xx, 429) are retried
    with exponential backoff. Whatever finally fails is reported as
    UpstreamFetchError.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        retry_config: RetryConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            timeout: Per-request timeout in seconds
            user_agent: User-Agent header sent upstream
            retry_config: Retry behavior (defaults to DEFAULT_RETRY_CONFIG)
            client: Optional shared client, mainly for tests
        """
        self.timeout = timeout
        self.user_agent = user_agent
        self.retry_config = retry_config
        self._client = client

    async def fetch(self, url: str) -> FeedDocument:
        """Download and parse a feed.

        Args:
            url: Feed URL

        Returns:
            Parsed feed document

        Raises:
            UpstreamFetchError: If the feed can't be downloaded or parsed
        """
        try:
            data = await with_retry(config=self.retry_config)(self._download)(url)
        except (RetryableError, NonRetryableError) as e:
            raise UpstreamFetchError(
                f"Failed to fetch feed {url}: {e}",
                suggestion="Check the feed URL and your network connection",
            ) from e

        try:
            document = FeedDocument.from_bytes(data)
        except FeedParseError as e:
            raise UpstreamFetchError(f"Feed at {url} is not valid RSS: {e}") from e

        logger.debug(f"Fetched {url}: {len(document)} items")
        return document

    async def _download(self, url: str) -> bytes:
        """One download attempt, with transport errors mapped for retry."""
        if self._client is not None:
            return await self._get(self._client, url)

        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": self.user_agent},
        ) as client:
            return await self._get(client, url)

    async def _get(self, client: httpx.AsyncClient, url: str) -> bytes:
        try:
            response = await client.get(url, headers={"User-Agent": self.user_agent})
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Timed out fetching {url}") from e
        except httpx.TransportError as e:
            raise ConnectionError(f"Could not connect to {url}: {e}") from e

        if response.status_code >= 400:
            raise classify_http_error(response.status_code, url)

        return response.content
