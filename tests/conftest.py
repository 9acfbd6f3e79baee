"""Shared fixtures: synthetic podcast feeds and a fixed clock."""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import pytest

# First episode of every generated feed
T0 = datetime(2020, 1, 6, 9, 0, tzinfo=timezone.utc)

# "Now" for tests that need a fixed clock
NOW = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)

RSS_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<rss version="2.0"'
    ' xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd"'
    ' xmlns:content="http://purl.org/rss/1.0/modules/content/"'
    ' xmlns:atom="http://www.w3.org/2005/Atom"'
    ' xmlns:media="http://search.yahoo.com/mrss/">\n'
)


def build_rss(
    count: int = 10,
    start: datetime = T0,
    spacing: timedelta = timedelta(days=7),
    title: str = "Test Show",
    description: str = "A show about tests.",
    undated: int = 0,
    channel_extra: str = "",
    with_content: bool = False,
) -> bytes:
    """Build a feed of ``count`` weekly episodes, newest first like real feeds."""
    items = []
    for number in range(count, 0, -1):
        published = start + spacing * (number - 1)
        content = (
            f"<content:encoded><![CDATA[<p>Show notes {number}</p>]]></content:encoded>"
            if with_content
            else ""
        )
        items.append(
            f"<item><title>Episode {number}</title>"
            f"<pubDate>{format_datetime(published)}</pubDate>"
            f"<description>Description {number}</description>{content}"
            f'<enclosure url="https://cdn.example.com/ep{number}.mp3" type="audio/mpeg" length="1"/>'
            f"<guid>ep-{number}</guid></item>"
        )
    for number in range(undated):
        items.append(f"<item><title>Bonus {number + 1}</title><pubDate>sometime</pubDate></item>")

    return (
        RSS_HEADER
        + f"<channel><title>{title}</title><link>https://example.com</link>"
        + f"<description>{description}</description>{channel_extra}"
        + "".join(items)
        + "</channel></rss>\n"
    ).encode("utf-8")


@pytest.fixture
def make_rss() -> Callable[..., bytes]:
    """Factory for synthetic feed documents."""
    return build_rss


@pytest.fixture
def sample_config_dict() -> dict:
    """Sample global config data."""
    return {
        "version": "1",
        "feeds_dir": "/tmp/backcast-feeds",
        "public_base_url": "https://pods.example.com/",
        "log_level": "INFO",
        "fetch": {"timeout_seconds": 10, "max_attempts": 2},
        "update": {"concurrency": 3},
    }


@pytest.fixture
def fixed_now() -> datetime:
    return NOW


@pytest.fixture
def t0() -> datetime:
    return T0


class TickingClock:
    """Clock that moves forward a little on every reading, like a real one."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.now
        self.now += self.step
        return value

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock(NOW)
