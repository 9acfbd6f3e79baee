"""Data models for upstream feed entries."""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime

from backcast.utils.datetime import parse_rfc2822
from backcast.utils.errors import MalformedTimestampError

logger = logging.getLogger(__name__)

CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
CONTENT_ENCODED = f"{{{CONTENT_NS}}}encoded"


def _child_text(element: ET.Element, tag: str) -> str | None:
    child = element.find(tag)
    if child is None:
        return None
    return child.text or ""


@dataclass(frozen=True)
class Entry:
    """A single upstream item (episode).

    Entries are read-only views over an ``<item>`` element. They have no
    stable identity beyond their position once sorted by publish date.
    """

    element: ET.Element = field(compare=False, repr=False)
    title: str | None
    published: datetime | None  # None when pubDate is missing or unparseable
    raw_published: str | None
    description: str | None = None
    content: str | None = None
    media_url: str | None = None
    guid: str | None = None

    @classmethod
    def from_element(cls, element: ET.Element) -> "Entry":
        """Build an Entry from an RSS ``<item>`` element."""
        raw_published = _child_text(element, "pubDate")
        published = None
        if raw_published:
            try:
                published = parse_rfc2822(raw_published)
            except MalformedTimestampError as e:
                logger.debug(str(e))

        enclosure = element.find("enclosure")
        media_url = enclosure.get("url") if enclosure is not None else None

        return cls(
            element=element,
            title=_child_text(element, "title"),
            published=published,
            raw_published=raw_published,
            description=_child_text(element, "description"),
            content=_child_text(element, CONTENT_ENCODED),
            media_url=media_url,
            guid=_child_text(element, "guid"),
        )

    @property
    def display_title(self) -> str:
        """Title for schedules and listings."""
        return self.title or "[no title]"


def split_dated(entries: list[Entry]) -> tuple[list[Entry], list[Entry]]:
    """Separate schedulable entries from ones without a usable publish date.

    Returns:
        Tuple of (dated entries sorted oldest first, undated entries in feed order)
    """
    dated = [e for e in entries if e.published is not None]
    undated = [e for e in entries if e.published is None]
    # sorted() is stable, so same-instant entries keep feed order
    dated = sorted(dated, key=lambda e: e.published)  # type: ignore[arg-type,return-value]
    return dated, undated
