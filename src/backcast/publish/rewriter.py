"""Builds the derived output feed from the cached upstream document."""

import copy
import logging
import xml.etree.ElementTree as ET
from datetime import datetime

from backcast.feeds.document import NAMESPACES, FeedDocument, set_child_text
from backcast.feeds.models import CONTENT_ENCODED, Entry
from backcast.publish.selector import count_eligible, next_release
from backcast.schedule.models import ScheduleEntry, ScheduleState
from backcast.utils.datetime import format_release_time, format_rfc2822, format_short_date

logger = logging.getLogger(__name__)

TITLE_SUFFIX = " - Backcast"
PLACEHOLDER_OWNER_EMAIL = "example@example.com"

MEDIA_RIGHTS = f"{{{NAMESPACES['media']}}}rights"
ATOM_LINK = f"{{{NAMESPACES['atom']}}}link"
ITUNES_OWNER = f"{{{NAMESPACES['itunes']}}}owner"
ITUNES_NAME = f"{{{NAMESPACES['itunes']}}}name"
ITUNES_EMAIL = f"{{{NAMESPACES['itunes']}}}email"


def status_line(state: ScheduleState, now: datetime) -> str:
    """Status sentence appended to the channel description."""
    if state.is_paused:
        return "Backcast feed is paused."

    upcoming = next_release(state.entries, state.reference_instant(now))
    if upcoming is None:
        return "Backcast feed has caught up."
    return f"Next episode publishes {format_release_time(upcoming.release_at)}."


def rewrite(
    document: FeedDocument,
    entries: list[Entry],
    state: ScheduleState,
    now: datetime,
    manage_url: str,
) -> FeedDocument:
    """Build the output document.

    Args:
        document: Cached upstream document (left unmodified)
        entries: Dated entries sorted oldest first, aligned with ``state.entries``
        state: Schedule with freshly derived entries
        now: Current instant
        manage_url: Link appended to every published item

    Returns:
        New document holding only the released items, oldest first
    """
    if len(entries) != len(state.entries):
        raise ValueError(
            f"Schedule has {len(state.entries)} entries but {len(entries)} were given"
        )

    output = document.copy()
    output.title = document.title + TITLE_SUFFIX
    output.description = f"{document.description} -- {status_line(state, now)} Feed ID: {state.uuid}"

    released = count_eligible(state.entries, state.reference_instant(now))
    items = [
        _rewrite_item(entry, scheduled, manage_url)
        for entry, scheduled in zip(entries[:released], state.entries[:released])
    ]
    output.replace_items(items)

    correct_known_issues(output, state.subscribe_url)
    logger.debug(f"{state.feed_dir}: publishing {released} of {len(entries)} entries")
    return output


def _rewrite_item(entry: Entry, scheduled: ScheduleEntry, manage_url: str) -> ET.Element:
    item = copy.deepcopy(entry.element)
    original = entry.published
    assert original is not None

    # Once caught up the derived date can fall before the real one
    published = max(scheduled.release_at, original)
    set_child_text(item, "pubDate", format_rfc2822(published))

    original_date = format_short_date(original)
    description = (entry.description or "").replace("\r\n", "\n")
    set_child_text(
        item,
        "description",
        f"{description}\n\nOriginally published on {original_date}. "
        f"Manage this feed: {manage_url}",
    )

    content = item.find(CONTENT_ENCODED)
    if content is not None:
        text = (content.text or "").replace("\r\n", "\n")
        content.text = (
            f"{text}<br><br>Originally published on {original_date}. "
            f'Manage this feed: <a href="{manage_url}">{manage_url}</a>'
        )

    return item


def correct_known_issues(document: FeedDocument, subscribe_url: str) -> None:
    """Fix defects that make podcatchers reject otherwise valid feeds."""
    channel = document.channel

    for parent in [channel, *document.item_elements()]:
        for rights in parent.findall(MEDIA_RIGHTS):
            parent.remove(rights)

    owner = channel.find(ITUNES_OWNER)
    if owner is not None and owner.findtext(ITUNES_NAME) and owner.find(ITUNES_EMAIL) is None:
        ET.SubElement(owner, ITUNES_EMAIL).text = PLACEHOLDER_OWNER_EMAIL

    for link in channel.findall(ATOM_LINK):
        if link.get("rel") == "self":
            link.set("href", subscribe_url)
