"""RSS document reading and writing.

The feed is treated as a channel holding an ordered list of ``<item>``
elements. Everything Backcast doesn't touch (extension namespaces, unknown
tags) round-trips untouched.

Two escaping fixes are applied:
- Downloaded bytes are scrubbed of known bad escapes before parsing.
- Every file written goes through a post-write normalization pass, so
  nothing leaves this module in a form podcatchers reject.
"""

import asyncio
import copy
import io
import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path

import aiofiles

from backcast.feeds.models import Entry
from backcast.utils.errors import FeedParseError

logger = logging.getLogger(__name__)

INDENT = "  "

# Namespaces commonly found in podcast feeds, registered so the output keeps
# their conventional prefixes instead of ns0/ns1.
NAMESPACES = {
    "itunes": "http://www.itunes.com/dtds/podcast-1.0.dtd",
    "content": "http://purl.org/rss/1.0/modules/content/",
    "atom": "http://www.w3.org/2005/Atom",
    "media": "http://search.yahoo.com/mrss/",
    "googleplay": "http://www.google.com/schemas/play-podcasts/1.0",
    "podcast": "https://podcastindex.org/namespace/1.0",
    "dc": "http://purl.org/dc/elements/1.1/",
}

# (bad, good) byte sequences. Some publishers emit a bare ampersand.
KNOWN_ESCAPE_FIXES: tuple[tuple[bytes, bytes], ...] = ((b"& ", b"&amp; "),)

for _prefix, _uri in NAMESPACES.items():
    ET.register_namespace(_prefix, _uri)


CDATA_SECTION = re.compile(rb"(<!\[CDATA\[.*?\]\]>)", re.DOTALL)


def scrub_known_escapes(data: bytes) -> bytes:
    """Replace known bad escape sequences outside CDATA sections.

    A bare ``&`` is legal inside CDATA, so those sections are left as is.
    """
    parts = CDATA_SECTION.split(data)
    # Odd indexes are the captured CDATA sections
    for i in range(0, len(parts), 2):
        for bad, good in KNOWN_ESCAPE_FIXES:
            if bad in parts[i]:
                parts[i] = parts[i].replace(bad, good)
    return b"".join(parts)


def _register_document_namespaces(data: bytes) -> None:
    """Register every prefix declared in the document for serialization."""
    try:
        for _event, (prefix, uri) in ET.iterparse(io.BytesIO(data), events=("start-ns",)):
            if not prefix or prefix in NAMESPACES:
                continue
            try:
                ET.register_namespace(prefix, uri)
            except ValueError:
                # Reserved ns\d+ prefixes; ElementTree picks its own.
                logger.debug(f"Cannot register namespace prefix {prefix!r}")
    except ET.ParseError:
        # Reported by the real parse below
        pass


class FeedDocument:
    """An RSS 2.0 feed held as an ElementTree.

    Example:
        >>> doc = FeedDocument.from_bytes(response.content)
        >>> doc.title
        'Some Podcast'
        >>> len(doc)
        312
    """

    def __init__(self, root: ET.Element) -> None:
        """Wrap a parsed ``<rss>`` root element.

        Args:
            root: Root element of the feed

        Raises:
            FeedParseError: If there is no ``<channel>``
        """
        self.root = root
        channel = root.find("channel")
        if channel is None:
            raise FeedParseError("Feed has no <channel> element")
        self.channel = channel

    @classmethod
    def from_bytes(cls, data: bytes) -> "FeedDocument":
        """Parse raw feed bytes.

        Args:
            data: Document bytes as downloaded or read from disk

        Returns:
            Parsed document

        Raises:
            FeedParseError: If the bytes are not a well-formed RSS document
        """
        data = scrub_known_escapes(data)
        _register_document_namespaces(data)
        try:
            root = ET.fromstring(data)
        except ET.ParseError as e:
            raise FeedParseError(f"Malformed feed XML: {e}") from e
        return cls(root)

    def copy(self) -> "FeedDocument":
        """Deep copy, so rewrites never touch the cached document."""
        return FeedDocument(copy.deepcopy(self.root))

    def __len__(self) -> int:
        return len(self.item_elements())

    @property
    def title(self) -> str:
        return self.channel.findtext("title", default="")

    @title.setter
    def title(self, value: str) -> None:
        set_child_text(self.channel, "title", value)

    @property
    def description(self) -> str:
        return self.channel.findtext("description", default="")

    @description.setter
    def description(self, value: str) -> None:
        set_child_text(self.channel, "description", value)

    def item_elements(self) -> list[ET.Element]:
        """``<item>`` elements in document order."""
        return self.channel.findall("item")

    def entries(self) -> list[Entry]:
        """Entries in document order."""
        return [Entry.from_element(item) for item in self.item_elements()]

    def replace_items(self, items: list[ET.Element]) -> None:
        """Remove every ``<item>`` and append the given ones in order."""
        for item in self.item_elements():
            self.channel.remove(item)
        for item in items:
            self.channel.append(item)

    def to_bytes(self) -> bytes:
        """Serialize with 2-space indentation and an XML declaration."""
        root = copy.deepcopy(self.root)
        ET.indent(root, space=INDENT)
        buffer = io.BytesIO()
        ET.ElementTree(root).write(buffer, encoding="utf-8", xml_declaration=True)
        return buffer.getvalue() + b"\n"


def set_child_text(parent: ET.Element, tag: str, text: str) -> ET.Element:
    """Set the text of ``parent/tag``, creating the child if needed."""
    child = parent.find(tag)
    if child is None:
        child = ET.SubElement(parent, tag)
    child.text = text
    return child


async def read_document(path: Path) -> FeedDocument:
    """Read a feed document from disk.

    Raises:
        FileNotFoundError: If the file doesn't exist
        FeedParseError: If the file is not a valid feed
    """
    async with aiofiles.open(path, "rb") as f:
        data = await f.read()
    return FeedDocument.from_bytes(data)


async def normalize_written_file(path: Path) -> None:
    """Post-write pass: fix known bad escapes in a file and replace it atomically."""
    async with aiofiles.open(path, "rb") as f:
        data = await f.read()

    fixed = scrub_known_escapes(data)
    if fixed == data:
        return

    scratch = path.with_name(path.name + ".scrub")
    async with aiofiles.open(scratch, "wb") as f:
        await f.write(fixed)
    await asyncio.to_thread(scratch.replace, path)


async def stage_document(path: Path, document: FeedDocument) -> Path:
    """Write a document next to ``path`` without replacing it yet.

    Returns:
        Path of the staged (normalized) temp file
    """
    staged = path.with_name(path.name + ".tmp")
    try:
        async with aiofiles.open(staged, "wb") as f:
            await f.write(document.to_bytes())
        await normalize_written_file(staged)
    except OSError:
        await asyncio.to_thread(staged.unlink, missing_ok=True)
        raise
    return staged


async def write_document(path: Path, document: FeedDocument) -> None:
    """Write a document atomically (staged temp file, then rename)."""
    staged = await stage_document(path, document)
    await asyncio.to_thread(staged.replace, path)
