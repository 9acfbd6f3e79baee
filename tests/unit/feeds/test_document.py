"""Tests for the feed document codec."""

from collections.abc import Callable
from pathlib import Path

import pytest

from backcast.feeds.document import (
    FeedDocument,
    normalize_written_file,
    read_document,
    scrub_known_escapes,
    stage_document,
    write_document,
)
from backcast.feeds.models import CONTENT_ENCODED, split_dated
from backcast.utils.errors import FeedParseError


class TestScrub:
    """Test known-bad escape scrubbing."""

    def test_bare_ampersand_escaped(self) -> None:
        assert scrub_known_escapes(b"<title>Q & A</title>") == b"<title>Q &amp; A</title>"

    def test_valid_entities_untouched(self) -> None:
        data = b"<title>Q &amp; A &lt;3</title>"
        assert scrub_known_escapes(data) == data

    def test_cdata_untouched(self) -> None:
        """Test a bare ampersand inside CDATA is kept, outside it is escaped."""
        data = b"<a>Q & A</a><b><![CDATA[Tom & Jerry]]></b><c>R & D</c>"

        assert scrub_known_escapes(data) == (
            b"<a>Q &amp; A</a><b><![CDATA[Tom & Jerry]]></b><c>R &amp; D</c>"
        )


class TestFeedDocument:
    """Test parsing and serialization."""

    def test_parse_channel_fields(self, make_rss: Callable[..., bytes]) -> None:
        """Test title, description and item count are read."""
        doc = FeedDocument.from_bytes(make_rss(count=3))

        assert doc.title == "Test Show"
        assert doc.description == "A show about tests."
        assert len(doc) == 3

    def test_bare_ampersand_feed_parses(self, make_rss: Callable[..., bytes]) -> None:
        """Test a feed with an unescaped ampersand is readable."""
        doc = FeedDocument.from_bytes(make_rss(count=1, title="Q & A Hour"))
        assert doc.title == "Q & A Hour"

    def test_cdata_ampersand_not_double_escaped(self, make_rss: Callable[..., bytes]) -> None:
        data = make_rss(count=1, with_content=True).replace(b"Show notes 1", b"Tom & Jerry")

        doc = FeedDocument.from_bytes(data)

        content = doc.item_elements()[0].findtext(CONTENT_ENCODED)
        assert content == "<p>Tom & Jerry</p>"
        assert b"&amp;amp;" not in doc.to_bytes()

    def test_malformed_xml_raises(self) -> None:
        with pytest.raises(FeedParseError, match="Malformed"):
            FeedDocument.from_bytes(b"<rss><channel><title>oops</channel>")

    def test_missing_channel_raises(self) -> None:
        with pytest.raises(FeedParseError, match="channel"):
            FeedDocument.from_bytes(b"<rss version='2.0'/>")

    def test_entries(self, make_rss: Callable[..., bytes]) -> None:
        """Test entries expose the item fields."""
        doc = FeedDocument.from_bytes(make_rss(count=2, with_content=True))
        newest = doc.entries()[0]

        assert newest.title == "Episode 2"
        assert newest.description == "Description 2"
        assert newest.content == "<p>Show notes 2</p>"
        assert newest.media_url == "https://cdn.example.com/ep2.mp3"
        assert newest.guid == "ep-2"
        assert newest.published is not None

    def test_undated_entries_split_off(self, make_rss: Callable[..., bytes]) -> None:
        """Test entries with unusable dates are separated and dated ones sorted."""
        doc = FeedDocument.from_bytes(make_rss(count=3, undated=1))

        dated, undated = split_dated(doc.entries())

        assert [e.title for e in dated] == ["Episode 1", "Episode 2", "Episode 3"]
        assert [e.title for e in undated] == ["Bonus 1"]
        assert undated[0].raw_published == "sometime"

    def test_copy_is_independent(self, make_rss: Callable[..., bytes]) -> None:
        doc = FeedDocument.from_bytes(make_rss(count=2))
        duplicate = doc.copy()

        duplicate.title = "Changed"
        duplicate.replace_items([])

        assert doc.title == "Test Show"
        assert len(doc) == 2
        assert len(duplicate) == 0

    def test_serialization_format(self, make_rss: Callable[..., bytes]) -> None:
        """Test output has a declaration, 2-space indent and known prefixes."""
        doc = FeedDocument.from_bytes(make_rss(count=1, with_content=True))

        text = doc.to_bytes().decode("utf-8")

        assert text.startswith("<?xml version='1.0' encoding='utf-8'?>")
        assert "\n  <channel>" in text
        assert "\n    <title>Test Show</title>" in text
        assert "<content:encoded>" in text
        assert "ns0:" not in text

    def test_serialization_is_stable(self, make_rss: Callable[..., bytes]) -> None:
        """Test parse then serialize twice gives identical bytes."""
        first = FeedDocument.from_bytes(make_rss(count=4)).to_bytes()
        second = FeedDocument.from_bytes(first).to_bytes()
        assert first == second

    def test_unknown_namespace_prefix_kept(self) -> None:
        """Test prefixes declared by the feed survive serialization."""
        data = (
            b'<rss xmlns:spotify="http://www.spotify.com/ns/rss"><channel><title>x</title>'
            b"<spotify:limit>1</spotify:limit></channel></rss>"
        )
        text = FeedDocument.from_bytes(data).to_bytes().decode("utf-8")
        assert "<spotify:limit>1</spotify:limit>" in text


class TestFileIO:
    """Test reading and writing documents on disk."""

    @pytest.mark.asyncio
    async def test_write_then_read(self, tmp_path: Path, make_rss: Callable[..., bytes]) -> None:
        path = tmp_path / "feed.rss"
        doc = FeedDocument.from_bytes(make_rss(count=3))

        await write_document(path, doc)
        loaded = await read_document(path)

        assert loaded.title == "Test Show"
        assert len(loaded) == 3
        assert not (tmp_path / "feed.rss.tmp").exists()

    @pytest.mark.asyncio
    async def test_stage_leaves_target_alone(
        self, tmp_path: Path, make_rss: Callable[..., bytes]
    ) -> None:
        """Test staging writes only the temp file."""
        path = tmp_path / "feed.rss"
        path.write_bytes(b"old")

        staged = await stage_document(path, FeedDocument.from_bytes(make_rss(count=1)))

        assert path.read_bytes() == b"old"
        assert staged.exists()

    @pytest.mark.asyncio
    async def test_normalize_written_file(self, tmp_path: Path) -> None:
        """Test the post-write pass rewrites bad escapes in place."""
        path = tmp_path / "feed.rss"
        path.write_bytes(b"<rss><channel><title>Q & A</title></channel></rss>")

        await normalize_written_file(path)

        assert path.read_bytes() == b"<rss><channel><title>Q &amp; A</title></channel></rss>"
        assert list(tmp_path.iterdir()) == [path]

    @pytest.mark.asyncio
    async def test_read_missing_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            await read_document(tmp_path / "nope.rss")
