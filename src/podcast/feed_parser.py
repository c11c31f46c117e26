"""RSS feed parser for podcast metadata and episodes.

Uses the feedparser library to read RSS 2.0 documents with the iTunes
namespace and normalizes them into ``ParsedChannel`` / ``ParsedItem``
records. Only RSS is accepted; per-item problems (bad dates, bad durations,
missing GUIDs) degrade to defaults instead of failing the whole feed.
"""

import html
import io
import logging
import re
import xml.etree.ElementTree as ET
import xml.sax
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, List, Optional, Tuple, Union

import feedparser

from .errors import ErrorKind, FeedInterchangeError

logger = logging.getLogger(__name__)

ITUNES_NAMESPACE = "http://www.itunes.com/dtds/podcast-1.0.dtd"
CONTENT_NAMESPACE = "http://purl.org/rss/1.0/modules/content/"

# feedparser records itunes:category as a tag with this scheme
ITUNES_CATEGORY_SCHEME = "http://www.itunes.com/"

EPISODE_TYPES = ("full", "trailer", "bonus")

# RDF-based versions have no <rss><channel> root
RDF_VERSIONS = ("rss090", "rss10")

_CDATA_BLOCK_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
_CDATA_MARKER_RE = re.compile(r"<!\[CDATA\[|\]\]>")
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class ParsedItem:
    """Parsed episode data from an RSS <item>."""

    title: str
    audio_url: str
    pub_date: datetime

    description: Optional[str] = None
    show_notes: Optional[str] = None
    guid: Optional[str] = None
    link: Optional[str] = None
    enclosure_type: str = "audio/mpeg"
    file_size_bytes: int = 0
    duration_seconds: int = 0

    episode_number: Optional[int] = None
    season_number: Optional[int] = None
    episode_type: str = "full"
    explicit: bool = False

    @property
    def identity(self) -> str:
        """Stable dedup key: the feed GUID, else the enclosure URL."""
        return self.guid or self.audio_url


@dataclass
class ParsedChannel:
    """Parsed podcast data from an RSS <channel>."""

    title: str

    description: Optional[str] = None
    website_url: Optional[str] = None
    image_url: Optional[str] = None
    language: str = "en"

    author: Optional[str] = None
    author_email: Optional[str] = None
    category: Optional[str] = None
    explicit: bool = False


def parse_duration(value: Optional[str]) -> int:
    """Parse an iTunes duration into whole seconds.

    Handles the encodings seen in real feeds:
    - Seconds: "930"
    - MM:SS: "15:30"
    - HH:MM:SS: "1:15:30"

    Anything else, including an absent value, yields 0.
    """
    if value is None:
        return 0

    value_str = value.strip()
    if not value_str:
        return 0

    parts = value_str.split(":")
    if len(parts) > 3:
        return 0

    try:
        if len(parts) == 1:
            # Some feeds emit fractional seconds ("930.5")
            seconds = int(float(value_str))
            return seconds if seconds >= 0 else 0

        numbers = [int(p) for p in parts]
    except (ValueError, OverflowError):
        return 0

    if any(n < 0 for n in numbers):
        return 0

    if len(numbers) == 2:
        minutes, seconds = numbers
        return minutes * 60 + seconds

    hours, minutes, seconds = numbers
    return hours * 3600 + minutes * 60 + seconds


def parse_pub_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 2822 date (ISO 8601 tolerated) into an aware UTC datetime.

    Returns None when the value is absent or unparseable.
    """
    if not value or not value.strip():
        return None

    value = value.strip()
    parsed = None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def clean_html(text: Optional[str]) -> Optional[str]:
    """Reduce description markup to a plain string.

    CDATA wrappers (including ones that survived as literal text), HTML
    tags and entities are removed and whitespace is collapsed.
    """
    if text is None:
        return None

    clean = _CDATA_BLOCK_RE.sub(r"\1", text)
    clean = _CDATA_MARKER_RE.sub("", clean)
    clean = _TAG_RE.sub(" ", clean)
    clean = html.unescape(clean)
    clean = _WHITESPACE_RE.sub(" ", clean).strip()
    return clean


def clean_text(text: Optional[str]) -> Optional[str]:
    """Normalize a short text field (titles, names) without touching markup."""
    if text is None:
        return None
    clean = _CDATA_MARKER_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", clean).strip()


def _first_nonempty(*values) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value
    return None


def _positive_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        number = int(str(value).strip())
    except ValueError:
        return None
    return number if number > 0 else None


def _is_fatal(exception: Optional[Exception]) -> bool:
    """Whether a feedparser bozo exception means the XML is not well-formed.

    Undeclared namespace prefixes are recoverable: feedparser's loose
    parser still maps well-known prefixes such as ``itunes:``.
    """
    if not isinstance(exception, xml.sax.SAXParseException):
        return False
    return "unbound prefix" not in str(exception)


def _split_tag(tag) -> Tuple[str, str]:
    if not isinstance(tag, str) or not tag.startswith("{"):
        return "", tag if isinstance(tag, str) else ""
    namespace, _, local = tag[1:].partition("}")
    return namespace, local


def _namespaced_values(data: bytes) -> Tuple[Dict[str, str], Optional[List[Optional[str]]]]:
    """Read the elements feedparser merges with their plain counterparts.

    feedparser folds itunes:author into ``author``, itunes:image into
    ``image`` and content:encoded into the same ``content`` list as a
    second summary, so document order decides what survives. This reads
    them straight from the tree.

    Returns:
        (channel values keyed "author"/"image", content:encoded per <item>).
        Both are empty/None when the document only parses loosely
        (e.g. undeclared prefixes).
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError:
        return {}, None

    channel = root.find("channel")
    if channel is None:
        return {}, None

    values = {}
    show_notes = []
    for child in channel:
        namespace, local = _split_tag(child.tag)
        if not namespace and local == "item":
            encoded = child.find(f"{{{CONTENT_NAMESPACE}}}encoded")
            show_notes.append(encoded.text if encoded is not None else None)
            continue
        # Feeds in the wild vary the case of the DTD URL
        if namespace.lower() != ITUNES_NAMESPACE:
            continue
        if local == "author" and "author" not in values:
            author = _first_nonempty(child.text)
            if author:
                values["author"] = author
        elif local == "image" and "image" not in values:
            href = _first_nonempty(child.get("href"))
            if href:
                values["image"] = href.strip()
    return values, show_notes


class FeedParser:
    """Parser for podcast RSS feeds.

    Example:
        parser = FeedParser()
        channel, items = parser.parse(raw_bytes)
        print(f"Podcast: {channel.title}")
        for item in items:
            print(f"  - {item.title}")
    """

    def parse(self, data: Union[bytes, str]) -> Tuple[ParsedChannel, List[ParsedItem]]:
        """Parse a podcast feed document.

        Args:
            data: Raw RSS document

        Returns:
            Tuple of (ParsedChannel, list of ParsedItem in document order)

        Raises:
            FeedInterchangeError: InvalidFeed if the document is not
                well-formed XML or lacks the <rss><channel> structure
        """
        if isinstance(data, str):
            data = data.encode("utf-8")

        # A file object keeps feedparser from treating the bytes as a URL or path
        feed = feedparser.parse(io.BytesIO(data))

        if feed.bozo:
            if _is_fatal(feed.get("bozo_exception")):
                raise FeedInterchangeError(
                    ErrorKind.INVALID_FEED,
                    f"Feed is not well-formed XML: {feed.bozo_exception}",
                )
            logger.warning(f"Feed parsing warning: {feed.get('bozo_exception')}")

        version = feed.get("version") or ""
        if not version.startswith("rss") or version in RDF_VERSIONS or not feed.feed:
            raise FeedInterchangeError(
                ErrorKind.INVALID_FEED, "Invalid RSS feed: no <rss><channel> element"
            )

        itunes, show_notes = _namespaced_values(data)
        if show_notes is not None and len(show_notes) != len(feed.entries):
            logger.warning("Item count differs between parsers; ignoring content:encoded")
            show_notes = None

        channel = self._parse_channel(feed.feed, itunes)

        items = []
        skipped = 0
        for index, entry in enumerate(feed.entries):
            item = self._parse_item(entry, show_notes[index] if show_notes else None)
            if item is None:
                skipped += 1
                continue
            items.append(item)

        logger.info(
            f"Parsed feed '{channel.title}': {len(items)} episodes"
            + (f", {skipped} items without audio skipped" if skipped else "")
        )
        return channel, items

    def _parse_channel(
        self, f: feedparser.FeedParserDict, itunes: Dict[str, str]
    ) -> ParsedChannel:
        description = _first_nonempty(
            f.get("description"), f.get("subtitle"), f.get("itunes_summary")
        )

        # itunes:owner is reported as the publisher
        publisher = f.get("publisher_detail") or {}
        author_detail = f.get("author_detail") or {}
        author_email = _first_nonempty(publisher.get("email"), author_detail.get("email"))

        return ParsedChannel(
            title=clean_text(_first_nonempty(f.get("title"))) or "Untitled Podcast",
            description=clean_html(description),
            website_url=clean_text(_first_nonempty(f.get("link"))),
            image_url=itunes.get("image") or self._extract_image_url(f),
            language=clean_text(_first_nonempty(f.get("language"))) or "en",
            author=clean_text(_first_nonempty(itunes.get("author"), f.get("author"))),
            author_email=clean_text(author_email),
            category=self._extract_category(f),
            explicit=self._parse_explicit(f.get("itunes_explicit")),
        )

    def _parse_item(
        self, entry: feedparser.FeedParserDict, show_notes: Optional[str] = None
    ) -> Optional[ParsedItem]:
        """Parse an entry; returns None when it carries no audio enclosure.

        ``show_notes`` is the raw content:encoded HTML of the same <item>.
        """
        enclosure = self._extract_enclosure(entry)
        if enclosure is None:
            logger.debug(f"Skipping item without enclosure: {entry.get('title')}")
            return None

        content = entry.get("content") or [{}]
        show_notes = _first_nonempty(show_notes)
        description = _first_nonempty(
            entry.get("summary"), entry.get("itunes_summary"), content[0].get("value"), show_notes
        )

        raw_date = entry.get("published")
        pub_date = parse_pub_date(raw_date)
        if pub_date is None and entry.get("published_parsed"):
            pub_date = datetime(*entry.published_parsed[:6], tzinfo=timezone.utc)
        if pub_date is None:
            if raw_date and raw_date.strip():
                logger.warning(f"Unparseable pubDate {raw_date!r}; using current time")
            pub_date = datetime.now(timezone.utc)

        # feedparser copies a permalink GUID into link when the item has none
        link = _first_nonempty(entry.get("link"))
        if entry.get("guidislink") and link == entry.get("id"):
            link = None

        episode_type = (_first_nonempty(entry.get("itunes_episodetype")) or "").strip().lower()
        if episode_type not in EPISODE_TYPES:
            episode_type = "full"

        return ParsedItem(
            title=clean_text(_first_nonempty(entry.get("title"), entry.get("itunes_title")))
            or "Untitled Episode",
            audio_url=enclosure.get("href").strip(),
            pub_date=pub_date,
            description=clean_html(description),
            show_notes=show_notes.strip() if show_notes else None,
            guid=clean_text(_first_nonempty(entry.get("id"))),
            link=clean_text(link),
            enclosure_type=_first_nonempty(enclosure.get("type")) or "audio/mpeg",
            file_size_bytes=_positive_int(enclosure.get("length")) or 0,
            duration_seconds=parse_duration(
                _first_nonempty(entry.get("itunes_duration"), entry.get("duration"))
            ),
            episode_number=_positive_int(entry.get("itunes_episode")),
            season_number=_positive_int(entry.get("itunes_season")),
            episode_type=episode_type,
            explicit=self._parse_explicit(entry.get("itunes_explicit")),
        )

    def _extract_enclosure(self, entry: feedparser.FeedParserDict) -> Optional[dict]:
        for enclosure in entry.get("enclosures", []):
            if _first_nonempty(enclosure.get("href")):
                return enclosure
        return None

    def _extract_image_url(self, f: feedparser.FeedParserDict) -> Optional[str]:
        """Cover image from <image><url>; itunes:image is resolved separately."""
        image = f.get("image")
        if isinstance(image, dict):
            url = _first_nonempty(image.get("href"), image.get("url"))
            return url.strip() if url else None
        return None

    def _extract_category(self, f: feedparser.FeedParserDict) -> Optional[str]:
        for tag in f.get("tags", []):
            if tag.get("scheme") == ITUNES_CATEGORY_SCHEME:
                return clean_text(_first_nonempty(tag.get("term")))
        return None

    def _parse_explicit(self, value) -> bool:
        """Only the literal "yes" marks content explicit.

        feedparser maps "yes" to True, "clean" to False and anything
        else to None.
        """
        return value is True
