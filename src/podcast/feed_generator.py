"""RSS 2.0 + iTunes feed generation for stored podcasts.

Serializes a Podcast and its Episodes into a feed accepted by Apple Podcasts,
Spotify and generic RSS aggregators.
"""

import logging
import re
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import List, Optional, Sequence

from ..db.models import Episode, Podcast

logger = logging.getLogger(__name__)

NAMESPACES = {
    "itunes": "http://www.itunes.com/dtds/podcast-1.0.dtd",
    "content": "http://purl.org/rss/1.0/modules/content/",
    "atom": "http://www.w3.org/2005/Atom",
    "podcast": "https://podcastindex.org/namespace/1.0",
}

DEFAULT_CATEGORY = "Society & Culture"
GENERATOR_NAME = "Podcast Feed Interchange"

# Characters XML 1.0 forbids outright, even when escaped
_ILLEGAL_XML_CHARS_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


def strip_illegal_chars(text: Optional[str]) -> str:
    """Remove characters that may not appear in an XML 1.0 document."""
    if not text:
        return ""
    return _ILLEGAL_XML_CHARS_RE.sub("", text)


def escape_xml(text: Optional[str]) -> str:
    """Escape text for use in element content or a double-quoted attribute."""
    return (
        strip_illegal_chars(text)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def cdata(text: Optional[str]) -> str:
    """Wrap text in a CDATA section.

    An embedded ``]]>`` is split across two sections so the markup inside
    descriptions survives verbatim.
    """
    body = strip_illegal_chars(text).replace("]]>", "]]]]><![CDATA[>")
    return f"<![CDATA[{body}]]>"


def format_duration(total_seconds: Optional[int]) -> str:
    """Format seconds as ``MM:SS`` below one hour, else ``HH:MM:SS``."""
    if not total_seconds or total_seconds <= 0:
        return "00:00"

    hours, remainder = divmod(int(total_seconds), 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def to_rfc2822(value: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Format a datetime as an RFC 2822 GMT string; None means ``now``."""
    if value is None:
        value = now or datetime.now(timezone.utc)
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


class FeedGenerator:
    """Builds the public RSS document for a podcast.

    Example:
        generator = FeedGenerator("https://example.com", "https://api.example.com")
        xml = generator.generate(podcast, episodes)
    """

    def __init__(self, site_url: str, feed_base_url: str):
        """
        Parameters:
            site_url (str): Base URL of the public podcast pages.
            feed_base_url (str): Base URL the export endpoint is served from.
        """
        self.site_url = site_url.rstrip("/")
        self.feed_base_url = feed_base_url.rstrip("/")

    def feed_url_for(self, podcast: Podcast) -> str:
        """Canonical URL of the exported feed, used as its atom self link."""
        return f"{self.feed_base_url}/export/{podcast.id}"

    def podcast_page_url(self, podcast: Podcast) -> str:
        return f"{self.site_url}/podcast/{podcast.slug}"

    def episode_page_url(self, podcast: Podcast, episode: Episode) -> str:
        return f"{self.site_url}/podcast/{podcast.slug}/{episode.id}"

    def generate(
        self,
        podcast: Podcast,
        episodes: Sequence[Episode],
        now: Optional[datetime] = None,
    ) -> bytes:
        """
        Render the feed document.

        Episodes are emitted in the order given; callers pass them newest
        first, as the repository lists them.

        Parameters:
            podcast (Podcast): The podcast to describe.
            episodes (Sequence[Episode]): Episodes to include.
            now (Optional[datetime]): Generation instant, used for
                lastBuildDate and for episodes without a publish date.

        Returns:
            bytes: UTF-8 encoded RSS document.
        """
        now = now or datetime.now(timezone.utc)
        page_url = self.podcast_page_url(podcast)
        author = podcast.author_name or podcast.title
        description = cdata(podcast.description)

        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0"',
        ]
        lines.extend(f'  xmlns:{prefix}="{uri}"' for prefix, uri in NAMESPACES.items())
        lines[-1] += ">"

        lines.extend([
            "  <channel>",
            f"    <title>{escape_xml(podcast.title)}</title>",
            f"    <description>{description}</description>",
            f"    <link>{escape_xml(page_url)}</link>",
            f"    <language>{escape_xml(podcast.language or 'en')}</language>",
            f"    <copyright>© {now.year} {escape_xml(author)}</copyright>",
            f"    <lastBuildDate>{to_rfc2822(now)}</lastBuildDate>",
            f'    <atom:link href="{escape_xml(self.feed_url_for(podcast))}" rel="self" type="application/rss+xml" />',
            f"    <generator>{GENERATOR_NAME}</generator>",
            f"    <itunes:author>{escape_xml(author)}</itunes:author>",
            f"    <itunes:summary>{description}</itunes:summary>",
            "    <itunes:type>episodic</itunes:type>",
            f"    <itunes:explicit>{self._explicit(podcast.is_explicit)}</itunes:explicit>",
            "    <itunes:owner>",
            f"      <itunes:name>{escape_xml(podcast.author_name)}</itunes:name>",
        ])
        if podcast.author_email:
            lines.append(f"      <itunes:email>{escape_xml(podcast.author_email)}</itunes:email>")
        lines.append("    </itunes:owner>")

        if podcast.cover_image_url:
            image_url = escape_xml(podcast.cover_image_url)
            lines.extend([
                f'    <itunes:image href="{image_url}" />',
                "    <image>",
                f"      <url>{image_url}</url>",
                f"      <title>{escape_xml(podcast.title)}</title>",
                f"      <link>{escape_xml(page_url)}</link>",
                "    </image>",
            ])

        lines.append(
            f'    <itunes:category text="{escape_xml(podcast.category or DEFAULT_CATEGORY)}" />'
        )
        lines.append("    <podcast:locked>no</podcast:locked>")

        for episode in episodes:
            lines.extend(self._render_item(podcast, episode, now))

        lines.extend(["  </channel>", "</rss>", ""])

        logger.debug(f"Generated feed for {podcast.slug} with {len(episodes)} episodes")
        return "\n".join(lines).encode("utf-8")

    def _render_item(self, podcast: Podcast, episode: Episode, now: datetime) -> List[str]:
        title = escape_xml(episode.title)
        description = cdata(episode.description)
        guid = episode.external_guid or episode.id

        lines = [
            "    <item>",
            f"      <title>{title}</title>",
            f"      <description>{description}</description>",
            f"      <link>{escape_xml(self.episode_page_url(podcast, episode))}</link>",
            f'      <guid isPermaLink="false">{escape_xml(guid)}</guid>',
            f"      <pubDate>{to_rfc2822(episode.publish_date, now)}</pubDate>",
        ]
        if episode.audio_url:
            lines.append(
                f'      <enclosure url="{escape_xml(episode.audio_url)}" '
                f'length="{max(episode.file_size_bytes or 0, 0)}" '
                f'type="{escape_xml(episode.enclosure_type or "audio/mpeg")}" />'
            )
        lines.extend([
            f"      <itunes:title>{title}</itunes:title>",
            f"      <itunes:summary>{description}</itunes:summary>",
            f"      <itunes:duration>{format_duration(episode.duration_seconds)}</itunes:duration>",
            f"      <itunes:explicit>{self._explicit(episode.is_explicit)}</itunes:explicit>",
            f"      <itunes:episodeType>{escape_xml(episode.episode_type or 'full')}</itunes:episodeType>",
        ])
        if episode.episode_number:
            lines.append(f"      <itunes:episode>{episode.episode_number}</itunes:episode>")
        if episode.season_number:
            lines.append(f"      <itunes:season>{episode.season_number}</itunes:season>")
        if episode.show_notes:
            lines.append(f"      <content:encoded>{cdata(episode.show_notes)}</content:encoded>")
        lines.append("    </item>")
        return lines

    def _explicit(self, value: Optional[bool]) -> str:
        return "true" if value else "false"
