"""Reconciles parsed feeds against storage.

Creates the Podcast and its ImportRecord for a first import, assigns a
unique slug, and upserts Episodes keyed by their feed identity so that
repeated imports of the same items never duplicate rows.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..db.models import Episode, Podcast
from ..db.repository import PodcastRepositoryInterface
from .errors import ErrorKind, FeedInterchangeError
from .feed_parser import ParsedChannel, ParsedItem

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
DEFAULT_SLUG = "podcast"

# Attempts at creating the podcast when a concurrent import takes the slug first
MAX_SLUG_ATTEMPTS = 5


def slugify(title: Optional[str]) -> str:
    """Derive a URL-safe slug from a podcast title.

    Lowercases, drops everything outside ``[a-z0-9 -]``, turns whitespace
    into hyphens and collapses repeats. An empty result becomes "podcast".
    """
    slug = (title or "").lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug or DEFAULT_SLUG


@dataclass
class ImportResult:
    """Outcome of a first import or a re-sync."""

    podcast: Podcast
    episodes: List[Episode] = field(default_factory=list)
    episode_count: int = 0
    created: int = 0
    updated: int = 0


class FeedImporter:
    """Writes parsed feed data through a repository.

    Example:
        importer = FeedImporter(repository)
        result = importer.import_feed(user_id, url, channel, items)
        print(f"{result.podcast.slug}: {result.episode_count} episodes")
    """

    def __init__(self, repository: PodcastRepositoryInterface, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.repository = repository
        self.batch_size = batch_size

    def import_feed(
        self,
        owner_id: str,
        source_url: str,
        channel: ParsedChannel,
        items: Sequence[ParsedItem],
    ) -> ImportResult:
        """
        Create a podcast from a parsed feed and store its episodes.

        Parameters:
            owner_id (str): Identity of the importing user.
            source_url (str): URL the feed was fetched from.
            channel (ParsedChannel): Parsed channel metadata.
            items (Sequence[ParsedItem]): Parsed items in feed order.

        Returns:
            ImportResult: The new podcast, its stored episodes and counts.

        Raises:
            FeedInterchangeError: AlreadyImported when the feed URL is taken,
                StorageError when a write fails (``podcast_id`` is set once
                the podcast row exists).
        """
        try:
            existing = self.repository.get_podcast_by_source_url(source_url)
        except SQLAlchemyError as e:
            raise FeedInterchangeError(ErrorKind.STORAGE_ERROR, f"Storage lookup failed: {e}") from e

        if existing is not None:
            raise FeedInterchangeError(
                ErrorKind.ALREADY_IMPORTED, "Podcast already imported", podcast_id=existing.id
            )

        podcast = self._create_podcast(owner_id, source_url, channel)
        logger.info(f"Importing '{podcast.title}' as {podcast.slug} ({len(items)} items)")

        created, updated = self._write_episodes(podcast.id, items)
        episode_count = self._finish(podcast.id)

        return ImportResult(
            podcast=podcast,
            episodes=self.repository.list_episodes(podcast.id),
            episode_count=episode_count,
            created=created,
            updated=updated,
        )

    def sync_feed(
        self,
        podcast: Podcast,
        channel: ParsedChannel,
        items: Sequence[ParsedItem],
    ) -> ImportResult:
        """
        Refresh an already-imported podcast from a newly parsed feed.

        Channel metadata is refreshed, but never the slug, owner, status or
        source URL. Episodes are upserted exactly like a first import, so an
        unchanged feed yields zero new rows.
        """
        updates = self._metadata_updates(podcast, channel)
        try:
            if updates:
                podcast = self.repository.update_podcast(podcast.id, **updates) or podcast
                logger.debug(f"Updated podcast metadata: {list(updates.keys())}")
        except SQLAlchemyError as e:
            self._mark_error(podcast.id, str(e))
            raise FeedInterchangeError(
                ErrorKind.STORAGE_ERROR, f"Failed to update podcast: {e}", podcast_id=podcast.id
            ) from e

        created, updated = self._write_episodes(podcast.id, items)
        episode_count = self._finish(podcast.id)

        logger.info(
            f"Synced '{podcast.title}': {created} new, {updated} updated, {episode_count} total"
        )
        return ImportResult(
            podcast=podcast,
            episode_count=episode_count,
            created=created,
            updated=updated,
        )

    # --- Podcast creation ---

    def allocate_slug(self, title: Optional[str]) -> str:
        """Return the first free slug among ``base``, ``base-2``, ``base-3``, ..."""
        base = slugify(title)
        candidate = base
        suffix = 2
        while self.repository.slug_exists(candidate):
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    def _create_podcast(self, owner_id: str, source_url: str, channel: ParsedChannel) -> Podcast:
        fields = {
            "description": channel.description,
            "cover_image_url": channel.image_url,
            "website_url": channel.website_url,
            "language": channel.language,
            "author_name": channel.author,
            "author_email": channel.author_email,
            "category": channel.category,
            "is_explicit": channel.explicit,
            "status": "published",
        }

        last_error: Optional[Exception] = None
        for _ in range(MAX_SLUG_ATTEMPTS):
            try:
                slug = self.allocate_slug(channel.title)
                return self.repository.create_imported_podcast(
                    owner_id=owner_id,
                    slug=slug,
                    title=channel.title,
                    feed_url=source_url,
                    **fields,
                )
            except IntegrityError as e:
                # Lost a race: either the feed itself or the chosen slug
                existing = self.repository.get_podcast_by_source_url(source_url)
                if existing is not None:
                    raise FeedInterchangeError(
                        ErrorKind.ALREADY_IMPORTED, "Podcast already imported", podcast_id=existing.id
                    ) from e
                logger.warning(f"Slug '{slug}' was taken concurrently; allocating another")
                last_error = e
            except SQLAlchemyError as e:
                raise FeedInterchangeError(
                    ErrorKind.STORAGE_ERROR, f"Failed to create podcast: {e}"
                ) from e

        raise FeedInterchangeError(
            ErrorKind.STORAGE_ERROR,
            f"Could not allocate a unique slug after {MAX_SLUG_ATTEMPTS} attempts: {last_error}",
        )

    def _metadata_updates(self, podcast: Podcast, channel: ParsedChannel) -> Dict[str, Any]:
        candidates = {
            "title": channel.title,
            "description": channel.description,
            "cover_image_url": channel.image_url,
            "website_url": channel.website_url,
            "language": channel.language,
            "author_name": channel.author,
            "author_email": channel.author_email,
            "category": channel.category,
        }
        updates = {
            key: value
            for key, value in candidates.items()
            if value and value != getattr(podcast, key)
        }
        if channel.explicit != podcast.is_explicit:
            updates["is_explicit"] = channel.explicit
        return updates

    # --- Episodes ---

    def _write_episodes(self, podcast_id: str, items: Sequence[ParsedItem]):
        """Upsert items in sequential batches; returns (created, updated)."""
        rows = [self._episode_row(item) for item in items]
        created = 0
        updated = 0

        for start in range(0, len(rows), self.batch_size):
            batch = rows[start:start + self.batch_size]
            try:
                batch_created, batch_updated = self.repository.upsert_episodes(podcast_id, batch)
            except SQLAlchemyError as e:
                logger.error(
                    f"Episode batch starting at {start} failed for {podcast_id}: {e}"
                )
                self._mark_error(podcast_id, str(e))
                raise FeedInterchangeError(
                    ErrorKind.STORAGE_ERROR,
                    f"Failed to store episodes: {e}",
                    podcast_id=podcast_id,
                ) from e
            created += batch_created
            updated += batch_updated
            logger.debug(
                f"Batch {start // self.batch_size + 1}: {batch_created} created, {batch_updated} updated"
            )

        return created, updated

    def _episode_row(self, item: ParsedItem) -> Dict[str, Any]:
        return {
            "external_guid": item.identity,
            "title": item.title,
            "description": item.description,
            "show_notes": item.show_notes,
            "link": item.link,
            "publish_date": item.pub_date,
            "duration_seconds": item.duration_seconds,
            "episode_number": item.episode_number,
            "season_number": item.season_number,
            "episode_type": item.episode_type,
            "audio_url": item.audio_url,
            "enclosure_type": item.enclosure_type,
            "file_size_bytes": item.file_size_bytes,
            "is_explicit": item.explicit,
            "status": "published",
            "source": "rss",
        }

    # --- Import record ---

    def _finish(self, podcast_id: str) -> int:
        """Record a successful pass with a fresh count of the podcast's rows."""
        try:
            count = self.repository.count_episodes(podcast_id)
            self.repository.update_import_record(
                podcast_id,
                episodes_imported=count,
                sync_status="success",
                last_error=None,
                last_synced_at=datetime.now(timezone.utc),
            )
        except SQLAlchemyError as e:
            raise FeedInterchangeError(
                ErrorKind.STORAGE_ERROR,
                f"Failed to update import record: {e}",
                podcast_id=podcast_id,
            ) from e
        return count

    def _mark_error(self, podcast_id: str, message: str) -> None:
        try:
            self.repository.update_import_record(
                podcast_id, sync_status="error", last_error=message
            )
        except SQLAlchemyError as e:
            logger.error(f"Could not mark import record of {podcast_id} as failed: {e}")
