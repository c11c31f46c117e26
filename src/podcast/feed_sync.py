"""Feed synchronization service.

Glues fetching, parsing and importing together: the first import of a feed
URL, and the idempotent re-sync of podcasts that were imported earlier.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..db.repository import PodcastRepositoryInterface
from .errors import ErrorKind, FeedInterchangeError
from .feed_parser import FeedParser
from .fetcher import FeedFetcher
from .importer import DEFAULT_BATCH_SIZE, FeedImporter, ImportResult

logger = logging.getLogger(__name__)


class FeedSyncService:
    """Service for importing and re-syncing podcast feeds.

    Example:
        sync_service = FeedSyncService(repository)
        result = sync_service.import_from_url(user_id, "https://example.com/feed.xml")
        print(f"Imported {result.podcast.title}: {result.episode_count} episodes")
    """

    def __init__(
        self,
        repository: PodcastRepositoryInterface,
        fetcher: Optional[FeedFetcher] = None,
        parser: Optional[FeedParser] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        """
        Create a FeedSyncService bound to a repository.

        Parameters:
            repository (PodcastRepositoryInterface): Storage for podcasts and episodes.
            fetcher (Optional[FeedFetcher]): Fetcher to use; a default one is created if omitted.
            parser (Optional[FeedParser]): Parser to use; a default one is created if omitted.
            batch_size (int): Episodes written per transaction.
        """
        self.repository = repository
        self.fetcher = fetcher or FeedFetcher()
        self.feed_parser = parser or FeedParser()
        self.importer = FeedImporter(repository, batch_size=batch_size)

    @classmethod
    def from_config(cls, repository: PodcastRepositoryInterface, config) -> "FeedSyncService":
        """Build a service whose fetcher and batching follow a Config object."""
        fetcher = FeedFetcher(
            timeout=config.FEED_FETCH_TIMEOUT,
            max_bytes=config.FEED_MAX_BYTES,
            resolve_dns=config.FEED_RESOLVE_DNS,
            user_agent=config.FEED_USER_AGENT,
        )
        return cls(repository, fetcher=fetcher, batch_size=config.IMPORT_BATCH_SIZE)

    def import_from_url(self, owner_id: str, feed_url: str) -> ImportResult:
        """
        Fetch, parse and import the feed at ``feed_url`` for ``owner_id``.

        Nothing is written unless the fetch and parse both succeed.

        Raises:
            FeedInterchangeError: Any ErrorKind; see ``FeedFetcher.fetch`` and
                ``FeedImporter.import_feed``.
        """
        feed_url = self.fetcher.validate_url(feed_url)

        # Cheap pre-check so a duplicate never costs a network round trip
        try:
            existing = self.repository.get_podcast_by_source_url(feed_url)
        except SQLAlchemyError as e:
            raise FeedInterchangeError(ErrorKind.STORAGE_ERROR, f"Storage lookup failed: {e}") from e
        if existing is not None:
            raise FeedInterchangeError(
                ErrorKind.ALREADY_IMPORTED, "Podcast already imported", podcast_id=existing.id
            )

        logger.info(f"Importing feed {feed_url} for {owner_id}")
        data = self.fetcher.fetch(feed_url)
        channel, items = self.feed_parser.parse(data)

        result = self.importer.import_feed(owner_id, feed_url, channel, items)
        logger.info(
            f"Imported '{result.podcast.title}' ({result.podcast.id}) with {result.episode_count} episodes"
        )
        return result

    def sync_podcast(self, podcast_id: str) -> Dict[str, Any]:
        """
        Re-fetch an imported podcast's feed and upsert its episodes.

        Parameters:
            podcast_id (str): Identifier of the podcast to synchronize.

        Returns:
            result (dict): Synchronization outcome containing:
                - podcast_id (str): The podcast identifier.
                - new_episodes (int): Number of episode rows created.
                - updated_episodes (int): Number of existing rows refreshed.
                - episode_count (int): Rows associated with the podcast afterwards.
                - error (str|None): Error message if the sync failed, `None` on success.
        """
        result = {
            "podcast_id": podcast_id,
            "new_episodes": 0,
            "updated_episodes": 0,
            "episode_count": 0,
            "error": None,
        }

        podcast = self.repository.get_podcast(podcast_id)
        if not podcast:
            result["error"] = f"Podcast not found: {podcast_id}"
            return result

        if not podcast.source_feed_url:
            result["error"] = f"Podcast was not imported from a feed: {podcast_id}"
            return result

        logger.info(f"Syncing podcast: {podcast.title}")

        try:
            data = self.fetcher.fetch(podcast.source_feed_url)
            channel, items = self.feed_parser.parse(data)
        except FeedInterchangeError as e:
            logger.error(f"Failed to sync podcast {podcast.title}: [{e.kind.value}] {e.message}")
            self.repository.update_import_record(
                podcast_id,
                sync_status="error",
                last_error=e.message,
                last_synced_at=datetime.now(timezone.utc),
            )
            result["error"] = e.message
            return result

        try:
            synced = self.importer.sync_feed(podcast, channel, items)
        except FeedInterchangeError as e:
            # The importer has already marked the import record
            logger.error(f"Failed to sync podcast {podcast.title}: [{e.kind.value}] {e.message}")
            result["error"] = e.message
            return result

        result["new_episodes"] = synced.created
        result["updated_episodes"] = synced.updated
        result["episode_count"] = synced.episode_count
        return result

    def sync_all_podcasts(self, auto_sync_only: bool = True) -> Dict[str, Any]:
        """
        Synchronize every imported podcast.

        Parameters:
            auto_sync_only (bool): If True, only podcasts whose import record
                has auto-sync enabled.

        Returns:
            overall_result (dict): Aggregated sync results with keys:
                - synced (int): Number of podcasts successfully synced.
                - failed (int): Number of podcasts that failed to sync.
                - new_episodes (int): Total number of new episodes added across all podcasts.
                - results (list): Per-podcast result dictionaries returned by `sync_podcast`.
        """
        records = self.repository.list_import_records(auto_sync_only=auto_sync_only)

        overall_result = {
            "synced": 0,
            "failed": 0,
            "new_episodes": 0,
            "results": [],
        }

        for record in records:
            result = self.sync_podcast(record.podcast_id)
            overall_result["results"].append(result)

            if result["error"]:
                overall_result["failed"] += 1
            else:
                overall_result["synced"] += 1
                overall_result["new_episodes"] += result["new_episodes"]

        logger.info(
            f"Sync complete: {overall_result['synced']} synced, "
            f"{overall_result['failed']} failed, "
            f"{overall_result['new_episodes']} new episodes"
        )

        return overall_result

    def close(self) -> None:
        self.fetcher.close()
