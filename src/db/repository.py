"""Repository pattern implementation for podcast data persistence.

Provides an abstract interface and SQLAlchemy implementation for database operations.
Supports both SQLite (local development) and PostgreSQL (production).
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker

from .models import Base, Episode, ImportRecord, Podcast

logger = logging.getLogger(__name__)

# Episode fields a re-import may refresh; publish date, numbering and GUID are fixed once set
MUTABLE_EPISODE_FIELDS = ("title", "description", "audio_url")


class PodcastRepositoryInterface(ABC):
    """Abstract interface for podcast data persistence.

    Implementations must support both SQLite and PostgreSQL backends.
    """

    # --- Podcast Operations ---

    @abstractmethod
    def create_podcast(self, owner_id: str, slug: str, title: str, **kwargs) -> Podcast:
        """
        Create and persist a natively-owned podcast (no source feed).

        Parameters:
            owner_id (str): Identity of the owning user.
            slug (str): Unique URL-safe identifier.
            title (str): Display title.
            **kwargs: Additional Podcast attributes.

        Returns:
            Podcast: The persisted Podcast.
        """
        pass

    @abstractmethod
    def create_imported_podcast(
        self, owner_id: str, slug: str, title: str, feed_url: str, **kwargs
    ) -> Podcast:
        """
        Create a podcast and its ImportRecord in a single transaction.

        Either both rows are written or neither is. Unique violations on
        ``slug`` or ``source_feed_url`` surface as ``IntegrityError``.

        Returns:
            Podcast: The persisted Podcast.
        """
        pass

    @abstractmethod
    def get_podcast(self, podcast_id: str) -> Optional[Podcast]:
        """Retrieve a podcast by primary key, or `None`."""
        pass

    @abstractmethod
    def get_podcast_by_slug(self, slug: str) -> Optional[Podcast]:
        """Retrieve a podcast by slug, or `None`."""
        pass

    @abstractmethod
    def get_podcast_by_source_url(self, feed_url: str) -> Optional[Podcast]:
        """Retrieve the podcast imported from ``feed_url``, or `None`."""
        pass

    @abstractmethod
    def slug_exists(self, slug: str) -> bool:
        """Return `True` if any podcast already uses ``slug``."""
        pass

    @abstractmethod
    def list_podcasts(
        self, owner_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Podcast]:
        """
        Return podcasts ordered by title, optionally restricted to one owner.

        Parameters:
            owner_id (Optional[str]): Only podcasts owned by this identity.
            limit (Optional[int]): Maximum number of podcasts to return.
        """
        pass

    @abstractmethod
    def update_podcast(self, podcast_id: str, **kwargs) -> Optional[Podcast]:
        """
        Update attributes of an existing podcast.

        Returns:
            Optional[Podcast]: The updated Podcast, or `None` if it does not exist.
        """
        pass

    # --- Episode Operations ---

    @abstractmethod
    def create_episode(self, podcast_id: str, title: str, **kwargs) -> Episode:
        """Create and persist a single episode."""
        pass

    @abstractmethod
    def get_episode_by_guid(self, podcast_id: str, external_guid: str) -> Optional[Episode]:
        """Retrieve an episode by its source-feed GUID within a podcast."""
        pass

    @abstractmethod
    def list_episodes(
        self,
        podcast_id: str,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Episode]:
        """
        List a podcast's episodes ordered by publish date, newest first.

        Parameters:
            podcast_id (str): Owning podcast.
            status (Optional[str]): Filter by episode status (e.g. "published").
            limit (Optional[int]): Maximum number of episodes to return.
            offset (int): Number of episodes to skip.
        """
        pass

    @abstractmethod
    def count_episodes(self, podcast_id: str) -> int:
        """Count all episode rows currently associated with a podcast."""
        pass

    @abstractmethod
    def upsert_episodes(
        self, podcast_id: str, episodes: Sequence[Dict[str, Any]]
    ) -> Tuple[int, int]:
        """
        Insert or update a batch of imported episodes in one transaction.

        Each dict must carry ``external_guid``. Rows whose GUID already exists
        for the podcast only have their mutable fields (title, description,
        audio URL) refreshed; duplicates within the batch collapse to one row.

        Returns:
            tuple[int, int]: (created, updated) counts.
        """
        pass

    # --- Import Record Operations ---

    @abstractmethod
    def get_import_record(self, podcast_id: str) -> Optional[ImportRecord]:
        """Retrieve the import record of a podcast, or `None`."""
        pass

    @abstractmethod
    def update_import_record(self, podcast_id: str, **kwargs) -> Optional[ImportRecord]:
        """Update fields of a podcast's import record."""
        pass

    @abstractmethod
    def list_import_records(self, auto_sync_only: bool = False) -> List[ImportRecord]:
        """List import records, optionally only those flagged for auto-sync."""
        pass

    # --- Connection Management ---

    @abstractmethod
    def close(self) -> None:
        """Dispose the underlying engine and release pooled connections."""
        pass


class SQLAlchemyPodcastRepository(PodcastRepositoryInterface):
    """SQLAlchemy-based implementation of the podcast repository.

    Supports SQLite for local development and PostgreSQL for production.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
        create_tables: bool = False,
    ):
        """
        Initialize the repository and configure its SQLAlchemy engine and session factory.

        Parameters:
            database_url (str): SQLAlchemy-compatible database URL.
            pool_size (int): Connection pool size for non-SQLite databases.
            max_overflow (int): Maximum overflow connections for non-SQLite databases.
            echo (bool): If true, enable SQLAlchemy SQL statement logging.
            create_tables (bool): Create missing tables (tests and local development;
                production schemas are managed by Alembic).
        """
        self.database_url = database_url

        # SQLite doesn't support connection pooling
        if database_url.startswith("sqlite"):
            self.engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
            )
        else:
            self.engine = create_engine(
                database_url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,
                echo=echo,
            )

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        if create_tables:
            Base.metadata.create_all(self.engine)

        logger.info(f"Database initialized: {database_url.split('@')[-1] if '@' in database_url else database_url}")

    def _get_session(self) -> Session:
        """Obtain a new session from the repository's session factory."""
        return self.SessionLocal()

    # --- Podcast Operations ---

    def create_podcast(self, owner_id: str, slug: str, title: str, **kwargs) -> Podcast:
        with self._get_session() as session:
            podcast = Podcast(owner_id=owner_id, slug=slug, title=title, **kwargs)
            session.add(podcast)
            session.commit()
            session.refresh(podcast)
            logger.info(f"Created podcast: {title} ({podcast.id})")
            return podcast

    def create_imported_podcast(
        self, owner_id: str, slug: str, title: str, feed_url: str, **kwargs
    ) -> Podcast:
        with self._get_session() as session:
            podcast = Podcast(
                owner_id=owner_id,
                slug=slug,
                title=title,
                source_feed_url=feed_url,
                **kwargs,
            )
            session.add(podcast)
            # Flush to assign the podcast id before the record references it
            session.flush()
            session.add(
                ImportRecord(
                    podcast_id=podcast.id,
                    feed_url=feed_url,
                    sync_status="success",
                    episodes_imported=0,
                )
            )
            session.commit()
            session.refresh(podcast)
            logger.info(f"Created imported podcast: {title} ({podcast.id}, slug={slug})")
            return podcast

    def get_podcast(self, podcast_id: str) -> Optional[Podcast]:
        with self._get_session() as session:
            return session.get(Podcast, podcast_id)

    def get_podcast_by_slug(self, slug: str) -> Optional[Podcast]:
        with self._get_session() as session:
            return session.scalar(select(Podcast).where(Podcast.slug == slug))

    def get_podcast_by_source_url(self, feed_url: str) -> Optional[Podcast]:
        with self._get_session() as session:
            return session.scalar(select(Podcast).where(Podcast.source_feed_url == feed_url))

    def slug_exists(self, slug: str) -> bool:
        with self._get_session() as session:
            stmt = select(func.count()).select_from(Podcast).where(Podcast.slug == slug)
            return (session.scalar(stmt) or 0) > 0

    def list_podcasts(
        self, owner_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Podcast]:
        with self._get_session() as session:
            stmt = select(Podcast)
            if owner_id:
                stmt = stmt.where(Podcast.owner_id == owner_id)
            stmt = stmt.order_by(Podcast.title)
            if limit:
                stmt = stmt.limit(limit)
            return list(session.scalars(stmt).all())

    def update_podcast(self, podcast_id: str, **kwargs) -> Optional[Podcast]:
        """
        Update attributes of an existing podcast.

        Only attributes that exist on the Podcast model are set from `kwargs`.
        """
        with self._get_session() as session:
            podcast = session.get(Podcast, podcast_id)
            if podcast:
                for key, value in kwargs.items():
                    if hasattr(podcast, key):
                        setattr(podcast, key, value)
                podcast.updated_at = datetime.now(timezone.utc)
                session.commit()
                session.refresh(podcast)
                logger.debug(f"Updated podcast {podcast_id}: {list(kwargs.keys())}")
            return podcast

    # --- Episode Operations ---

    def create_episode(self, podcast_id: str, title: str, **kwargs) -> Episode:
        with self._get_session() as session:
            episode = Episode(podcast_id=podcast_id, title=title, **kwargs)
            session.add(episode)
            session.commit()
            session.refresh(episode)
            logger.debug(f"Created episode: {title} ({episode.id})")
            return episode

    def get_episode_by_guid(self, podcast_id: str, external_guid: str) -> Optional[Episode]:
        with self._get_session() as session:
            stmt = select(Episode).where(
                Episode.podcast_id == podcast_id, Episode.external_guid == external_guid
            )
            return session.scalar(stmt)

    def list_episodes(
        self,
        podcast_id: str,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Episode]:
        with self._get_session() as session:
            stmt = select(Episode).where(Episode.podcast_id == podcast_id)
            if status:
                stmt = stmt.where(Episode.status == status)

            stmt = stmt.order_by(
                Episode.publish_date.desc().nulls_last(),
                Episode.created_at.desc(),
                Episode.id,
            )
            stmt = stmt.offset(offset)
            if limit:
                stmt = stmt.limit(limit)

            return list(session.scalars(stmt).all())

    def count_episodes(self, podcast_id: str) -> int:
        with self._get_session() as session:
            stmt = select(func.count()).select_from(Episode).where(Episode.podcast_id == podcast_id)
            return session.scalar(stmt) or 0

    def upsert_episodes(
        self, podcast_id: str, episodes: Sequence[Dict[str, Any]]
    ) -> Tuple[int, int]:
        if not episodes:
            return 0, 0

        guids = sorted({data["external_guid"] for data in episodes})
        created = 0
        updated = 0

        with self._get_session() as session:
            stmt = select(Episode).where(
                Episode.podcast_id == podcast_id, Episode.external_guid.in_(guids)
            )
            existing = {episode.external_guid: episode for episode in session.scalars(stmt)}

            for data in episodes:
                episode = existing.get(data["external_guid"])
                if episode is None:
                    episode = Episode(podcast_id=podcast_id, **data)
                    session.add(episode)
                    existing[episode.external_guid] = episode
                    created += 1
                    continue

                changed = False
                for key in MUTABLE_EPISODE_FIELDS:
                    if key in data and getattr(episode, key) != data[key]:
                        setattr(episode, key, data[key])
                        changed = True
                if changed:
                    updated += 1

            session.commit()

        logger.debug(f"Upserted {len(episodes)} episodes for {podcast_id}: {created} created, {updated} updated")
        return created, updated

    # --- Import Record Operations ---

    def get_import_record(self, podcast_id: str) -> Optional[ImportRecord]:
        with self._get_session() as session:
            return session.scalar(
                select(ImportRecord).where(ImportRecord.podcast_id == podcast_id)
            )

    def update_import_record(self, podcast_id: str, **kwargs) -> Optional[ImportRecord]:
        with self._get_session() as session:
            record = session.scalar(
                select(ImportRecord).where(ImportRecord.podcast_id == podcast_id)
            )
            if record:
                for key, value in kwargs.items():
                    if hasattr(record, key):
                        setattr(record, key, value)
                record.updated_at = datetime.now(timezone.utc)
                session.commit()
                session.refresh(record)
            return record

    def list_import_records(self, auto_sync_only: bool = False) -> List[ImportRecord]:
        with self._get_session() as session:
            stmt = select(ImportRecord)
            if auto_sync_only:
                stmt = stmt.where(ImportRecord.auto_sync.is_(True))
            stmt = stmt.order_by(ImportRecord.created_at)
            return list(session.scalars(stmt).all())

    # --- Connection Management ---

    def close(self) -> None:
        """
        Dispose the SQLAlchemy engine and release database connections and resources.
        """
        self.engine.dispose()
