"""SQLAlchemy ORM models for podcasts, episodes and feed import state."""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Podcast(Base):
    """Podcast show model.

    Created by a feed import (``source_feed_url`` set) or natively by its
    owner (``source_feed_url`` is NULL).
    """

    __tablename__ = "podcasts"

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)

    # Public identifier used in page and feed URLs
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Show metadata
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    cover_image_url: Mapped[Optional[str]] = mapped_column(String(2048))
    website_url: Mapped[Optional[str]] = mapped_column(String(2048))
    language: Mapped[str] = mapped_column(String(32), default="en")
    author_name: Mapped[Optional[str]] = mapped_column(String(512))
    author_email: Mapped[Optional[str]] = mapped_column(String(320))
    category: Mapped[Optional[str]] = mapped_column(String(256))
    is_explicit: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(16), default="draft")  # draft, published

    # NULL for natively created podcasts; a feed may be imported at most once
    source_feed_url: Mapped[Optional[str]] = mapped_column(String(2048), unique=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    # Relationships
    episodes: Mapped[List["Episode"]] = relationship(
        "Episode", back_populates="podcast", cascade="all, delete-orphan"
    )
    import_record: Mapped[Optional["ImportRecord"]] = relationship(
        "ImportRecord", back_populates="podcast", cascade="all, delete-orphan", uselist=False
    )

    __table_args__ = (
        Index("ix_podcasts_owner_id", "owner_id"),
    )

    def __repr__(self) -> str:
        return f"<Podcast(id={self.id}, slug={self.slug!r})>"


class Episode(Base):
    """Episode model.

    Imported episodes carry the source feed's GUID (or enclosure URL) in
    ``external_guid``; native episodes leave it NULL and are never touched by
    re-import.
    """

    __tablename__ = "episodes"

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    podcast_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("podcasts.id", ondelete="CASCADE"), nullable=False
    )

    # Dedup key within a podcast; NULL for native episodes
    external_guid: Mapped[Optional[str]] = mapped_column(String(2048))

    # Metadata
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    show_notes: Mapped[Optional[str]] = mapped_column(Text)  # HTML, from content:encoded
    link: Mapped[Optional[str]] = mapped_column(String(2048))
    publish_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0)

    # Numbering
    episode_number: Mapped[Optional[int]] = mapped_column(Integer)
    season_number: Mapped[Optional[int]] = mapped_column(Integer)
    episode_type: Mapped[str] = mapped_column(String(16), default="full")  # full, trailer, bonus

    # Audio payload
    audio_url: Mapped[Optional[str]] = mapped_column(String(2048))
    enclosure_type: Mapped[str] = mapped_column(String(64), default="audio/mpeg")
    file_size_bytes: Mapped[int] = mapped_column(BigInteger, default=0)

    is_explicit: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(16), default="published")  # published, draft
    source: Mapped[str] = mapped_column(String(16), default="native")  # rss, native

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    # Relationships
    podcast: Mapped["Podcast"] = relationship("Podcast", back_populates="episodes")

    # NULLs never collide in a unique constraint, so native episodes are unaffected
    __table_args__ = (
        UniqueConstraint("podcast_id", "external_guid", name="uq_episode_podcast_guid"),
        Index("ix_episodes_podcast_id", "podcast_id"),
        Index("ix_episodes_publish_date", "publish_date"),
    )

    def __repr__(self) -> str:
        return f"<Episode(id={self.id}, title={self.title!r})>"


class ImportRecord(Base):
    """Sync state for a podcast imported from an external feed."""

    __tablename__ = "import_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    podcast_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("podcasts.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    feed_url: Mapped[str] = mapped_column(String(2048), nullable=False)

    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    sync_status: Mapped[str] = mapped_column(String(16), default="success")  # success, error
    last_error: Mapped[Optional[str]] = mapped_column(Text)
    episodes_imported: Mapped[int] = mapped_column(Integer, default=0)
    auto_sync: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    podcast: Mapped["Podcast"] = relationship("Podcast", back_populates="import_record")

    def __repr__(self) -> str:
        return f"<ImportRecord(podcast_id={self.podcast_id}, status={self.sync_status!r})>"
