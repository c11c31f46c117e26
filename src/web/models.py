"""
Pydantic models for web API request/response validation.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ImportRequest(BaseModel):
    """Request model for importing a podcast from its RSS feed."""
    model_config = ConfigDict(populate_by_name=True)

    rss_url: str = Field(
        ...,
        alias="rssUrl",
        min_length=1,
        max_length=2048,
        description="HTTPS URL of the podcast RSS feed",
    )

    @field_validator("rss_url")
    @classmethod
    def strip_url(cls, v: str) -> str:
        """Strip surrounding whitespace; reject whitespace-only URLs."""
        v = v.strip()
        if not v:
            raise ValueError("rssUrl must not be blank")
        return v


class PodcastOut(BaseModel):
    """Podcast as returned by the API."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    slug: str
    owner_id: str
    title: str
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    website_url: Optional[str] = None
    language: str = "en"
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    category: Optional[str] = None
    is_explicit: bool = False
    status: str
    source_feed_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EpisodeOut(BaseModel):
    """Episode as returned by the API."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    podcast_id: str
    external_guid: Optional[str] = None
    title: str
    description: Optional[str] = None
    show_notes: Optional[str] = None
    link: Optional[str] = None
    publish_date: Optional[datetime] = None
    duration_seconds: int = 0
    episode_number: Optional[int] = None
    season_number: Optional[int] = None
    episode_type: str = "full"
    audio_url: Optional[str] = None
    enclosure_type: str = "audio/mpeg"
    file_size_bytes: int = 0
    is_explicit: bool = False
    status: str
    source: str


class ImportResponse(BaseModel):
    """Response model for a successful feed import."""
    model_config = ConfigDict(populate_by_name=True)

    podcast: PodcastOut
    episodes: List[EpisodeOut] = Field(default_factory=list)
    episode_count: int = Field(default=0, alias="episodeCount")


class SyncResponse(BaseModel):
    """Response model for a re-sync of an imported podcast."""
    podcast_id: str
    new_episodes: int = 0
    updated_episodes: int = 0
    episode_count: int = 0
    error: Optional[str] = None
