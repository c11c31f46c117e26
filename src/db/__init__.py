"""Database module for podcast data persistence.

Provides:
- SQLAlchemy ORM models (Podcast, Episode, ImportRecord)
- Repository interface and implementation
- Factory functions for creating repositories
"""

from .factory import create_repository, create_repository_from_config
from .models import Base, Episode, ImportRecord, Podcast
from .repository import PodcastRepositoryInterface, SQLAlchemyPodcastRepository

__all__ = [
    "Base",
    "Podcast",
    "Episode",
    "ImportRecord",
    "PodcastRepositoryInterface",
    "SQLAlchemyPodcastRepository",
    "create_repository",
    "create_repository_from_config",
]
