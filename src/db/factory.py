"""Builds repositories from a database URL or from application config.

SQLite is the local default; any other SQLAlchemy URL (PostgreSQL in
production) gets a pooled engine.
"""

import logging
import os
from typing import Optional

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from .repository import PodcastRepositoryInterface, SQLAlchemyPodcastRepository

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./podcast_feeds.db"


def describe_database_url(database_url: str) -> str:
    """Render a database URL for log output with any password masked."""
    try:
        return make_url(database_url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<unparseable database URL>"


def create_repository(
    database_url: Optional[str] = None,
    pool_size: int = 5,
    max_overflow: int = 10,
    echo: bool = False,
    create_tables: bool = False,
) -> PodcastRepositoryInterface:
    """
    Open a repository for ``database_url``.

    Parameters:
        database_url (Optional[str]): SQLAlchemy URL; falls back to the
            DATABASE_URL environment variable, then to a local SQLite file.
        pool_size (int): Pool size for server databases; ignored for SQLite.
        max_overflow (int): Extra connections beyond the pool; ignored for SQLite.
        echo (bool): Log every SQL statement.
        create_tables (bool): Create missing tables instead of relying on Alembic.

    Returns:
        PodcastRepositoryInterface: The opened repository.
    """
    database_url = database_url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    logger.info(f"Opening repository at {describe_database_url(database_url)}")

    return SQLAlchemyPodcastRepository(
        database_url=database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        echo=echo,
        create_tables=create_tables,
    )


def create_repository_from_config(config) -> PodcastRepositoryInterface:
    """Open a repository using the database settings of a Config object."""
    return create_repository(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW,
        echo=config.DB_ECHO,
        create_tables=config.DB_CREATE_TABLES,
    )
