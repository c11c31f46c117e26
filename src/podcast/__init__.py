"""Podcast feed interchange module.

Provides functionality for:
- Bounded feed fetching
- RSS feed parsing
- Importing feeds into storage
- RSS feed generation
- Feed synchronization
"""

from .errors import ErrorKind, FeedInterchangeError
from .fetcher import FeedFetcher
from .feed_parser import FeedParser, ParsedChannel, ParsedItem
from .importer import FeedImporter, ImportResult, slugify
from .feed_generator import FeedGenerator
from .feed_sync import FeedSyncService

__all__ = [
    "ErrorKind",
    "FeedInterchangeError",
    "FeedFetcher",
    "FeedParser",
    "ParsedChannel",
    "ParsedItem",
    "FeedImporter",
    "ImportResult",
    "slugify",
    "FeedGenerator",
    "FeedSyncService",
]
