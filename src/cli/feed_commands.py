"""CLI commands for podcast feed interchange.

Provides commands for:
- Importing a podcast from a feed URL
- Re-syncing imported podcasts
- Exporting a podcast as RSS
- Listing podcasts and their import status
"""

import argparse
import logging
import sys

from ..config import Config
from ..db.factory import create_repository_from_config
from ..podcast.errors import FeedInterchangeError
from ..podcast.feed_generator import FeedGenerator
from ..podcast.feed_sync import FeedSyncService

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def import_feed(args, config: Config):
    """
    Import a podcast from the feed URL in args.

    On failure the error kind and message are printed and the process exits
    with status 1. On success the podcast title, ID, slug and episode count
    are printed.

    Parameters:
        args: Parsed CLI arguments; expects `args.url` and `args.owner`.
        config (Config): Application configuration for storage and fetch limits.
    """
    logger.info(f"Importing podcast from: {args.url}")

    repository = create_repository_from_config(config)
    sync_service = None
    try:
        sync_service = FeedSyncService.from_config(repository, config)

        try:
            result = sync_service.import_from_url(args.owner, args.url)
        except FeedInterchangeError as e:
            print(f"Error [{e.kind.value}]: {e.message}")
            if e.podcast_id:
                print(f"  Podcast ID: {e.podcast_id}")
            sys.exit(1)

        print(f"\nImported podcast: {result.podcast.title}")
        print(f"  ID: {result.podcast.id}")
        print(f"  Slug: {result.podcast.slug}")
        print(f"  Episodes: {result.episode_count}")

    finally:
        if sync_service:
            sync_service.close()
        repository.close()


def sync_feeds(args, config: Config):
    """Re-sync one imported podcast, or every podcast with auto-sync enabled."""
    if not args.podcast_id and not args.all:
        print("Error: pass --podcast-id <id> or --all")
        sys.exit(1)

    repository = create_repository_from_config(config)
    sync_service = None
    try:
        sync_service = FeedSyncService.from_config(repository, config)

        if args.podcast_id:
            logger.info(f"Syncing podcast: {args.podcast_id}")
            result = sync_service.sync_podcast(args.podcast_id)

            if result["error"]:
                print(f"Error: {result['error']}")
                sys.exit(1)

            print(f"\nSync complete:")
            print(f"  New episodes: {result['new_episodes']}")
            print(f"  Updated episodes: {result['updated_episodes']}")
            print(f"  Total episodes: {result['episode_count']}")
        else:
            logger.info("Syncing all auto-sync podcasts")
            result = sync_service.sync_all_podcasts(auto_sync_only=True)

            print(f"\nSync complete:")
            print(f"  Podcasts synced: {result['synced']}")
            print(f"  Podcasts failed: {result['failed']}")
            print(f"  New episodes: {result['new_episodes']}")

            for failure in (r for r in result["results"] if r["error"]):
                print(f"  - {failure['podcast_id']}: {failure['error']}")

    finally:
        if sync_service:
            sync_service.close()
        repository.close()


def export_feed(args, config: Config):
    """
    Write the RSS feed of a published podcast to a file or stdout.

    Parameters:
        args: argparse.Namespace with:
            - podcast (str): Podcast ID or slug.
            - output (str | None): Destination file; stdout when omitted.
    """
    repository = create_repository_from_config(config)

    try:
        podcast = repository.get_podcast(args.podcast) or repository.get_podcast_by_slug(args.podcast)
        if not podcast or podcast.status != "published":
            print(f"Error: Podcast not found or not published: {args.podcast}")
            sys.exit(1)

        episodes = repository.list_episodes(podcast.id, status="published")
        xml = FeedGenerator(config.SITE_URL, config.FEED_BASE_URL).generate(podcast, episodes)

        if args.output:
            with open(args.output, "wb") as f:
                f.write(xml)
            logger.info(f"Wrote feed for {podcast.slug} ({len(episodes)} episodes) to {args.output}")
        else:
            print(xml.decode("utf-8"))

    finally:
        repository.close()


def list_podcasts(args, config: Config):
    """
    Prints a table of podcasts to stdout.

    Each row shows the ID, slug, status, episode count and import state
    (sync status of the import record, or "native").

    Parameters:
        args: argparse.Namespace with:
            - owner (str | None): Only podcasts owned by this user.
            - limit (int | None): Maximum number of podcasts to list.
    """
    repository = create_repository_from_config(config)

    try:
        podcasts = repository.list_podcasts(owner_id=args.owner, limit=args.limit)

        if not podcasts:
            print("No podcasts found")
            return

        print(f"\n{'ID':<36}  {'Slug':<30}  {'Status':<10}  {'Episodes':<8}  {'Import'}")
        print("-" * 100)

        for podcast in podcasts:
            record = repository.get_import_record(podcast.id)
            import_state = record.sync_status if record else "native"
            print(
                f"{podcast.id:<36}  "
                f"{podcast.slug[:30]:<30}  "
                f"{podcast.status:<10}  "
                f"{repository.count_episodes(podcast.id):<8}  "
                f"{import_state}"
            )

    finally:
        repository.close()


def create_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all feed commands."""
    parser = argparse.ArgumentParser(
        description="Podcast feed import and export",
    )
    parser.add_argument(
        "--env-file",
        help="Path to a .env file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # import command
    import_parser = subparsers.add_parser(
        "import",
        help="Import a podcast from an RSS feed URL",
    )
    import_parser.add_argument("url", help="RSS feed URL (https)")
    import_parser.add_argument(
        "--owner",
        required=True,
        help="User ID that will own the imported podcast",
    )

    # sync command
    sync_parser = subparsers.add_parser(
        "sync",
        help="Re-sync imported podcasts with their source feeds",
    )
    sync_parser.add_argument(
        "--podcast-id",
        help="Sync a specific podcast",
    )
    sync_parser.add_argument(
        "--all",
        action="store_true",
        help="Sync every imported podcast with auto-sync enabled",
    )

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Export a published podcast as RSS",
    )
    export_parser.add_argument("podcast", help="Podcast ID or slug")
    export_parser.add_argument(
        "--output", "-o",
        help="Write the feed to this file instead of stdout",
    )

    # list command
    list_parser = subparsers.add_parser(
        "list",
        help="List podcasts",
    )
    list_parser.add_argument(
        "--owner",
        help="Only podcasts owned by this user",
    )
    list_parser.add_argument(
        "--limit",
        type=int,
        help="Maximum number of podcasts to list",
    )

    return parser


def main():
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Load configuration
    config = Config(env_file=args.env_file)

    # Route to appropriate command
    commands = {
        "import": import_feed,
        "sync": sync_feeds,
        "export": export_feed,
        "list": list_podcasts,
    }

    command_func = commands.get(args.command)
    if command_func:
        command_func(args, config)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
