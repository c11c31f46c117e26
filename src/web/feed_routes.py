"""API routes for feed interchange: importing external feeds and exporting ours.

Provides endpoints for:
- Importing a podcast from an RSS feed URL
- Re-syncing a previously imported podcast
- Serving the public RSS feed of a published podcast
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.podcast.errors import ErrorKind, FeedInterchangeError
from src.web.auth import get_current_user
from src.web.models import EpisodeOut, ImportRequest, ImportResponse, PodcastOut, SyncResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["feeds"])

limiter = Limiter(key_func=get_remote_address)

RSS_MEDIA_TYPE = "application/rss+xml; charset=utf-8"


# Set from Config.WEB_RATE_LIMIT by create_app; slowapi reads it per request
_import_limit = "10/minute"


def set_import_rate_limit(limit: str) -> None:
    """Set the per-client limit on POST /import, e.g. "10/minute"."""
    global _import_limit
    _import_limit = limit


def _import_rate_limit() -> str:
    return _import_limit


def _error_response(error: FeedInterchangeError) -> JSONResponse:
    """Render a FeedInterchangeError as a JSON error body."""
    status_code = 400 if error.is_client_error else 500
    content = {"error": error.message, "kind": error.kind.value}
    # The podcast exists; the client should retry via sync, not re-import
    if error.kind == ErrorKind.STORAGE_ERROR and error.podcast_id:
        content["podcastId"] = error.podcast_id
    return JSONResponse(status_code=status_code, content=content)


def _find_published_podcast(repository, identifier: str):
    """Look up a podcast by id, then by slug; only published podcasts are public."""
    podcast = repository.get_podcast(identifier)
    if podcast is None:
        podcast = repository.get_podcast_by_slug(identifier)
    if podcast is None or podcast.status != "published":
        return None
    return podcast


@router.post("/import", response_model=ImportResponse)
@limiter.limit(_import_rate_limit)
async def import_feed(
    request: Request,
    body: ImportRequest,
    current_user: dict = Depends(get_current_user),
):
    """
    Import a podcast and its episodes from an external RSS feed.

    Args:
        body: Request containing the feed URL
        current_user: Authenticated user from JWT cookie or bearer token

    Returns:
        ImportResponse with the created podcast and its episodes
    """
    sync_service = request.app.state.sync_service
    user_id = current_user["sub"]

    try:
        result = await asyncio.to_thread(sync_service.import_from_url, user_id, body.rss_url)
    except FeedInterchangeError as e:
        logger.warning(f"Import of {body.rss_url} failed: [{e.kind.value}] {e.message}")
        return _error_response(e)

    return ImportResponse(
        podcast=PodcastOut.model_validate(result.podcast),
        episodes=[EpisodeOut.model_validate(episode) for episode in result.episodes],
        episode_count=result.episode_count,
    )


@router.post("/import/{podcast_id}/sync", response_model=SyncResponse)
async def sync_imported_podcast(
    podcast_id: str,
    request: Request,
    current_user: dict = Depends(get_current_user),
):
    """
    Re-fetch the source feed of an imported podcast and upsert new episodes.

    Only the podcast's owner may trigger a sync; anyone else sees 404.
    """
    repository = request.app.state.repository
    sync_service = request.app.state.sync_service

    podcast = await asyncio.to_thread(repository.get_podcast, podcast_id)
    if podcast is None or podcast.owner_id != current_user["sub"]:
        raise HTTPException(status_code=404, detail="Podcast not found")

    result = await asyncio.to_thread(sync_service.sync_podcast, podcast_id)
    return SyncResponse(**result)


async def _export_response(request: Request, identifier: str) -> Response:
    repository = request.app.state.repository
    generator = request.app.state.feed_generator
    config = request.app.state.config

    podcast = await asyncio.to_thread(_find_published_podcast, repository, identifier)
    if podcast is None:
        raise HTTPException(status_code=404, detail="Podcast not found or not published")

    episodes = await asyncio.to_thread(repository.list_episodes, podcast.id, "published")
    xml = generator.generate(podcast, episodes)

    return Response(
        content=xml,
        media_type=RSS_MEDIA_TYPE,
        headers={
            "Cache-Control": f"public, max-age={config.EXPORT_CACHE_MAX_AGE}",
            "X-Robots-Tag": "noindex",
        },
    )


@router.get("/export")
async def export_feed(
    request: Request,
    podcast_id: Optional[str] = Query(default=None, alias="id"),
    slug: Optional[str] = Query(default=None),
):
    """Serve the RSS feed of a published podcast, by ``?id=`` or ``?slug=``."""
    identifier = (podcast_id or slug or "").strip()
    if not identifier:
        raise HTTPException(status_code=400, detail="Missing id or slug parameter")
    return await _export_response(request, identifier)


@router.get("/export/{identifier}")
async def export_feed_by_path(request: Request, identifier: str):
    """Serve the RSS feed of a published podcast addressed by id or slug."""
    return await _export_response(request, identifier)
