"""
FastAPI web application for podcast feed interchange.

Imports external podcast RSS feeds into storage and serves stored podcasts
back out as public RSS feeds.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.config import Config
from src.db.factory import create_repository_from_config
from src.db.repository import PodcastRepositoryInterface
from src.podcast.feed_generator import FeedGenerator
from src.podcast.feed_sync import FeedSyncService
from src.web.feed_routes import limiter, router as feed_router, set_import_rate_limit

# Configure logging
log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def _validate_jwt_config(config: Config) -> None:
    """
    Validate JWT configuration at startup.

    In DEV_MODE, allows running without JWT_SECRET_KEY by using an insecure key.
    In production, requires JWT_SECRET_KEY to be set.
    """
    is_dev_mode = os.getenv("DEV_MODE", "").lower() == "true"
    if not config.JWT_SECRET_KEY:
        if is_dev_mode:
            logger.warning(
                "JWT_SECRET_KEY not set - using insecure dev key. "
                "DO NOT use in production!"
            )
            config.JWT_SECRET_KEY = "dev-secret-key-insecure-do-not-use-in-prod"
        else:
            raise RuntimeError(
                "JWT_SECRET_KEY environment variable must be set. "
                "Set DEV_MODE=true to use an insecure dev key for local testing."
            )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors as ``{"error": ...}`` bodies."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies and parameters as 400 errors."""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query"))
        message = f"Invalid request: {location}: {first.get('msg')}" if location else f"Invalid request: {first.get('msg')}"
    return JSONResponse(status_code=400, content={"error": message})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    config: Optional[Config] = None,
    repository: Optional[PodcastRepositoryInterface] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Application configuration; loaded from the environment if omitted.
        repository: Storage backend; created from ``config`` if omitted, in which
            case the app also closes it on shutdown.

    Returns:
        FastAPI: The configured application.
    """
    config = config or Config()
    _validate_jwt_config(config)

    owns_repository = repository is None
    if repository is None:
        repository = create_repository_from_config(config)

    sync_service = FeedSyncService.from_config(repository, config)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        """
        FastAPI lifespan context manager.

        Handles startup logging and cleanup.
        """
        logger.info("Application started")

        yield

        sync_service.close()
        if owns_repository:
            repository.close()
        logger.info("Application shutdown")

    app = FastAPI(
        title="Podcast Feed Interchange",
        description="Import external podcast RSS feeds and export stored podcasts as RSS",
        version="1.0.0",
        lifespan=lifespan
    )

    # Add rate limiter to app state
    app.state.limiter = limiter
    set_import_rate_limit(config.WEB_RATE_LIMIT)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # CORS middleware (configurable via environment variable)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Store shared services in app state for access in routes
    app.state.config = config
    app.state.repository = repository
    app.state.sync_service = sync_service
    app.state.feed_generator = FeedGenerator(config.SITE_URL, config.FEED_BASE_URL)

    app.include_router(feed_router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "service": "podcast-feed-interchange"}

    return app


def main():
    """Run the web application with uvicorn."""
    import uvicorn

    config = Config()
    uvicorn.run(create_app(config), host="0.0.0.0", port=config.WEB_PORT)


if __name__ == "__main__":
    main()
