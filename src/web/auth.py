"""
Session verification for the import endpoints.

Sessions are JWTs issued by the identity provider that fronts this service;
the ``sub`` claim is the user id that owns imported podcasts. The token is
read from an ``Authorization: Bearer`` header or the session cookie.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from fastapi import Cookie, Header, HTTPException, Request
from jose import JWTError, jwt

from src.config import Config

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "podcast_feeds_session"


def _signing_settings(config: Config) -> Tuple[str, str]:
    """Return (secret, algorithm), refusing unsigned or unkeyed tokens."""
    if not config.JWT_SECRET_KEY:
        raise ValueError("JWT_SECRET_KEY must be configured")
    if config.JWT_ALGORITHM.lower() == "none":
        raise ValueError("JWT algorithm 'none' is not allowed")
    return config.JWT_SECRET_KEY, config.JWT_ALGORITHM


def create_access_token(user_data: dict, config: Config) -> str:
    """
    Sign a session token for ``user_data``.

    Used by local tooling and tests; production tokens come from the
    identity provider with the same secret and claims.

    Raises:
        ValueError: If JWT_SECRET_KEY is not configured or the algorithm is "none".
    """
    secret, algorithm = _signing_settings(config)
    issued_at = datetime.now(timezone.utc)
    claims = {
        **user_data,
        "iat": issued_at,
        "exp": issued_at + timedelta(days=config.JWT_EXPIRATION_DAYS),
    }
    return jwt.encode(claims, secret, algorithm=algorithm)


def verify_token(token: str, config: Config) -> Optional[dict]:
    """Return the payload of a valid token, or None."""
    try:
        secret, algorithm = _signing_settings(config)
        return jwt.decode(token, secret, algorithms=[algorithm])
    except (JWTError, ValueError) as e:
        logger.warning(f"JWT verification failed: {e}")
        return None


def _extract_token(cookie_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    return cookie_token or None


async def get_current_user(
    request: Request,
    podcast_feeds_session: Optional[str] = Cookie(default=None),
    authorization: Optional[str] = Header(default=None),
) -> dict:
    """
    FastAPI dependency resolving the authenticated user.

    Returns:
        dict: The verified JWT payload; ``payload["sub"]`` is the user id.

    Raises:
        HTTPException: 401 when no token is supplied, or it is invalid,
            expired, or lacks a string subject.
    """
    token = _extract_token(podcast_feeds_session, authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")

    user_data = verify_token(token, request.app.state.config)
    if not user_data or not isinstance(user_data.get("sub"), str) or not user_data["sub"]:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    return user_data
