"""Error taxonomy for feed import and export."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Categories of feed interchange failures."""

    INVALID_SCHEME = "InvalidScheme"
    FORBIDDEN_HOST = "ForbiddenHost"
    TIMEOUT = "Timeout"
    PAYLOAD_TOO_LARGE = "PayloadTooLarge"
    FETCH_FAILED = "FetchFailed"
    INVALID_FEED = "InvalidFeed"
    ALREADY_IMPORTED = "AlreadyImported"
    STORAGE_ERROR = "StorageError"


# Kinds caused by the URL the caller supplied rather than by the feed or storage
CLIENT_ERROR_KINDS = frozenset(
    {ErrorKind.INVALID_SCHEME, ErrorKind.FORBIDDEN_HOST, ErrorKind.ALREADY_IMPORTED}
)


class FeedInterchangeError(Exception):
    """Raised when a feed cannot be fetched, parsed, or stored.

    Attributes:
        kind: The ErrorKind describing the failure.
        message: Human-readable description.
        podcast_id: Set for StorageError raised after the podcast row was
            committed, so callers can retry through the sync path instead of
            a fresh import.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        podcast_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.podcast_id = podcast_id

    @property
    def is_client_error(self) -> bool:
        return self.kind in CLIENT_ERROR_KINDS

    def __repr__(self) -> str:
        return f"<FeedInterchangeError(kind={self.kind.value}, message={self.message!r})>"
