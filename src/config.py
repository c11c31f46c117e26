import os

from dotenv import load_dotenv


def _url_setting(name, default=""):
    """Read a base-URL setting; it must be empty or start with http(s)://."""
    value = os.getenv(name, default)
    if value and not value.lower().startswith(("http://", "https://")):
        raise ValueError(f"{name} must start with http:// or https://, got: {value}")
    return value.rstrip("/") if value else ""


def _bool_setting(name, default):
    return os.getenv(name, default).lower() == "true"


class Config:
    def __init__(self, env_file=None):
        """
        Initialize configuration by loading environment variables and setting default attributes.

        Loads environment variables from the provided .env file path when `env_file` is given; otherwise loads from the default environment. After loading, sets configuration attributes (database connection, feed fetching limits, import batching, public URLs, web app and JWT settings) using environment values with sensible defaults.
        Parameters:
            env_file (str | None): Optional path to a .env file to load environment variables from. If omitted, the default environment or default .env discovery is used.

        Raises:
            ValueError: If a URL setting does not use http:// or https://.
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

        # Database configuration
        self.DATABASE_URL = os.getenv(
            "DATABASE_URL", "sqlite:///./podcast_feeds.db"
        )
        self.DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
        self.DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))
        self.DB_ECHO = _bool_setting("DB_ECHO", "false")
        # Alembic owns the schema in production; create_all is for local runs
        self.DB_CREATE_TABLES = _bool_setting("DB_CREATE_TABLES", "true")

        # Feed fetching limits
        self.FEED_FETCH_TIMEOUT = float(os.getenv("FEED_FETCH_TIMEOUT", "8"))
        self.FEED_MAX_BYTES = int(os.getenv("FEED_MAX_BYTES", "5000000"))
        self.FEED_RESOLVE_DNS = _bool_setting("FEED_RESOLVE_DNS", "false")
        self.FEED_USER_AGENT = os.getenv("FEED_USER_AGENT", "PodcastFeedInterchange/1.0")
        if self.FEED_FETCH_TIMEOUT <= 0:
            raise ValueError(
                f"FEED_FETCH_TIMEOUT must be positive, got {self.FEED_FETCH_TIMEOUT}"
            )
        if self.FEED_MAX_BYTES <= 0:
            raise ValueError(f"FEED_MAX_BYTES must be positive, got {self.FEED_MAX_BYTES}")

        # Episodes written per transaction during import
        self.IMPORT_BATCH_SIZE = int(os.getenv("IMPORT_BATCH_SIZE", "100"))
        if self.IMPORT_BATCH_SIZE < 1:
            raise ValueError(
                f"IMPORT_BATCH_SIZE must be at least 1, got {self.IMPORT_BATCH_SIZE}"
            )

        # Public URLs: podcast pages live under SITE_URL, feeds under FEED_BASE_URL
        self.SITE_URL = _url_setting("SITE_URL", "http://localhost:8080")
        self.FEED_BASE_URL = _url_setting("FEED_BASE_URL") or self.SITE_URL

        # Web application configuration
        self.WEB_ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*")
        self.WEB_RATE_LIMIT = os.getenv("RATE_LIMIT", "10/minute")
        self.WEB_PORT = int(os.getenv("PORT", "8080"))
        self.EXPORT_CACHE_MAX_AGE = int(os.getenv("EXPORT_CACHE_MAX_AGE", "300"))

        # JWT configuration
        self.JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRATION_DAYS = int(os.getenv("JWT_EXPIRATION_DAYS", "7"))

    @property
    def allowed_origins(self):
        """CORS origins as a list; "*" allows any origin."""
        return [origin.strip() for origin in self.WEB_ALLOWED_ORIGINS.split(",") if origin.strip()]
