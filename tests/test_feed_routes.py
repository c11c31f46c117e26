"""Tests for feed import and export routes."""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from src.config import Config
from src.podcast.errors import ErrorKind, FeedInterchangeError
from src.podcast.feed_sync import FeedSyncService
from src.podcast.fetcher import FeedFetcher
from src.web.app import create_app
from src.web.auth import SESSION_COOKIE_NAME, create_access_token
from src.web.feed_routes import limiter, set_import_rate_limit
from src.web.models import ImportRequest

FEED_URL = "https://feeds.myshow.example.com/rss"


class TestImportRequest:
    """Tests for ImportRequest model."""

    def test_alias_and_field_name(self):
        assert ImportRequest(rssUrl=FEED_URL).rss_url == FEED_URL
        assert ImportRequest(rss_url=FEED_URL).rss_url == FEED_URL

    def test_url_is_stripped(self):
        assert ImportRequest(rssUrl=f"  {FEED_URL}\n").rss_url == FEED_URL

    @pytest.mark.parametrize("value", ["", "   "])
    def test_blank_url_fails(self, value):
        with pytest.raises(ValidationError):
            ImportRequest(rssUrl=value)

    def test_url_too_long_fails(self):
        with pytest.raises(ValidationError):
            ImportRequest(rssUrl="https://example.com/" + "a" * 2050)

    def test_missing_url_fails(self):
        with pytest.raises(ValidationError):
            ImportRequest()


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def mock_fetcher(sample_feed):
    fetcher = Mock(spec=FeedFetcher)
    fetcher.validate_url.side_effect = lambda url: url.strip()
    fetcher.fetch.return_value = sample_feed
    return fetcher


@pytest.fixture
def app(config, repository, mock_fetcher):
    """Create the application over a temporary database and a fake network."""
    app = create_app(config, repository)
    app.state.sync_service = FeedSyncService(repository, fetcher=mock_fetcher)
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers(config):
    token = create_access_token({"sub": "user-1", "email": "jane@example.com"}, config)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_user_headers(config):
    token = create_access_token({"sub": "user-2"}, config)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def imported(client, auth_headers):
    """Import the sample feed as user-1 and return the response body."""
    response = client.post("/import", json={"rssUrl": FEED_URL}, headers=auth_headers)
    assert response.status_code == 200
    return response.json()


class TestImportEndpoint:
    """Tests for POST /import."""

    def test_requires_authentication(self, client):
        response = client.post("/import", json={"rssUrl": FEED_URL})

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_rejects_invalid_token(self, client):
        response = client.post(
            "/import", json={"rssUrl": FEED_URL}, headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid or expired session"}

    def test_accepts_session_cookie(self, client, config):
        token = create_access_token({"sub": "user-1"}, config)
        client.cookies.set(SESSION_COOKIE_NAME, token)

        response = client.post("/import", json={"rssUrl": FEED_URL})

        assert response.status_code == 200

    def test_missing_url_is_400(self, client, auth_headers):
        response = client.post("/import", json={}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request")
        assert "rssUrl" in response.json()["error"]

    def test_import_success(self, client, auth_headers, mock_fetcher):
        """Test the response carries the podcast, its episodes and the count."""
        response = client.post("/import", json={"rssUrl": FEED_URL}, headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["episodeCount"] == 2
        assert body["podcast"]["title"] == "My Show"
        assert body["podcast"]["slug"] == "my-show"
        assert body["podcast"]["owner_id"] == "user-1"
        assert body["podcast"]["status"] == "published"
        assert body["podcast"]["source_feed_url"] == FEED_URL
        assert [e["external_guid"] for e in body["episodes"]] == ["ep-2", "ep-1"]
        assert body["episodes"][0]["duration_seconds"] == 930
        mock_fetcher.fetch.assert_called_once_with(FEED_URL)

    def test_duplicate_import_is_400(self, client, auth_headers, other_user_headers, imported):
        response = client.post("/import", json={"rssUrl": FEED_URL}, headers=other_user_headers)

        assert response.status_code == 400
        assert response.json()["kind"] == "AlreadyImported"
        assert response.json()["error"] == "Podcast already imported"

    @pytest.mark.parametrize(
        "kind,status",
        [
            (ErrorKind.INVALID_SCHEME, 400),
            (ErrorKind.FORBIDDEN_HOST, 400),
            (ErrorKind.TIMEOUT, 500),
            (ErrorKind.PAYLOAD_TOO_LARGE, 500),
            (ErrorKind.FETCH_FAILED, 500),
            (ErrorKind.INVALID_FEED, 500),
        ],
    )
    def test_error_kinds_map_to_status(self, client, auth_headers, mock_fetcher, repository, kind, status):
        mock_fetcher.fetch.side_effect = FeedInterchangeError(kind, "boom")

        response = client.post("/import", json={"rssUrl": FEED_URL}, headers=auth_headers)

        assert response.status_code == status
        assert response.json() == {"error": "boom", "kind": kind.value}
        assert repository.list_podcasts() == []

    def test_storage_error_reports_podcast_id(self, app, client, auth_headers):
        service = Mock()
        service.import_from_url.side_effect = FeedInterchangeError(
            ErrorKind.STORAGE_ERROR, "Failed to store episodes", podcast_id="pod-9"
        )
        app.state.sync_service = service

        response = client.post("/import", json={"rssUrl": FEED_URL}, headers=auth_headers)

        assert response.status_code == 500
        assert response.json() == {
            "error": "Failed to store episodes",
            "kind": "StorageError",
            "podcastId": "pod-9",
        }
        service.import_from_url.assert_called_once_with("user-1", FEED_URL)


class TestImportRateLimit:
    """Tests for the per-client limit on POST /import."""

    def test_limit_comes_from_config(self, config, repository, mock_fetcher, auth_headers):
        config.WEB_RATE_LIMIT = "1/minute"
        app = create_app(config, repository)
        app.state.sync_service = FeedSyncService(repository, fetcher=mock_fetcher)
        limiter.reset()
        try:
            client = TestClient(app)
            first = client.post("/import", json={"rssUrl": FEED_URL}, headers=auth_headers)
            second = client.post("/import", json={"rssUrl": FEED_URL}, headers=auth_headers)
        finally:
            limiter.reset()
            set_import_rate_limit(Config().WEB_RATE_LIMIT)

        assert first.status_code == 200
        assert second.status_code == 429


class TestSyncEndpoint:
    """Tests for POST /import/{podcast_id}/sync."""

    def test_owner_can_sync(self, client, auth_headers, imported):
        podcast_id = imported["podcast"]["id"]

        response = client.post(f"/import/{podcast_id}/sync", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {
            "podcast_id": podcast_id,
            "new_episodes": 0,
            "updated_episodes": 0,
            "episode_count": 2,
            "error": None,
        }

    def test_other_user_gets_404(self, client, other_user_headers, imported):
        response = client.post(f"/import/{imported['podcast']['id']}/sync", headers=other_user_headers)

        assert response.status_code == 404
        assert response.json() == {"error": "Podcast not found"}

    def test_unknown_podcast_404(self, client, auth_headers):
        response = client.post("/import/does-not-exist/sync", headers=auth_headers)

        assert response.status_code == 404

    def test_fetch_failure_reported_in_body(self, client, auth_headers, mock_fetcher, imported):
        mock_fetcher.fetch.side_effect = FeedInterchangeError(ErrorKind.TIMEOUT, "Timed out")

        response = client.post(f"/import/{imported['podcast']['id']}/sync", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["error"] == "Timed out"

    def test_requires_authentication(self, client, imported):
        response = client.post(f"/import/{imported['podcast']['id']}/sync")

        assert response.status_code == 401


class TestExportEndpoint:
    """Tests for GET /export."""

    def test_export_by_id_query(self, client, imported):
        podcast_id = imported["podcast"]["id"]

        response = client.get("/export", params={"id": podcast_id})

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/rss+xml; charset=utf-8"
        assert response.headers["cache-control"] == "public, max-age=300"
        assert response.headers["x-robots-tag"] == "noindex"
        assert b"<title>My Show</title>" in response.content
        assert f"https://feeds.example.com/export/{podcast_id}".encode() in response.content
        assert b"<guid isPermaLink=\"false\">ep-2</guid>" in response.content

    def test_export_by_slug_query(self, client, imported):
        response = client.get("/export", params={"slug": "my-show"})

        assert response.status_code == 200
        assert b"https://podcasts.example.com/podcast/my-show" in response.content

    def test_export_by_path(self, client, imported):
        by_id = client.get(f"/export/{imported['podcast']['id']}")
        by_slug = client.get("/export/my-show")

        assert by_id.status_code == 200
        assert by_slug.status_code == 200

    def test_export_needs_no_authentication(self, client, imported):
        client.cookies.clear()

        response = client.get("/export/my-show")

        assert response.status_code == 200

    def test_missing_identifier_is_400(self, client):
        response = client.get("/export")

        assert response.status_code == 400
        assert response.json() == {"error": "Missing id or slug parameter"}

    def test_unknown_podcast_is_404(self, client):
        response = client.get("/export", params={"slug": "nope"})

        assert response.status_code == 404
        assert response.json() == {"error": "Podcast not found or not published"}

    def test_draft_podcast_is_404(self, client, repository):
        repository.create_podcast(owner_id="user-1", slug="draft-show", title="Draft Show")

        response = client.get("/export/draft-show")

        assert response.status_code == 404

    def test_draft_episodes_are_not_exported(self, client, repository):
        podcast = repository.create_podcast(
            owner_id="user-1", slug="native-show", title="Native Show", status="published"
        )
        repository.create_episode(podcast.id, title="Live Episode", status="published")
        repository.create_episode(podcast.id, title="Unfinished Episode", status="draft")

        response = client.get("/export/native-show")

        assert response.status_code == 200
        assert b"Live Episode" in response.content
        assert b"Unfinished Episode" not in response.content

    def test_empty_published_podcast_exports_valid_feed(self, client, repository):
        repository.create_podcast(owner_id="user-1", slug="empty", title="Empty", status="published")

        response = client.get("/export/empty")

        assert response.status_code == 200
        assert b"<item>" not in response.content
