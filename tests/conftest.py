"""
Pytest configuration and fixtures for podcast feed interchange tests.

This module runs before any test imports, setting up the test environment.
Environment variables are explicitly set to ensure deterministic test behavior
regardless of external environment configuration.
"""

import os

import pytest

# Minimum length for JWT secret key (32 bytes for HS256)
_MIN_JWT_SECRET_LENGTH = 32

# Test JWT secret that meets minimum length requirements
_TEST_JWT_SECRET = "test-jwt-secret-key-for-pytest-minimum-32-chars"

# Force DEV_MODE for tests - ensures consistent behavior
os.environ["DEV_MODE"] = "true"

# Force JWT_SECRET_KEY to a compliant test value
# Overwrite if missing or shorter than required minimum
current_secret = os.environ.get("JWT_SECRET_KEY", "")
if len(current_secret) < _MIN_JWT_SECRET_LENGTH:
    os.environ["JWT_SECRET_KEY"] = _TEST_JWT_SECRET

# Route tests share one in-memory limiter; keep it out of the way
os.environ["RATE_LIMIT"] = "1000/minute"

# Public URLs used in generated feeds
os.environ["SITE_URL"] = "https://podcasts.example.com"
os.environ["FEED_BASE_URL"] = "https://feeds.example.com"


SAMPLE_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd"
     xmlns:atom="http://www.w3.org/2005/Atom">
  <channel>
    <title>My Show</title>
    <description><![CDATA[<p>Conversations about <b>everything</b>.</p>]]></description>
    <link>https://myshow.example.com</link>
    <language>en-us</language>
    <atom:link href="https://feeds.myshow.example.com/rss" rel="self" type="application/rss+xml"/>
    <itunes:author>Jane Host</itunes:author>
    <itunes:owner>
      <itunes:name>Jane Host</itunes:name>
      <itunes:email>jane@myshow.example.com</itunes:email>
    </itunes:owner>
    <itunes:category text="Technology"/>
    <itunes:explicit>yes</itunes:explicit>
    <itunes:image href="https://myshow.example.com/cover.jpg"/>

    <item>
      <title>Episode 2: Deep Dive</title>
      <description><![CDATA[<p>A deeper look.</p>]]></description>
      <guid>ep-2</guid>
      <pubDate>Mon, 08 Jan 2024 12:00:00 +0000</pubDate>
      <itunes:episode>2</itunes:episode>
      <itunes:season>1</itunes:season>
      <itunes:duration>15:30</itunes:duration>
      <enclosure url="https://cdn.example.com/ep2.mp3" length="2048" type="audio/mpeg"/>
    </item>

    <item>
      <title>Episode 1: Introduction</title>
      <description>The first episode.</description>
      <guid>ep-1</guid>
      <pubDate>Mon, 01 Jan 2024 12:00:00 +0000</pubDate>
      <itunes:episode>1</itunes:episode>
      <itunes:duration>930</itunes:duration>
      <enclosure url="https://cdn.example.com/ep1.mp3" length="1024" type="audio/mpeg"/>
    </item>
  </channel>
</rss>
"""


@pytest.fixture
def sample_feed():
    """Raw bytes of a small, well-formed two-episode feed."""
    return SAMPLE_FEED


@pytest.fixture
def repository(tmp_path):
    """
    Create a temporary SQLite-backed repository for tests.

    Yields a repository instance configured to use a SQLite file under the provided temporary path and closes the repository when the fixture is torn down.
    """
    from src.db.factory import create_repository

    db_path = tmp_path / "test.db"
    repo = create_repository(f"sqlite:///{db_path}", create_tables=True)
    yield repo
    repo.close()
