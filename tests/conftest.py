"""Shared test fixtures for the being-better test suite."""

import pytest
import fakeredis
from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from httpx import ASGITransport

from being_better.models.entries import CheckInEntry, RatingEntry
from being_better.models.preferences import PreferencesStore


# ── Redis ────────────────────────────────────────────────────────────────

@pytest.fixture
def r():
    """Fresh fakeredis instance per test (decode_responses=True like production)."""
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def down_redis():
    """A fakeredis client whose server refuses every command."""
    server = fakeredis.FakeServer()
    server.connected = False
    return fakeredis.FakeRedis(server=server, decode_responses=True)


# ── Time Freezing ───────────────────────────────────────────────────────

@pytest.fixture
def frozen_now():
    """Return a fixed 'now' for deterministic analytics and reminder tests.

    Default: 2024-05-07T12:00:00Z (noon UTC on a Tuesday).
    """
    return datetime(2024, 5, 7, 12, 0, 0, tzinfo=timezone.utc)


# ── Entry Factories ─────────────────────────────────────────────────────

@pytest.fixture
def make_rating(frozen_now):
    """Factory for RatingEntry, placed ``days_ago`` days before frozen_now.

    Usage:
        entry = make_rating(7, days_ago=2)
    """
    def _factory(rating=5, days_ago=0, hour=12):
        ts = (frozen_now - timedelta(days=days_ago)).replace(hour=hour)
        return RatingEntry(timestamp=ts.isoformat(), rating=rating)

    return _factory


@pytest.fixture
def make_check_in(frozen_now):
    """Factory for CheckInEntry with sensible defaults.

    Usage:
        entry = make_check_in(words=("calm",), days_ago=1, context_tags=("work",))
    """
    def _factory(days_ago=0, hour=12, **overrides):
        ts = (frozen_now - timedelta(days=days_ago)).replace(hour=hour)
        defaults = {
            "timestamp": ts.isoformat(),
            "words": ("calm",),
            "intensity": {},
            "context_tags": (),
            "suggested_words_used": (),
        }
        defaults.update(overrides)
        return CheckInEntry(**defaults)

    return _factory


# ── Local state ─────────────────────────────────────────────────────────

@pytest.fixture
def prefs_store(tmp_path):
    return PreferencesStore(tmp_path / "preferences.json")


# ── REST backend ────────────────────────────────────────────────────────

@pytest.fixture
def patched_app(r):
    """The FastAPI app with every Redis lookup pointed at fakeredis."""
    with patch("being_better.server._get_redis", return_value=r):
        from being_better.server import app
        yield app


@pytest.fixture
def asgi_transport(patched_app):
    return ASGITransport(app=patched_app)
