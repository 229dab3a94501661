"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of memeboard.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from memeboard.config import MemeboardConfig  # noqa: E402
from memeboard.database.engine import init_db  # noqa: E402
from memeboard.engine.cache import ConfigCache  # noqa: E402
from memeboard.services import profile_service  # noqa: E402
from memeboard.services.change_feed import ChangeFeed  # noqa: E402
from memeboard.services.storage_service import BlobStore  # noqa: E402

# Smallest byte string that passes upload validation
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def run(coro):
    """Run a coroutine to completion (no pytest-asyncio needed)."""
    return asyncio.run(coro)


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all tables and default settings.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` in ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


@pytest.fixture
def cache(db_engine: Engine) -> ConfigCache:
    """A real ConfigCache loaded from the seeded settings table."""
    c = ConfigCache(db_engine)
    c.load_all()
    return c


@pytest.fixture
def clawback_cache(db_engine: Engine) -> ConfigCache:
    """Seeded cache with ``experience.clawback_on_reversal`` switched on."""
    from memeboard.services import settings_service

    c = ConfigCache(db_engine)
    settings_service.upsert_setting(
        db_engine, c, key="experience.clawback_on_reversal", value=True,
    )
    return c


@pytest.fixture
def store(tmp_path) -> BlobStore:
    s = BlobStore(tmp_path / "storage", "http://testserver")
    s.ensure_buckets()
    return s


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def test_config(tmp_path) -> MemeboardConfig:
    return MemeboardConfig(
        community_name="Test Memes",
        api_port=8000,
        public_base_url="http://testserver",
        storage_dir=str(tmp_path / "storage"),
    )


@pytest.fixture
def make_profile(db_engine: Engine):
    """Factory: register a profile and return its id."""

    def _make(user_id: str = "user-1", username: str | None = None) -> str:
        profile_service.register_profile(db_engine, user_id, username or f"name-{user_id}")
        return user_id

    return _make


def make_token(sub: str = "user-1", *, is_admin: bool = False) -> str:
    """Create a bearer JWT the API accepts."""
    import jwt

    from memeboard.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub, "is_admin": is_admin}, JWT_SECRET, algorithm=JWT_ALGORITHM)


@pytest.fixture
def token_for():
    return make_token


@pytest.fixture
def client(db_engine, cache, store, feed, test_config):
    """FastAPI TestClient wired to the in-memory DB (lifespan not run)."""
    from fastapi.testclient import TestClient

    from memeboard.api import deps
    from memeboard.api.main import app

    app.dependency_overrides[deps.get_engine] = lambda: db_engine
    app.dependency_overrides[deps.get_cache] = lambda: cache
    app.dependency_overrides[deps.get_store] = lambda: store
    app.dependency_overrides[deps.get_feed] = lambda: feed
    app.dependency_overrides[deps.get_config] = lambda: test_config
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
