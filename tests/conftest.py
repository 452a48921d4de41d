"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os
from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of streakboard.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from streakboard.database.models import ActivityCategory, Base, Post, User  # noqa: E402
from streakboard.services.streak_store import StreakStore  # noqa: E402


def jan(day: int, hour: int = 12) -> datetime:
    """A UTC timestamp on the given day of January 2026."""
    return datetime(2026, 1, day, hour, tzinfo=UTC)


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all Streakboard tables.

    Uses StaticPool so every session shares the same in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session for seeding and inspecting rows."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def store(db_engine: Engine) -> StreakStore:
    return StreakStore(db_engine)


@pytest.fixture
def add_posts(db_session: Session):
    """Factory: insert posts given as (user_id, category, created_at) tuples."""

    def _add(*rows: tuple[str, ActivityCategory | str | None, datetime]) -> None:
        db_session.add_all([
            Post(
                user_id=user_id,
                category=category.value if isinstance(category, ActivityCategory) else category,
                description="logged activity",
                created_at=created_at,
            )
            for user_id, category, created_at in rows
        ])
        db_session.commit()

    return _add


@pytest.fixture
def add_users(db_session: Session):
    """Factory: insert profile rows given as (id, name, username, image)."""

    def _add(*rows: tuple[str, str | None, str | None, str | None]) -> None:
        db_session.add_all([
            User(id=uid, name=name, username=username, image=image)
            for uid, name, username, image in rows
        ])
        db_session.commit()

    return _add


@pytest.fixture
def admin_token():
    """Generate a valid admin JWT for use in API integration tests."""
    return make_token(is_admin=True)


def make_token(sub: str = "99999", username: str = "FixtureAdmin", is_admin: bool = True) -> str:
    """Create a JWT.  Usable as both a fixture helper and a factory function."""
    import jwt

    from streakboard.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": is_admin},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def client(db_engine: Engine):
    """FastAPI TestClient bound to the in-memory database."""
    from fastapi.testclient import TestClient

    from streakboard.api.deps import get_config, get_engine
    from streakboard.api.main import app
    from streakboard.config import default_config

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = default_config
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
