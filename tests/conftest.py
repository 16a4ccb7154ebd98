"""Shared test fixtures for the Sales Desk test suite."""

from __future__ import annotations

import os

import pytest
import pytest_asyncio
from sqlalchemy import insert
from sqlalchemy.pool import StaticPool


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
    os.environ.setdefault("METRICS_ENABLED", "false")


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with the relational schema created."""
    from src.services.database import create_engine, create_schema

    eng = create_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def seeded_engine(engine):
    """Engine with two invited users: Carla (id 1) and Seba (id 2)."""
    from src.services.database import invited_user

    async with engine.begin() as conn:
        await conn.execute(
            insert(invited_user),
            [
                {"id": 1, "name": "Carla", "passcode": "123456"},
                {"id": 2, "name": "Sebastián", "passcode": "654321"},
            ],
        )
    return engine


@pytest.fixture
def make_session():
    """Factory for in-memory sessions, optionally authenticated."""
    from src.models import AuthenticatedUser, Session

    def _make(user_id: int | None = None, name: str = "Carla", session_id: str = "conv-1"):
        user = AuthenticatedUser(id=user_id, name=name) if user_id is not None else None
        return Session(id=session_id, authenticated_user=user)

    return _make
