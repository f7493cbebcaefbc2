"""Shared test fixtures."""

from __future__ import annotations

import os

os.environ.setdefault("STEPCOIN_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STEPCOIN_JWT_SECRET", "stepcoin-test-secret-with-enough-bytes-for-hs256")
os.environ.setdefault("STEPCOIN_ADMIN_TOKEN", "test-admin-token")
os.environ.setdefault("STEPCOIN_LOG_FORMAT", "console")

from collections.abc import AsyncGenerator  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from stepcoin.activity.sources import SimulatedActivitySource  # noqa: E402
from stepcoin.auth.jwt import create_access_token  # noqa: E402
from stepcoin.config import get_settings  # noqa: E402
from stepcoin.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from stepcoin.db.base import Base  # noqa: E402
from stepcoin.db.models import Challenge  # noqa: E402
from stepcoin.main import create_app  # noqa: E402
from stepcoin.redis_client import close_redis  # noqa: E402

USER_ID = "user-alice"
OTHER_USER_ID = "user-bob"


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test, built from the ORM metadata."""
    get_settings.cache_clear()
    await init_db(get_settings().database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with get_session_factory()() as session:
        yield session

    await close_db()


@pytest.fixture
def app() -> FastAPI:
    """Fresh app with a reproducible simulated activity source."""
    application = create_app()
    application.state.activity_source = SimulatedActivitySource(seed=1234)
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI, db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app, sharing the test database. Redis is absent."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await close_redis()


def auth_headers(user_id: str = USER_ID) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def alice_headers() -> dict[str, str]:
    return auth_headers(USER_ID)


@pytest.fixture
def bob_headers() -> dict[str, str]:
    return auth_headers(OTHER_USER_ID)


def challenge_row(**overrides: Any) -> dict[str, Any]:
    """A catalog row running from yesterday to a week from now."""
    now = datetime.now(timezone.utc)
    row: dict[str, Any] = {
        "id": "walk-20k",
        "title": "Weekend Warrior",
        "description": "Complete 20,000 steps",
        "entry_fee": 5,
        "reward": 20,
        "start_date": now - timedelta(days=1),
        "end_date": now + timedelta(days=7),
        "type": "steps",
        "goal": 20000,
        "daily_target": None,
    }
    row.update(overrides)
    return row


async def add_challenge(db: AsyncSession, **overrides: Any) -> Challenge:
    """Insert a challenge directly."""
    challenge = Challenge(participants_count=0, created_at=datetime.now(timezone.utc), **challenge_row(**overrides))
    db.add(challenge)
    await db.commit()
    return challenge
