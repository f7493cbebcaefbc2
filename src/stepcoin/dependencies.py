"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Request

from stepcoin.activity.sources import ActivitySource
from stepcoin.database import get_session as _get_session
from stepcoin.redis_client import get_redis_or_none

get_db = _get_session


async def get_redis_dep() -> AsyncGenerator[object, None]:
    """Yield the Redis client as a FastAPI dependency (None when Redis is not configured)."""
    yield get_redis_or_none()


def get_activity_source(request: Request) -> ActivitySource:
    """The activity source built at startup."""
    return request.app.state.activity_source
