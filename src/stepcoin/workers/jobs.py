"""Periodic StepCoin jobs run by the arq worker.

- ``sync_all_activity``: pull a sample for every known wallet (every minute)
- ``tick_all_users``: advance challenge progress for every active participant
- ``heal_participant_counts``: recompute cached participant counts (hourly)

A failure for one user is logged and does not stop the pass.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import redis.asyncio as aioredis
from sqlalchemy import distinct, select
from sqlalchemy.ext.asyncio import AsyncSession

from stepcoin.activity.sources import ActivitySource, build_activity_source
from stepcoin.activity.sync import sync_user
from stepcoin.challenges.progress import tick
from stepcoin.challenges.service import recompute_participant_counts
from stepcoin.config import get_settings
from stepcoin.database import close_db, get_session, init_db
from stepcoin.db.models import UserChallenge, Wallet

logger = logging.getLogger(__name__)


async def _get_db_session() -> AsyncSession:
    """Get a database session for the worker."""
    async for session in get_session():
        return session
    raise RuntimeError("Failed to get database session")


async def _wallet_user_id_pages(batch_size: int) -> AsyncIterator[list[str]]:
    """Yield wallet user ids in pages, keyset-paginated on user_id."""
    last: str | None = None
    while True:
        query = select(Wallet.user_id).order_by(Wallet.user_id).limit(batch_size)
        if last is not None:
            query = query.where(Wallet.user_id > last)
        db = await _get_db_session()
        try:
            page = list((await db.execute(query)).scalars().all())
        finally:
            await db.close()

        if page:
            yield page
        if len(page) < batch_size:
            return
        last = page[-1]


async def sync_all_activity(ctx: dict) -> int:  # type: ignore[type-arg]
    """Pull-sync every wallet holder from the configured source. Returns users synced."""
    settings = get_settings()
    source: ActivitySource = ctx["activity_source"]
    redis_client = ctx.get("redis")

    synced = 0
    async for page in _wallet_user_id_pages(settings.sync_batch_size):
        for user_id in page:
            db = await _get_db_session()
            try:
                await sync_user(db, user_id, source, redis=redis_client)
                synced += 1
            except Exception:
                logger.exception("Activity sync failed for %s", user_id)
            finally:
                await db.close()

    if synced:
        logger.info("Synced activity for %d users from %s", synced, source.name)
    return synced


async def tick_all_users(ctx: dict) -> int:  # type: ignore[type-arg]
    """Run a progress tick for every user with an unfinished challenge. Returns completions."""
    redis_client = ctx.get("redis")

    db = await _get_db_session()
    try:
        result = await db.execute(
            select(distinct(UserChallenge.user_id)).where(UserChallenge.completed.is_(False))
        )
        user_ids = list(result.scalars().all())
    finally:
        await db.close()

    completed = 0
    for user_id in user_ids:
        db = await _get_db_session()
        try:
            outcome = await tick(db, user_id, redis=redis_client)
            completed += len(outcome.completed)
        except Exception:
            logger.exception("Challenge tick failed for %s", user_id)
        finally:
            await db.close()

    if completed:
        logger.info("Tick pass over %d users completed %d challenges", len(user_ids), completed)
    return completed


async def heal_participant_counts(ctx: dict) -> int:  # type: ignore[type-arg]
    """Recompute every challenge's participants_count. Returns the number that drifted."""
    db = await _get_db_session()
    try:
        return await recompute_participant_counts(db)
    finally:
        await db.close()


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB, Redis, and the activity source on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)
    ctx["redis"] = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    ctx["activity_source"] = build_activity_source(settings)
    logger.info("StepCoin worker started (source=%s)", ctx["activity_source"].name)


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    source: ActivitySource | None = ctx.get("activity_source")
    if source:
        await source.aclose()

    redis_client: aioredis.Redis | None = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()

    await close_db()
    logger.info("StepCoin worker shut down")
