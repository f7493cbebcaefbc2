"""Pull-sync: fetch a sample from the activity source, accrue it, tick challenges."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from stepcoin.activity.accrual import AccrualResult, accrue
from stepcoin.activity.sources import ActivitySample, ActivitySource
from stepcoin.challenges.progress import TickResult, tick

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    sample: ActivitySample
    accrual: AccrualResult
    progress: TickResult


async def ingest_sample(
    db: AsyncSession,
    user_id: str,
    sample: ActivitySample,
    source: str,
    redis: object = None,
    now: datetime | None = None,
) -> SyncResult:
    """Accrue one sample (pushed or pulled) and run a progress tick."""
    accrual = await accrue(db, user_id, sample, redis=redis, source=source)
    progress = await tick(db, user_id, now=now, redis=redis)
    return SyncResult(sample=sample, accrual=accrual, progress=progress)


async def sync_user(
    db: AsyncSession,
    user_id: str,
    source: ActivitySource,
    redis: object = None,
    now: datetime | None = None,
) -> SyncResult:
    """Fetch the user's totals from ``source`` and ingest them."""
    sample = await source.fetch_sample(user_id)
    result = await ingest_sample(db, user_id, sample, source.name, redis=redis, now=now)
    if result.accrual.coins_credited or result.progress.completed:
        logger.info(
            "Synced %s from %s: +%d coins, completed=%s",
            user_id, source.name, result.accrual.coins_credited, result.progress.completed,
        )
    return result
