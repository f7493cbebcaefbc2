"""Activity endpoints — push a sample, pull-sync, latest snapshot."""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stepcoin.activity.schemas import (
    AccrualResponse,
    ActivitySampleRequest,
    ActivitySnapshotResponse,
    ProgressResponse,
    SyncResponse,
)
from stepcoin.activity.sources import ActivitySample, ActivitySource
from stepcoin.activity.sync import SyncResult, ingest_sample, sync_user
from stepcoin.auth.dependencies import get_current_user_id
from stepcoin.database import get_session
from stepcoin.db.models import ActivitySnapshot
from stepcoin.dependencies import get_activity_source, get_redis_dep
from stepcoin.errors import StepcoinError
from stepcoin.ledger.router import wallet_response
from stepcoin.ledger.service import get_wallet

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/activity", tags=["Activity"])


def _snapshot_response(snapshot: ActivitySnapshot) -> ActivitySnapshotResponse:
    return ActivitySnapshotResponse(
        steps=snapshot.steps,
        distance_meters=snapshot.distance_meters,
        source=snapshot.source,
        last_synced=snapshot.last_synced,
    )


async def _sync_response(db: AsyncSession, user_id: str, source: str, result: SyncResult) -> SyncResponse:
    wallet = await get_wallet(db, user_id)
    return SyncResponse(
        activity=ActivitySnapshotResponse(
            steps=result.sample.cumulative_steps,
            distance_meters=result.sample.cumulative_distance,
            source=source,
            last_synced=result.sample.sampled_at,
        ),
        accrual=AccrualResponse(
            coins_credited=result.accrual.coins_credited,
            steps_counted=result.accrual.steps_delta,
            distance_counted=result.accrual.distance_delta,
            source_reset=result.accrual.steps_rebaselined or result.accrual.distance_rebaselined,
        ),
        progress=ProgressResponse(
            updated=result.progress.updated,
            completed=result.progress.completed,
            coins_rewarded=result.progress.coins_rewarded,
        ),
        wallet=wallet_response(wallet),
    )


@router.post("/samples", response_model=SyncResponse)
async def push_sample(
    body: ActivitySampleRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
) -> SyncResponse:
    """Accrue a client-pushed cumulative sample, then tick challenges."""
    sample = ActivitySample(
        cumulative_steps=body.steps,
        cumulative_distance=body.distance_meters,
        sampled_at=body.sampled_at or datetime.now(timezone.utc),
    )
    result = await ingest_sample(db, user_id, sample, "push", redis=redis)
    return await _sync_response(db, user_id, "push", result)


@router.post("/sync", response_model=SyncResponse)
async def pull_sync(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
    source: ActivitySource = Depends(get_activity_source),
) -> SyncResponse:
    """Pull totals from the configured activity source, accrue, tick."""
    try:
        result = await sync_user(db, user_id, source, redis=redis)
    except StepcoinError:
        raise
    except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
        logger.warning("activity_source_failed", user_id=user_id, source=source.name, error=str(e))
        raise HTTPException(status_code=502, detail="Activity source unavailable") from e
    return await _sync_response(db, user_id, source.name, result)


@router.get("", response_model=ActivitySnapshotResponse)
async def latest_activity(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> ActivitySnapshotResponse:
    """The most recent totals reported for the caller."""
    result = await db.execute(select(ActivitySnapshot).where(ActivitySnapshot.user_id == user_id))
    snapshot = result.scalar_one_or_none()
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No activity synced yet")
    return _snapshot_response(snapshot)
