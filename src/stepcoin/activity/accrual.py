"""Step accrual: convert cumulative activity samples into coin credits.

Idempotent per sample. The cursor's ``last_counted_steps`` watermark means a
replayed or stale sample counts nothing. Steps below the next whole-coin
boundary are banked on the cursor, so total coins from steps always equal
``floor(total counted steps / steps_per_coin)`` however samples arrive.

A sample whose total is lower than the watermark (device counter reset)
counts nothing and re-baselines the watermark to the new lower value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stepcoin.activity.sources import ActivitySample
from stepcoin.config import get_settings
from stepcoin.db.models import ActivitySnapshot, DailyActivity, StepCursor, Wallet
from stepcoin.events import publish_wallet_update
from stepcoin.ledger.locking import user_transaction
from stepcoin.ledger.service import apply_credit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccrualResult:
    coins_credited: int
    steps_delta: int
    distance_delta: float
    steps_rebaselined: bool = False
    distance_rebaselined: bool = False


async def get_or_create_cursor(db: AsyncSession, user_id: str) -> StepCursor:
    """Get or create the step cursor for a user (wallet must be locked)."""
    result = await db.execute(select(StepCursor).where(StepCursor.user_id == user_id))
    cursor = result.scalar_one_or_none()
    if cursor is None:
        cursor = StepCursor(
            user_id=user_id,
            last_counted_steps=0,
            banked_steps=0,
            last_counted_distance=0.0,
            distance_counted=0.0,
            updated_at=datetime.now(timezone.utc),
        )
        db.add(cursor)
        await db.flush()
    return cursor


async def get_daily_activity(db: AsyncSession, user_id: str, day: date) -> DailyActivity | None:
    result = await db.execute(
        select(DailyActivity).where(DailyActivity.user_id == user_id, DailyActivity.day == day)
    )
    return result.scalar_one_or_none()


async def _add_daily_activity(
    db: AsyncSession,
    user_id: str,
    day: date,
    steps: int,
    distance: float,
) -> None:
    row = await get_daily_activity(db, user_id, day)
    if row is None:
        db.add(DailyActivity(user_id=user_id, day=day, steps=steps, distance_meters=distance))
    else:
        row.steps += steps
        row.distance_meters += distance


async def record_snapshot(
    db: AsyncSession,
    user_id: str,
    sample: ActivitySample,
    source: str,
) -> ActivitySnapshot:
    """Store the latest raw sample (what the device last reported)."""
    result = await db.execute(select(ActivitySnapshot).where(ActivitySnapshot.user_id == user_id))
    snapshot = result.scalar_one_or_none()
    if snapshot is None:
        snapshot = ActivitySnapshot(user_id=user_id)
        db.add(snapshot)
    snapshot.steps = sample.cumulative_steps
    snapshot.distance_meters = sample.cumulative_distance
    snapshot.source = source
    snapshot.last_synced = sample.sampled_at
    await db.flush()
    return snapshot


async def apply_accrual(
    db: AsyncSession,
    wallet: Wallet,
    sample: ActivitySample,
    steps_per_coin: int | None = None,
) -> AccrualResult:
    """Run accrual against a wallet already locked by ``user_transaction``."""
    if steps_per_coin is None:
        steps_per_coin = get_settings().steps_per_coin

    cursor = await get_or_create_cursor(db, wallet.user_id)

    # --- Steps ---
    steps_rebaselined = False
    if sample.cumulative_steps < cursor.last_counted_steps:
        logger.info(
            "Step source reset for %s: %d -> %d, re-baselining",
            wallet.user_id, cursor.last_counted_steps, sample.cumulative_steps,
        )
        cursor.last_counted_steps = sample.cumulative_steps
        steps_rebaselined = True
        steps_delta = 0
    else:
        steps_delta = sample.cumulative_steps - cursor.last_counted_steps

    # --- Distance ---
    distance_rebaselined = False
    if sample.cumulative_distance < cursor.last_counted_distance:
        cursor.last_counted_distance = sample.cumulative_distance
        distance_rebaselined = True
        distance_delta = 0.0
    else:
        distance_delta = sample.cumulative_distance - cursor.last_counted_distance

    coins_earned = 0
    if steps_delta > 0:
        coins_earned, cursor.banked_steps = divmod(cursor.banked_steps + steps_delta, steps_per_coin)
        if coins_earned > 0:
            await apply_credit(
                db, wallet, coins_earned, f"Earned for {steps_delta} steps", now=sample.sampled_at,
            )
        cursor.last_counted_steps += steps_delta
        wallet.steps_counted += steps_delta
        wallet.last_updated = sample.sampled_at

    if distance_delta > 0:
        cursor.last_counted_distance += distance_delta
        cursor.distance_counted += distance_delta

    if steps_delta > 0 or distance_delta > 0:
        await _add_daily_activity(
            db, wallet.user_id, sample.sampled_at.astimezone(timezone.utc).date(),
            steps_delta, distance_delta,
        )

    cursor.last_sampled_at = sample.sampled_at
    cursor.updated_at = datetime.now(timezone.utc)
    await db.flush()

    return AccrualResult(
        coins_credited=coins_earned,
        steps_delta=steps_delta,
        distance_delta=distance_delta,
        steps_rebaselined=steps_rebaselined,
        distance_rebaselined=distance_rebaselined,
    )


async def accrue(
    db: AsyncSession,
    user_id: str,
    sample: ActivitySample,
    redis: object = None,
    source: str | None = None,
) -> AccrualResult:
    """Convert a new cumulative sample into coins for ``user_id``.

    When ``source`` is given the raw sample is also stored as the user's
    latest activity snapshot, in the same transaction.
    """
    async with user_transaction(db, user_id) as wallet:
        result = await apply_accrual(db, wallet, sample)
        if source is not None:
            await record_snapshot(db, user_id, sample, source)

    if result.coins_credited > 0:
        await publish_wallet_update(
            redis, user_id, wallet.coins, result.coins_credited, "earned",
            f"Earned for {result.steps_delta} steps",
        )
    return result
