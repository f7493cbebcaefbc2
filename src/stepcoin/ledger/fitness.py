"""Fitness score: a 0-100 aggregate of lifetime steps and earning consistency.

Also derives the fitness level shown for a score, and activity-consistency
stats (days since the first transaction, days with any transaction).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stepcoin.db.models import CoinTransaction
from stepcoin.ledger.service import count_earned_transactions, get_wallet

STEPS_PER_POINT = 100_000
POINTS_PER_EARNING = 5
MAX_STEPS_POINTS = 50
MAX_CONSISTENCY_POINTS = 50

# Highest threshold first
FITNESS_LEVELS: tuple[tuple[int, str], ...] = (
    (80, "Elite"),
    (60, "Advanced"),
    (40, "Intermediate"),
    (20, "Beginner"),
)
BASE_FITNESS_LEVEL = "Novice"


@dataclass(frozen=True)
class ActivityStats:
    total_days: int
    active_days: int
    streak_percentage: float


def compute_fitness_score(steps_counted: int, earned_count: int) -> int:
    """Half the score comes from steps, half from how often coins were earned."""
    steps_score = min(steps_counted / STEPS_PER_POINT, MAX_STEPS_POINTS)
    consistency_score = min(earned_count * POINTS_PER_EARNING, MAX_CONSISTENCY_POINTS)
    score = math.floor(steps_score + consistency_score)
    return max(0, min(score, 100))


def fitness_level(score: int) -> str:
    for threshold, level in FITNESS_LEVELS:
        if score >= threshold:
            return level
    return BASE_FITNESS_LEVEL


def compute_activity_stats(timestamps: list[datetime], now: datetime) -> ActivityStats:
    """Consistency stats over transaction timestamps.

    ``total_days`` counts UTC calendar days from the oldest transaction through
    today, inclusive; ``active_days`` counts distinct UTC dates with a
    transaction.
    """
    if not timestamps:
        return ActivityStats(total_days=0, active_days=0, streak_percentage=0.0)

    dates = {ts.astimezone(timezone.utc).date() for ts in timestamps}
    today = now.astimezone(timezone.utc).date()
    total_days = max((today - min(dates)).days, 0) + 1
    active_days = len(dates)
    percentage = min(active_days / total_days * 100, 100.0)
    return ActivityStats(
        total_days=total_days,
        active_days=active_days,
        streak_percentage=round(percentage, 1),
    )


async def get_fitness_score(db: AsyncSession, user_id: str) -> int:
    """Compute the score from the stored wallet. Raises WalletNotFound."""
    wallet = await get_wallet(db, user_id)
    earned = await count_earned_transactions(db, user_id)
    return compute_fitness_score(wallet.steps_counted, earned)


async def get_activity_stats(
    db: AsyncSession,
    user_id: str,
    now: datetime | None = None,
) -> ActivityStats:
    """Stats over the user's whole transaction log. Raises WalletNotFound."""
    await get_wallet(db, user_id)
    if now is None:
        now = datetime.now(timezone.utc)
    result = await db.execute(select(CoinTransaction.created_at).where(CoinTransaction.user_id == user_id))
    return compute_activity_stats(list(result.scalars().all()), now)
