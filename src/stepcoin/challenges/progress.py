"""Challenge progress ticks.

Progress comes from the user's counted activity since the previous tick:

- steps: lifetime counted steps minus the record's ``steps_baseline``
- distance: lifetime counted meters minus the record's ``distance_baseline``
- streak: +1 day when today's counted steps reach the daily target and today
  has not already been credited

Baselines move forward on every tick, so each counted step feeds progress at
most once. Activity before ``start_date`` advances baselines without adding
progress. After ``end_date`` an unfinished record is frozen: ticks no longer
touch it and it can still be left.

Completion credits the reward exactly once, in the same transaction that
flips ``completed``; completed records are never ticked again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stepcoin.activity.accrual import get_daily_activity, get_or_create_cursor
from stepcoin.config import get_settings
from stepcoin.db.models import Challenge, UserChallenge
from stepcoin.events import publish_challenge_completed, publish_wallet_update
from stepcoin.ledger.locking import user_transaction
from stepcoin.ledger.service import apply_credit

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    updated: list[str] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)
    coins_rewarded: int = 0


def challenge_status(challenge: Challenge, user_challenge: UserChallenge | None, now: datetime) -> str:
    """Presentation status: completed / expired / upcoming / active / open."""
    if user_challenge is not None and user_challenge.completed:
        return "completed"
    if challenge.end_date < now:
        return "expired"
    if challenge.start_date > now:
        return "upcoming"
    return "active" if user_challenge is not None else "open"


def progress_increment(
    challenge: Challenge,
    steps_delta: int,
    distance_delta: float,
    today_steps: int,
    streak_already_counted: bool,
) -> float:
    """How much one tick adds to a record's progress for this challenge type."""
    if challenge.type == "steps":
        return float(max(0, steps_delta))
    if challenge.type == "distance":
        return max(0.0, distance_delta)
    if challenge.type == "streak":
        target = challenge.daily_target or get_settings().default_streak_daily_target
        if not streak_already_counted and today_steps >= target:
            return 1.0
        return 0.0
    msg = f"Unknown challenge type: {challenge.type!r}"
    raise ValueError(msg)


def advance_progress(user_challenge: UserChallenge, goal: float, increment: float) -> bool:
    """Clamp progress to the goal. Returns True on the not-completed -> completed edge."""
    if user_challenge.completed:
        return False
    user_challenge.current_progress = min(user_challenge.current_progress + increment, goal)
    if user_challenge.current_progress >= goal:
        user_challenge.completed = True
        return True
    return False


async def tick(
    db: AsyncSession,
    user_id: str,
    now: datetime | None = None,
    redis: object = None,
) -> TickResult:
    """Advance every active challenge the user holds and pay out completions."""
    if now is None:
        now = datetime.now(timezone.utc)
    today: date = now.astimezone(timezone.utc).date()
    result = TickResult()
    rewarded: list[tuple[Challenge, int]] = []

    async with user_transaction(db, user_id) as wallet:
        active = await db.execute(
            select(UserChallenge).where(
                UserChallenge.user_id == user_id,
                UserChallenge.completed.is_(False),
            )
        )
        records = list(active.scalars().unique().all())
        if not records:
            return result

        cursor = await get_or_create_cursor(db, user_id)
        daily = await get_daily_activity(db, user_id, today)
        today_steps = daily.steps if daily else 0

        for uc in records:
            challenge = uc.challenge
            if challenge.end_date < now:
                continue

            steps_delta = wallet.steps_counted - uc.steps_baseline
            distance_delta = cursor.distance_counted - uc.distance_baseline
            uc.steps_baseline = wallet.steps_counted
            uc.distance_baseline = cursor.distance_counted

            if challenge.start_date > now:
                continue

            increment = progress_increment(
                challenge, steps_delta, distance_delta, today_steps,
                streak_already_counted=uc.last_streak_day == today,
            )
            if challenge.type == "streak" and increment > 0:
                uc.last_streak_day = today

            if increment > 0:
                result.updated.append(challenge.id)

            if advance_progress(uc, challenge.goal, increment):
                uc.completed_at = now
                result.completed.append(challenge.id)
                if challenge.reward > 0:
                    await apply_credit(
                        db, wallet, challenge.reward, f"Challenge completed: {challenge.title}", now=now,
                    )
                    result.coins_rewarded += challenge.reward
                rewarded.append((challenge, challenge.reward))
                logger.info(
                    "User %s completed challenge %s (reward=%d)", user_id, challenge.id, challenge.reward,
                )

        await db.flush()

    for challenge, reward in rewarded:
        await publish_challenge_completed(redis, user_id, challenge.id, challenge.title, reward)
        if reward > 0:
            await publish_wallet_update(
                redis, user_id, wallet.coins, reward, "earned", f"Challenge completed: {challenge.title}",
            )
    return result
