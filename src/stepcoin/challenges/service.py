"""Challenge catalog and participation (join / leave).

Rules:
- One UserChallenge per (user, challenge); UNIQUE constraint backs the check
- Entry fee is debited in the same transaction that creates the join record
- Leaving is allowed only before completion; the entry fee is not refunded
- Completed records are permanent
- participants_count is always recomputed from user_challenges, never bumped
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stepcoin.activity.accrual import get_or_create_cursor
from stepcoin.db.models import Challenge, UserChallenge
from stepcoin.errors import (
    AlreadyJoined,
    ChallengeAlreadyCompleted,
    ChallengeEnded,
    ChallengeNotFound,
    NotJoined,
)
from stepcoin.events import publish_wallet_update
from stepcoin.ledger.locking import user_transaction
from stepcoin.ledger.service import apply_debit

logger = logging.getLogger(__name__)


def _participants_subquery(challenge_id_column):  # type: ignore[no-untyped-def]
    return (
        select(func.count(UserChallenge.id))
        .where(UserChallenge.challenge_id == challenge_id_column)
        .scalar_subquery()
    )


async def get_challenge(db: AsyncSession, challenge_id: str) -> Challenge:
    """Get a challenge by ID. Raises ChallengeNotFound."""
    result = await db.execute(select(Challenge).where(Challenge.id == challenge_id))
    challenge = result.scalar_one_or_none()
    if challenge is None:
        raise ChallengeNotFound(challenge_id)
    return challenge


async def list_challenges(
    db: AsyncSession,
    active_at: datetime | None = None,
) -> list[tuple[Challenge, int]]:
    """Catalog with live participant counts, ordered by start date.

    When ``active_at`` is given, challenges that ended before it are hidden.
    """
    count = _participants_subquery(Challenge.id).label("participants")
    query = select(Challenge, count).order_by(Challenge.start_date.asc(), Challenge.id.asc())
    if active_at is not None:
        query = query.where(Challenge.end_date >= active_at)
    result = await db.execute(query)
    return [(row.Challenge, int(row.participants)) for row in result]


async def list_user_challenges(db: AsyncSession, user_id: str) -> list[UserChallenge]:
    """All of a user's participation records, oldest join first."""
    result = await db.execute(
        select(UserChallenge)
        .where(UserChallenge.user_id == user_id)
        .order_by(UserChallenge.joined_at.asc(), UserChallenge.id.asc())
    )
    return list(result.scalars().unique().all())


async def get_user_challenge(
    db: AsyncSession,
    user_id: str,
    challenge_id: str,
) -> UserChallenge | None:
    result = await db.execute(
        select(UserChallenge).where(
            UserChallenge.user_id == user_id,
            UserChallenge.challenge_id == challenge_id,
        )
    )
    return result.scalar_one_or_none()


async def refresh_participants_count(db: AsyncSession, challenge_id: str) -> None:
    """Rewrite one challenge's cached count from its user_challenges rows."""
    await db.execute(
        update(Challenge)
        .where(Challenge.id == challenge_id)
        .values(participants_count=_participants_subquery(Challenge.id))
        .execution_options(synchronize_session=False)
    )


async def recompute_participant_counts(db: AsyncSession) -> int:
    """Heal every challenge's cached count. Returns the number of rows that drifted."""
    count = _participants_subquery(Challenge.id).label("actual")
    result = await db.execute(select(Challenge.id, Challenge.participants_count, count))
    drifted = [row.id for row in result if row.participants_count != row.actual]

    await db.execute(
        update(Challenge)
        .values(participants_count=_participants_subquery(Challenge.id))
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    if drifted:
        logger.warning("Healed participant count drift on %d challenges: %s", len(drifted), drifted)
    return len(drifted)


async def join_challenge(
    db: AsyncSession,
    user_id: str,
    challenge_id: str,
    redis: object = None,
    now: datetime | None = None,
) -> UserChallenge:
    """Pay the entry fee and create the join record, atomically.

    Raises:
        ChallengeNotFound, AlreadyJoined, ChallengeEnded, InsufficientFunds.
        On any failure nothing is written.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    async with user_transaction(db, user_id) as wallet:
        challenge = await get_challenge(db, challenge_id)
        if await get_user_challenge(db, user_id, challenge_id) is not None:
            raise AlreadyJoined(challenge_id)

        if challenge.end_date < now:
            raise ChallengeEnded(challenge_id)

        description = f"Joined {challenge.title} challenge"
        if challenge.entry_fee > 0:
            await apply_debit(db, wallet, challenge.entry_fee, description, now=now)

        cursor = await get_or_create_cursor(db, user_id)
        user_challenge = UserChallenge(
            user_id=user_id,
            challenge_id=challenge_id,
            challenge=challenge,
            joined_at=now,
            completed=False,
            current_progress=0.0,
            steps_baseline=wallet.steps_counted,
            distance_baseline=cursor.distance_counted,
        )
        db.add(user_challenge)
        try:
            await db.flush()
        except IntegrityError as e:
            raise AlreadyJoined(challenge_id) from e

        await refresh_participants_count(db, challenge_id)
        await db.refresh(challenge, attribute_names=["participants_count"])

    logger.info("User %s joined challenge %s (fee=%d)", user_id, challenge_id, challenge.entry_fee)
    if challenge.entry_fee > 0:
        await publish_wallet_update(redis, user_id, wallet.coins, challenge.entry_fee, "spent", description)
    return user_challenge


async def leave_challenge(db: AsyncSession, user_id: str, challenge_id: str) -> None:
    """Delete a non-completed join record. The entry fee stays spent.

    Raises:
        NotJoined, ChallengeAlreadyCompleted.
    """
    async with user_transaction(db, user_id):
        user_challenge = await get_user_challenge(db, user_id, challenge_id)
        if user_challenge is None:
            raise NotJoined(challenge_id)
        if user_challenge.completed:
            raise ChallengeAlreadyCompleted(challenge_id)

        challenge = user_challenge.challenge
        await db.delete(user_challenge)
        await db.flush()
        await refresh_participants_count(db, challenge_id)
        await db.refresh(challenge, attribute_names=["participants_count"])

    logger.info("User %s left challenge %s", user_id, challenge_id)
