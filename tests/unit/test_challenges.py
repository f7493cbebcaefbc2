"""Challenge engine tests — join/leave rules, fees, participant counts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from stepcoin.challenges.service import (
    get_challenge,
    get_user_challenge,
    join_challenge,
    leave_challenge,
    list_challenges,
    list_user_challenges,
    recompute_participant_counts,
)
from stepcoin.db.models import Challenge, UserChallenge
from stepcoin.errors import (
    AlreadyJoined,
    ChallengeAlreadyCompleted,
    ChallengeEnded,
    ChallengeNotFound,
    InsufficientFunds,
    NotJoined,
)
from stepcoin.ledger.service import credit, get_history, get_wallet, ledger_sum
from tests.conftest import OTHER_USER_ID, USER_ID, add_challenge


class TestJoin:
    async def test_join_debits_fee_and_records_membership(self, db: AsyncSession) -> None:
        await add_challenge(db)
        await credit(db, USER_ID, 5, "Bonus")

        uc = await join_challenge(db, USER_ID, "walk-20k")

        assert uc.completed is False
        assert uc.current_progress == 0
        wallet = await get_wallet(db, USER_ID)
        assert wallet.coins == 0
        items, _ = await get_history(db, USER_ID, kind="spent")
        assert [(t.amount, t.description) for t in items] == [(5, "Joined Weekend Warrior challenge")]
        challenge = await get_challenge(db, "walk-20k")
        assert challenge.participants_count == 1

    async def test_second_join_rejected(self, db: AsyncSession) -> None:
        await add_challenge(db)
        await credit(db, USER_ID, 20, "Bonus")
        await join_challenge(db, USER_ID, "walk-20k")

        with pytest.raises(AlreadyJoined):
            await join_challenge(db, USER_ID, "walk-20k")

        wallet = await get_wallet(db, USER_ID)
        assert wallet.coins == 15

    async def test_insufficient_funds_writes_nothing(self, db: AsyncSession) -> None:
        await add_challenge(db)
        await credit(db, USER_ID, 4, "Bonus")

        with pytest.raises(InsufficientFunds):
            await join_challenge(db, USER_ID, "walk-20k")

        assert await get_user_challenge(db, USER_ID, "walk-20k") is None
        wallet = await get_wallet(db, USER_ID)
        assert wallet.coins == 4
        challenge = await get_challenge(db, "walk-20k")
        assert challenge.participants_count == 0

    async def test_unknown_challenge(self, db: AsyncSession) -> None:
        with pytest.raises(ChallengeNotFound):
            await join_challenge(db, USER_ID, "missing")

    async def test_ended_challenge_cannot_be_joined(self, db: AsyncSession) -> None:
        now = datetime.now(timezone.utc)
        await add_challenge(db, start_date=now - timedelta(days=10), end_date=now - timedelta(days=1))
        await credit(db, USER_ID, 5, "Bonus")

        with pytest.raises(ChallengeEnded):
            await join_challenge(db, USER_ID, "walk-20k")
        wallet = await get_wallet(db, USER_ID)
        assert wallet.coins == 5

    async def test_rejoining_after_end_reports_already_joined(self, db: AsyncSession) -> None:
        now = datetime.now(timezone.utc)
        await add_challenge(db, entry_fee=0, start_date=now - timedelta(days=10), end_date=now + timedelta(days=1))
        await join_challenge(db, USER_ID, "walk-20k")

        with pytest.raises(AlreadyJoined):
            await join_challenge(db, USER_ID, "walk-20k", now=now + timedelta(days=2))

    async def test_upcoming_challenge_can_be_joined(self, db: AsyncSession) -> None:
        now = datetime.now(timezone.utc)
        await add_challenge(db, start_date=now + timedelta(days=2), end_date=now + timedelta(days=9))
        await credit(db, USER_ID, 5, "Bonus")
        uc = await join_challenge(db, USER_ID, "walk-20k")
        assert uc.challenge_id == "walk-20k"

    async def test_free_challenge_writes_no_transaction(self, db: AsyncSession) -> None:
        await add_challenge(db, entry_fee=0)
        await join_challenge(db, USER_ID, "walk-20k")
        items, _ = await get_history(db, USER_ID)
        assert items == []

    async def test_join_baselines_at_counted_steps(self, db: AsyncSession) -> None:
        from stepcoin.activity.accrual import accrue
        from stepcoin.activity.sources import ActivitySample

        await add_challenge(db)
        await accrue(
            db, USER_ID,
            ActivitySample(cumulative_steps=7000, cumulative_distance=4900.0, sampled_at=datetime.now(timezone.utc)),
        )
        uc = await join_challenge(db, USER_ID, "walk-20k")
        assert uc.steps_baseline == 7000
        assert uc.distance_baseline == pytest.approx(4900.0)


class TestLeave:
    async def test_leave_keeps_fee_spent(self, db: AsyncSession) -> None:
        await add_challenge(db)
        await credit(db, USER_ID, 5, "Bonus")
        await join_challenge(db, USER_ID, "walk-20k")

        await leave_challenge(db, USER_ID, "walk-20k")

        assert await get_user_challenge(db, USER_ID, "walk-20k") is None
        wallet = await get_wallet(db, USER_ID)
        assert wallet.coins == 0
        assert await ledger_sum(db, USER_ID) == 0
        challenge = await get_challenge(db, "walk-20k")
        assert challenge.participants_count == 0

    async def test_rejoin_after_leave_pays_again(self, db: AsyncSession) -> None:
        await add_challenge(db)
        await credit(db, USER_ID, 10, "Bonus")
        await join_challenge(db, USER_ID, "walk-20k")
        await leave_challenge(db, USER_ID, "walk-20k")
        await join_challenge(db, USER_ID, "walk-20k")

        wallet = await get_wallet(db, USER_ID)
        assert wallet.coins == 0

    async def test_leave_without_joining(self, db: AsyncSession) -> None:
        await add_challenge(db)
        with pytest.raises(NotJoined):
            await leave_challenge(db, USER_ID, "walk-20k")

    async def test_completed_challenge_cannot_be_left(self, db: AsyncSession) -> None:
        await add_challenge(db, entry_fee=0)
        await join_challenge(db, USER_ID, "walk-20k")
        await db.execute(
            update(UserChallenge)
            .where(UserChallenge.user_id == USER_ID)
            .values(completed=True, current_progress=20000)
        )
        await db.commit()

        with pytest.raises(ChallengeAlreadyCompleted):
            await leave_challenge(db, USER_ID, "walk-20k")
        assert await get_user_challenge(db, USER_ID, "walk-20k") is not None

    async def test_leaving_expired_unfinished_challenge_is_allowed(self, db: AsyncSession) -> None:
        now = datetime.now(timezone.utc)
        await add_challenge(db, entry_fee=0)
        await join_challenge(db, USER_ID, "walk-20k")
        await db.execute(update(Challenge).values(end_date=now - timedelta(hours=1)))
        await db.commit()

        await leave_challenge(db, USER_ID, "walk-20k")
        assert await list_user_challenges(db, USER_ID) == []


class TestCatalog:
    async def test_live_counts_and_ordering(self, db: AsyncSession) -> None:
        now = datetime.now(timezone.utc)
        await add_challenge(db, id="b", start_date=now - timedelta(days=1), entry_fee=0)
        await add_challenge(db, id="a", start_date=now - timedelta(days=3), entry_fee=0)
        await join_challenge(db, USER_ID, "b")
        await join_challenge(db, OTHER_USER_ID, "b")

        rows = await list_challenges(db)
        assert [(c.id, count) for c, count in rows] == [("a", 0), ("b", 2)]

    async def test_active_filter_hides_ended(self, db: AsyncSession) -> None:
        now = datetime.now(timezone.utc)
        await add_challenge(db, id="old", start_date=now - timedelta(days=9), end_date=now - timedelta(days=2))
        await add_challenge(db, id="new")

        rows = await list_challenges(db, active_at=now)
        assert [c.id for c, _ in rows] == ["new"]

    async def test_empty_catalog(self, db: AsyncSession) -> None:
        assert await list_challenges(db) == []

    async def test_drifted_counts_are_healed(self, db: AsyncSession) -> None:
        await add_challenge(db, entry_fee=0)
        await join_challenge(db, USER_ID, "walk-20k")
        await db.execute(update(Challenge).values(participants_count=42))
        await db.commit()

        healed = await recompute_participant_counts(db)

        assert healed == 1
        challenge = await get_challenge(db, "walk-20k")
        await db.refresh(challenge)
        assert challenge.participants_count == 1
        assert await recompute_participant_counts(db) == 0
