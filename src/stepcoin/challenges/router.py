"""Challenge endpoints — catalog, join/leave, my challenges, tick, admin seed."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from stepcoin.auth.dependencies import get_current_user_id, require_admin
from stepcoin.challenges.progress import challenge_status, tick
from stepcoin.challenges.schemas import (
    ChallengeResponse,
    ChallengeSeedRequest,
    ChallengeSeedResponse,
    JoinResponse,
    TickResponse,
    UserChallengeResponse,
)
from stepcoin.challenges.seed import seed_challenges
from stepcoin.challenges.service import (
    get_challenge,
    join_challenge,
    leave_challenge,
    list_challenges,
    list_user_challenges,
)
from stepcoin.database import get_session
from stepcoin.db.models import Challenge, UserChallenge
from stepcoin.dependencies import get_redis_dep
from stepcoin.ledger.service import get_wallet

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["Challenges"])


def _challenge_response(challenge: Challenge, participants: int | None = None) -> ChallengeResponse:
    return ChallengeResponse(
        id=challenge.id,
        title=challenge.title,
        description=challenge.description,
        entry_fee=challenge.entry_fee,
        reward=challenge.reward,
        start_date=challenge.start_date,
        end_date=challenge.end_date,
        type=challenge.type,  # type: ignore[arg-type]
        goal=challenge.goal,
        daily_target=challenge.daily_target,
        participants_count=challenge.participants_count if participants is None else participants,
    )


def _user_challenge_response(uc: UserChallenge, now: datetime) -> UserChallengeResponse:
    return UserChallengeResponse(
        challenge_id=uc.challenge_id,
        joined_at=uc.joined_at,
        completed=uc.completed,
        completed_at=uc.completed_at,
        current_progress=uc.current_progress,
        goal=uc.challenge.goal,
        status=challenge_status(uc.challenge, uc, now),  # type: ignore[arg-type]
        challenge=_challenge_response(uc.challenge),
    )


@router.get("/challenges", response_model=list[ChallengeResponse])
async def catalog(
    include_ended: bool = False,
    db: AsyncSession = Depends(get_session),
) -> list[ChallengeResponse]:
    """Challenge catalog with live participant counts."""
    active_at = None if include_ended else datetime.now(timezone.utc)
    rows = await list_challenges(db, active_at=active_at)
    return [_challenge_response(c, participants) for c, participants in rows]


@router.get("/challenges/{challenge_id}", response_model=ChallengeResponse)
async def challenge_detail(
    challenge_id: str,
    db: AsyncSession = Depends(get_session),
) -> ChallengeResponse:
    return _challenge_response(await get_challenge(db, challenge_id))


@router.post("/challenges/tick", response_model=TickResponse)
async def run_tick(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
) -> TickResponse:
    """Advance the caller's active challenges from counted activity."""
    result = await tick(db, user_id, redis=redis)
    return TickResponse(
        updated=result.updated,
        completed=result.completed,
        coins_rewarded=result.coins_rewarded,
    )


@router.post("/challenges/{challenge_id}/join", response_model=JoinResponse)
async def join(
    challenge_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
) -> JoinResponse:
    """Pay the entry fee and join."""
    now = datetime.now(timezone.utc)
    uc = await join_challenge(db, user_id, challenge_id, redis=redis, now=now)
    wallet = await get_wallet(db, user_id)
    return JoinResponse(membership=_user_challenge_response(uc, now), coins=wallet.coins)


@router.delete("/challenges/{challenge_id}/membership", status_code=204)
async def leave(
    challenge_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> Response:
    """Leave a challenge that is not completed. The entry fee is not refunded."""
    await leave_challenge(db, user_id, challenge_id)
    return Response(status_code=204)


@router.get("/me/challenges", response_model=list[UserChallengeResponse])
async def my_challenges(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> list[UserChallengeResponse]:
    now = datetime.now(timezone.utc)
    return [_user_challenge_response(uc, now) for uc in await list_user_challenges(db, user_id)]


@router.post(
    "/admin/challenges",
    response_model=ChallengeSeedResponse,
    dependencies=[Depends(require_admin)],
)
async def admin_seed(
    body: ChallengeSeedRequest,
    db: AsyncSession = Depends(get_session),
) -> ChallengeSeedResponse:
    """Bulk upsert catalog rows keyed by id."""
    seeded = await seed_challenges(db, [item.model_dump() for item in body.challenges])
    logger.info("challenges_seeded", count=seeded)
    return ChallengeSeedResponse(seeded=seeded)
