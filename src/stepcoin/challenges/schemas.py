"""Challenge Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

ChallengeType = Literal["steps", "distance", "streak"]


class ChallengeResponse(BaseModel):
    """Catalog entry with its live participant count."""

    id: str
    title: str
    description: str
    entry_fee: int
    reward: int
    start_date: datetime
    end_date: datetime
    type: ChallengeType
    goal: float
    daily_target: int | None = None
    participants_count: int


class UserChallengeResponse(BaseModel):
    """A user's participation record, with the challenge it refers to."""

    challenge_id: str
    joined_at: datetime
    completed: bool
    completed_at: datetime | None = None
    current_progress: float
    goal: float
    status: Literal["completed", "expired", "upcoming", "active"]
    challenge: ChallengeResponse


class JoinResponse(BaseModel):
    membership: UserChallengeResponse
    coins: int


class TickResponse(BaseModel):
    updated: list[str] = []
    completed: list[str] = []
    coins_rewarded: int = 0


class ChallengeSeedItem(BaseModel):
    """One catalog row for the admin seed endpoint."""

    id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=128)
    description: str = ""
    entry_fee: int = Field(0, ge=0)
    reward: int = Field(0, ge=0)
    start_date: datetime
    end_date: datetime
    type: ChallengeType
    goal: float = Field(..., gt=0)
    daily_target: int | None = Field(None, gt=0)

    @model_validator(mode="after")
    def _dates_ordered(self) -> ChallengeSeedItem:
        if self.start_date > self.end_date:
            msg = "start_date must not be after end_date"
            raise ValueError(msg)
        return self


class ChallengeSeedRequest(BaseModel):
    challenges: list[ChallengeSeedItem]


class ChallengeSeedResponse(BaseModel):
    seeded: int
