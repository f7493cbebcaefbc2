"""Activity Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from stepcoin.ledger.schemas import WalletResponse


class ActivitySampleRequest(BaseModel):
    """A cumulative sample pushed by the client (totals, not increments)."""

    steps: int = Field(..., ge=0)
    distance_meters: float = Field(0.0, ge=0)
    sampled_at: datetime | None = None


class ActivitySnapshotResponse(BaseModel):
    """Latest raw totals reported for the user."""

    steps: int
    distance_meters: float
    source: str
    last_synced: datetime | None = None


class AccrualResponse(BaseModel):
    coins_credited: int
    steps_counted: int
    distance_counted: float
    source_reset: bool = False


class ProgressResponse(BaseModel):
    updated: list[str] = []
    completed: list[str] = []
    coins_rewarded: int = 0


class SyncResponse(BaseModel):
    """Result of ingesting one sample: accrual, challenge tick, and the new balance."""

    activity: ActivitySnapshotResponse
    accrual: AccrualResponse
    progress: ProgressResponse
    wallet: WalletResponse
