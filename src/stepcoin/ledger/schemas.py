"""Wallet Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class WalletResponse(BaseModel):
    """Wallet snapshot."""

    user_id: str
    coins: int
    total_earned: int
    steps_counted: int
    last_updated: datetime | None = None


class TransactionResponse(BaseModel):
    """Single ledger entry."""

    id: int
    amount: int
    kind: Literal["earned", "spent"]
    description: str
    timestamp: datetime


class TransactionPage(BaseModel):
    """One page of history, most recent first."""

    transactions: list[TransactionResponse]
    next_cursor: str | None = None


class FitnessScoreResponse(BaseModel):
    score: int
    level: str


class ActivityStatsResponse(BaseModel):
    """Activity consistency derived from the transaction log."""

    total_days: int
    active_days: int
    streak_percentage: float
    fitness_score: int
    fitness_level: str


class LedgerCheckResponse(BaseModel):
    """Balance vs. transaction log comparison for one wallet."""

    user_id: str
    coins: int
    transaction_sum: int
    consistent: bool
