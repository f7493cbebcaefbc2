"""Wallet endpoints — open, snapshot, history, fitness score, activity stats."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from stepcoin.auth.dependencies import get_current_user_id, require_admin
from stepcoin.database import get_session
from stepcoin.db.models import CoinTransaction, Wallet
from stepcoin.ledger.fitness import fitness_level, get_activity_stats, get_fitness_score
from stepcoin.ledger.schemas import (
    ActivityStatsResponse,
    FitnessScoreResponse,
    LedgerCheckResponse,
    TransactionPage,
    TransactionResponse,
    WalletResponse,
)
from stepcoin.ledger.service import get_history, get_wallet, ledger_sum, open_wallet, verify_ledger

router = APIRouter(prefix="/api/v1/wallet", tags=["Wallet"])
admin_router = APIRouter(prefix="/api/v1/admin/wallets", tags=["Admin"], dependencies=[Depends(require_admin)])


def wallet_response(wallet: Wallet) -> WalletResponse:
    return WalletResponse(
        user_id=wallet.user_id,
        coins=wallet.coins,
        total_earned=wallet.total_earned,
        steps_counted=wallet.steps_counted,
        last_updated=wallet.last_updated,
    )


def _transaction_response(entry: CoinTransaction) -> TransactionResponse:
    return TransactionResponse(
        id=entry.id,
        amount=entry.amount,
        kind=entry.kind,  # type: ignore[arg-type]
        description=entry.description,
        timestamp=entry.created_at,
    )


@router.post("", response_model=WalletResponse)
async def open_my_wallet(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> WalletResponse:
    """Create the caller's wallet on first login. Idempotent."""
    wallet = await open_wallet(db, user_id)
    return wallet_response(wallet)


@router.get("", response_model=WalletResponse)
async def my_wallet(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> WalletResponse:
    """Current balance and lifetime totals."""
    wallet = await get_wallet(db, user_id)
    return wallet_response(wallet)


@router.get("/transactions", response_model=TransactionPage)
async def my_transactions(
    limit: int | None = Query(None, ge=1, le=100),
    cursor: str | None = Query(None),
    kind: str | None = Query(None, pattern="^(earned|spent)$"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> TransactionPage:
    """Transaction history, newest first, cursor-paginated."""
    await get_wallet(db, user_id)
    try:
        items, next_cursor = await get_history(db, user_id, limit=limit, cursor=cursor, kind=kind)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return TransactionPage(
        transactions=[_transaction_response(t) for t in items],
        next_cursor=next_cursor,
    )


@router.get("/fitness-score", response_model=FitnessScoreResponse)
async def my_fitness_score(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> FitnessScoreResponse:
    """0-100 score from lifetime steps and earning consistency, with its level."""
    score = await get_fitness_score(db, user_id)
    return FitnessScoreResponse(score=score, level=fitness_level(score))


@router.get("/stats", response_model=ActivityStatsResponse)
async def my_activity_stats(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> ActivityStatsResponse:
    """Active days over days since the first transaction, plus the fitness level."""
    stats = await get_activity_stats(db, user_id)
    score = await get_fitness_score(db, user_id)
    return ActivityStatsResponse(
        total_days=stats.total_days,
        active_days=stats.active_days,
        streak_percentage=stats.streak_percentage,
        fitness_score=score,
        fitness_level=fitness_level(score),
    )


@admin_router.get("/{user_id}/verify", response_model=LedgerCheckResponse)
async def verify_wallet(
    user_id: str,
    db: AsyncSession = Depends(get_session),
) -> LedgerCheckResponse:
    """Compare a wallet's balance with the signed sum of its transaction log."""
    wallet = await get_wallet(db, user_id)
    return LedgerCheckResponse(
        user_id=user_id,
        coins=wallet.coins,
        transaction_sum=await ledger_sum(db, user_id),
        consistent=await verify_ledger(db, user_id),
    )
