"""Coin ledger: the only code that changes a wallet's ``coins``.

Invariant: for every user, ``wallet.coins`` equals the signed sum of their
coin_transactions (earned positive, spent negative).

``apply_credit`` / ``apply_debit`` mutate a wallet that the caller has
already locked with ``user_transaction``; accrual and the challenge engine use
them to move coins inside their own unit of work. ``credit`` / ``debit`` are
the standalone entry points that take the lock themselves.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stepcoin.config import get_settings
from stepcoin.db.models import CoinTransaction, Wallet
from stepcoin.errors import InsufficientFunds, InvalidAmount, WalletNotFound
from stepcoin.events import publish_wallet_update
from stepcoin.ledger.locking import user_transaction
from stepcoin.ledger.pagination import paginate_transactions

logger = logging.getLogger(__name__)


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(amount)


async def apply_credit(
    db: AsyncSession,
    wallet: Wallet,
    amount: int,
    description: str,
    now: datetime | None = None,
) -> CoinTransaction:
    """Credit a locked wallet and append the paired ``earned`` transaction."""
    _check_amount(amount)
    if now is None:
        now = datetime.now(timezone.utc)

    entry = CoinTransaction(
        user_id=wallet.user_id,
        amount=amount,
        kind="earned",
        description=description,
        created_at=now,
    )
    db.add(entry)

    wallet.coins += amount
    wallet.total_earned += amount
    wallet.last_updated = now

    await db.flush()
    logger.info("Credited %d coins to %s (%s)", amount, wallet.user_id, description)
    return entry


async def apply_debit(
    db: AsyncSession,
    wallet: Wallet,
    amount: int,
    description: str,
    now: datetime | None = None,
) -> CoinTransaction:
    """Debit a locked wallet. Raises InsufficientFunds without touching anything."""
    _check_amount(amount)
    if wallet.coins < amount:
        raise InsufficientFunds(wallet.coins, amount)
    if now is None:
        now = datetime.now(timezone.utc)

    entry = CoinTransaction(
        user_id=wallet.user_id,
        amount=amount,
        kind="spent",
        description=description,
        created_at=now,
    )
    db.add(entry)

    wallet.coins -= amount
    wallet.last_updated = now

    await db.flush()
    logger.info("Debited %d coins from %s (%s)", amount, wallet.user_id, description)
    return entry


async def credit(
    db: AsyncSession,
    user_id: str,
    amount: int,
    description: str,
    redis: object = None,
) -> CoinTransaction:
    """Credit ``amount`` coins to a user in its own transaction."""
    _check_amount(amount)
    async with user_transaction(db, user_id) as wallet:
        entry = await apply_credit(db, wallet, amount, description)

    await publish_wallet_update(redis, user_id, wallet.coins, amount, "earned", description)
    return entry


async def debit(
    db: AsyncSession,
    user_id: str,
    amount: int,
    description: str,
    redis: object = None,
) -> CoinTransaction:
    """Spend ``amount`` coins in its own transaction.

    Raises:
        InvalidAmount: amount is not a positive integer.
        InsufficientFunds: balance is below amount; nothing is written.
    """
    _check_amount(amount)
    async with user_transaction(db, user_id) as wallet:
        entry = await apply_debit(db, wallet, amount, description)

    await publish_wallet_update(redis, user_id, wallet.coins, amount, "spent", description)
    return entry


async def open_wallet(db: AsyncSession, user_id: str) -> Wallet:
    """Create the user's zero-valued wallet at first login. Idempotent."""
    async with user_transaction(db, user_id) as wallet:
        pass
    return wallet


async def get_wallet(db: AsyncSession, user_id: str) -> Wallet:
    """Read-only wallet snapshot."""
    result = await db.execute(select(Wallet).where(Wallet.user_id == user_id))
    wallet = result.scalar_one_or_none()
    if wallet is None:
        raise WalletNotFound(user_id)
    return wallet


async def get_history(
    db: AsyncSession,
    user_id: str,
    limit: int | None = None,
    cursor: str | None = None,
    kind: str | None = None,
) -> tuple[list[CoinTransaction], str | None]:
    """Transaction history, most recent first, as (page, next_cursor)."""
    settings = get_settings()
    if limit is None:
        limit = settings.history_default_page_size
    return await paginate_transactions(
        db, user_id, limit=limit, cursor=cursor, kind=kind,
        max_limit=settings.history_max_page_size,
    )


async def count_earned_transactions(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(CoinTransaction)
        .where(CoinTransaction.user_id == user_id, CoinTransaction.kind == "earned")
    )
    return int(result.scalar_one())


async def ledger_sum(db: AsyncSession, user_id: str) -> int:
    """Signed sum of a user's transactions (earned +, spent -)."""
    signed = case(
        (CoinTransaction.kind == "earned", CoinTransaction.amount),
        else_=-CoinTransaction.amount,
    )
    result = await db.execute(
        select(func.coalesce(func.sum(signed), 0)).where(CoinTransaction.user_id == user_id)
    )
    return int(result.scalar_one())


async def verify_ledger(db: AsyncSession, user_id: str) -> bool:
    """Check that the wallet balance matches its transaction log."""
    wallet = await get_wallet(db, user_id)
    total = await ledger_sum(db, user_id)
    if total != wallet.coins:
        logger.error(
            "Ledger mismatch for %s: coins=%d, transaction sum=%d",
            user_id, wallet.coins, total,
        )
        return False
    return True
