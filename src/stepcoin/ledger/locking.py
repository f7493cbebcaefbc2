"""Per-user serialization for ledger, accrual, and challenge writes.

A user's wallet, transaction log, step cursor, and challenge rows form one
unit. ``user_transaction`` serializes writers on that unit twice over:

1. an in-process ``asyncio.Lock`` keyed by user id, and
2. ``SELECT ... FOR UPDATE`` on the wallet row, which holds across processes
   on Postgres (SQLite ignores it; the single-connection pool already
   serializes there).

The block commits on clean exit and rolls back on any exception, including
cancellation, so no partial mutation is ever visible.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stepcoin.db.models import Wallet
from stepcoin.errors import WalletNotFound

logger = logging.getLogger(__name__)

_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()


def get_user_lock(user_id: str) -> asyncio.Lock:
    """Return the process-wide lock for a user (created on demand)."""
    lock = _locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _locks[user_id] = lock
    return lock


async def _select_wallet_for_update(db: AsyncSession, user_id: str) -> Wallet | None:
    result = await db.execute(
        select(Wallet)
        .where(Wallet.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def lock_wallet(db: AsyncSession, user_id: str, *, create: bool = True) -> Wallet:
    """Load (optionally creating) the wallet row under a row lock."""
    wallet = await _select_wallet_for_update(db, user_id)
    if wallet is not None:
        return wallet
    if not create:
        raise WalletNotFound(user_id)

    now = datetime.now(timezone.utc)
    wallet = Wallet(
        user_id=user_id,
        coins=0,
        total_earned=0,
        steps_counted=0,
        last_updated=now,
        created_at=now,
    )
    db.add(wallet)
    try:
        await db.flush()
    except IntegrityError:
        # Another process created it between our SELECT and INSERT.
        await db.rollback()
        wallet = await _select_wallet_for_update(db, user_id)
        if wallet is None:
            raise
        return wallet

    logger.info("Opened wallet for user %s", user_id)
    return wallet


@asynccontextmanager
async def user_transaction(
    db: AsyncSession,
    user_id: str,
    *,
    create: bool = True,
) -> AsyncIterator[Wallet]:
    """Run a block as the single writer of ``user_id``'s unit; yields the locked wallet."""
    async with get_user_lock(user_id):
        try:
            wallet = await lock_wallet(db, user_id, create=create)
            yield wallet
            await db.commit()
        except BaseException:
            await db.rollback()
            raise
