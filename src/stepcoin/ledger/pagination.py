"""Cursor-based pagination for the transaction history.

Uses keyset pagination on the monotonic transaction id (newest first), so a
page is stable while new transactions are appended and any cursor can be
replayed to restart iteration from the same position.
"""

from __future__ import annotations

import base64
import json

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from stepcoin.db.models import CoinTransaction


def encode_cursor(transaction_id: int) -> str:
    """Encode a cursor pointing just past ``transaction_id``."""
    payload = {"id": transaction_id}
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


def decode_cursor(cursor: str) -> int:
    """Decode a cursor into the last-seen transaction id.

    Raises:
        ValueError: If cursor is malformed.
    """
    try:
        raw = base64.urlsafe_b64decode(cursor.encode())
        data = json.loads(raw)
        if not isinstance(data.get("id"), int):
            msg = "Missing 'id' in cursor"
            raise ValueError(msg)
        return data["id"]
    except Exception as e:
        msg = f"Invalid cursor: {e}"
        raise ValueError(msg) from e


def apply_cursor(query: Select, cursor: str | None) -> Select:  # type: ignore[type-arg]
    """Apply keyset cursor. Assumes the query is ordered by id DESC."""
    if cursor is None:
        return query
    return query.where(CoinTransaction.id < decode_cursor(cursor))


async def paginate_transactions(
    db: AsyncSession,
    user_id: str,
    limit: int = 50,
    cursor: str | None = None,
    kind: str | None = None,
    max_limit: int = 100,
) -> tuple[list[CoinTransaction], str | None]:
    """Fetch a page of a user's transactions, most recent first.

    Returns:
        Tuple of (transactions, next_cursor or None when exhausted).
    """
    limit = max(1, min(limit, max_limit))

    query = (
        select(CoinTransaction)
        .where(CoinTransaction.user_id == user_id)
        .order_by(CoinTransaction.id.desc())
    )
    if kind is not None:
        query = query.where(CoinTransaction.kind == kind)

    query = apply_cursor(query, cursor)

    # Fetch one extra to detect has_more
    query = query.limit(limit + 1)

    result = await db.execute(query)
    rows = list(result.scalars().all())

    has_more = len(rows) > limit
    items = rows[:limit]

    next_cursor = None
    if has_more and items:
        next_cursor = encode_cursor(items[-1].id)

    return items, next_cursor
