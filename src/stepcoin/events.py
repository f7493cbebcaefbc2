"""Redis pub/sub broadcasts for wallet and challenge changes.

Published after the owning transaction commits. Publishing is best-effort:
a missing client or a Redis error never fails the coin movement itself.
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

WALLET_UPDATE_CHANNEL = "pubsub:wallet_update"
CHALLENGE_COMPLETED_CHANNEL = "pubsub:challenge_completed"


async def publish(redis: object, channel: str, payload: dict[str, Any]) -> bool:
    """Publish a JSON payload. Returns True if it was handed to Redis."""
    if redis is None:
        return False
    try:
        await redis.publish(channel, json.dumps(payload, default=str))  # type: ignore[attr-defined]
    except Exception:
        logger.warning("Failed to publish %s broadcast", channel, exc_info=True)
        return False
    return True


async def publish_wallet_update(
    redis: object,
    user_id: str,
    coins: int,
    amount: int,
    kind: str,
    description: str,
) -> bool:
    return await publish(redis, WALLET_UPDATE_CHANNEL, {
        "user_id": user_id,
        "coins": coins,
        "amount": amount,
        "kind": kind,
        "description": description,
    })


async def publish_challenge_completed(
    redis: object,
    user_id: str,
    challenge_id: str,
    title: str,
    reward: int,
) -> bool:
    return await publish(redis, CHALLENGE_COMPLETED_CHANNEL, {
        "user_id": user_id,
        "challenge_id": challenge_id,
        "title": title,
        "reward": reward,
    })
