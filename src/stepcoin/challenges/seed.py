"""Challenge catalog seeding — idempotent upsert keyed by challenge id.

Re-seeding updates catalog fields (title, fee, dates, ...) but never touches
participants_count, which is always derived from user_challenges. Startup
seeding keeps the dates of challenges that already exist.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from stepcoin.db.models import CHALLENGE_TYPES, Challenge

logger = logging.getLogger(__name__)

_CATALOG_FIELDS = (
    "title",
    "description",
    "entry_fee",
    "reward",
    "start_date",
    "end_date",
    "type",
    "goal",
    "daily_target",
)
_DATE_FIELDS = ("start_date", "end_date")


def demo_challenges(now: datetime | None = None) -> list[dict[str, Any]]:
    """The three launch challenges, dated relative to ``now``."""
    if now is None:
        now = datetime.now(timezone.utc)
    day = timedelta(days=1)
    return [
        {
            "id": "1",
            "title": "Weekend Warrior",
            "description": "Complete 20,000 steps over the weekend to win coins",
            "entry_fee": 5,
            "reward": 20,
            "start_date": now - day,
            "end_date": now + 3 * day,
            "type": "steps",
            "goal": 20000,
            "daily_target": None,
        },
        {
            "id": "2",
            "title": "Marathon Month",
            "description": "Walk the equivalent of a marathon (42.2km) in a month",
            "entry_fee": 10,
            "reward": 50,
            "start_date": now - 5 * day,
            "end_date": now + 25 * day,
            "type": "distance",
            "goal": 42200,  # meters
            "daily_target": None,
        },
        {
            "id": "3",
            "title": "Daily 10K",
            "description": "Complete 10,000 steps every day for 7 days",
            "entry_fee": 7,
            "reward": 30,
            "start_date": now,
            "end_date": now + 7 * day,
            "type": "streak",
            "goal": 7,  # days
            "daily_target": 10000,
        },
    ]


def validate_challenge_row(row: dict[str, Any]) -> None:
    """Reject rows that would break catalog invariants."""
    if row["type"] not in CHALLENGE_TYPES:
        msg = f"Challenge {row['id']}: unknown type {row['type']!r}"
        raise ValueError(msg)
    if row["goal"] <= 0:
        msg = f"Challenge {row['id']}: goal must be positive"
        raise ValueError(msg)
    if row["entry_fee"] < 0 or row["reward"] < 0:
        msg = f"Challenge {row['id']}: entry_fee and reward must be non-negative"
        raise ValueError(msg)
    if row["start_date"] > row["end_date"]:
        msg = f"Challenge {row['id']}: start_date must not be after end_date"
        raise ValueError(msg)


async def seed_challenges(
    db: AsyncSession,
    rows: list[dict[str, Any]],
    keep_existing_dates: bool = False,
) -> int:
    """Upsert catalog rows. An empty list is a no-op. Returns rows written.

    With ``keep_existing_dates`` an existing challenge keeps its start and end
    dates; only new rows take the dates given.
    """
    for row in rows:
        validate_challenge_row(row)
    if not rows:
        return 0

    insert = sqlite_insert if db.get_bind().dialect.name == "sqlite" else pg_insert
    now = datetime.now(timezone.utc)

    fields = _CATALOG_FIELDS
    if keep_existing_dates:
        fields = tuple(name for name in fields if name not in _DATE_FIELDS)

    for row in rows:
        values = {**row, "created_at": now, "participants_count": 0}
        values.setdefault("daily_target", None)
        values.setdefault("description", "")
        stmt = insert(Challenge).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={name: getattr(stmt.excluded, name) for name in fields},
        )
        await db.execute(stmt)

    await db.commit()
    logger.info("Seeded %d challenges", len(rows))
    return len(rows)
