"""ORM models for the coin ledger, step accrual, and challenge engine.

Table definitions mirror alembic/versions/001_stepcoin_tables.py. Every
user-owned row is keyed by the identity provider's stable user id string.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stepcoin.db.base import Base, BigIntId, UTCDateTime

TRANSACTION_KINDS = ("earned", "spent")
CHALLENGE_TYPES = ("steps", "distance", "streak")


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class Wallet(Base):
    """One coin wallet per user. Only the ledger service mutates ``coins``."""

    __tablename__ = "wallets"
    __table_args__ = (
        CheckConstraint("coins >= 0", name="wallets_coins_non_negative"),
        CheckConstraint("total_earned >= 0", name="wallets_total_earned_non_negative"),
        CheckConstraint("steps_counted >= 0", name="wallets_steps_counted_non_negative"),
    )

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    coins: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    total_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    steps_counted: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    last_updated: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class CoinTransaction(Base):
    """Append-only coin movement log. Never updated, never deleted."""

    __tablename__ = "coin_transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="coin_transactions_amount_positive"),
        CheckConstraint("kind IN ('earned', 'spent')", name="coin_transactions_kind_valid"),
        Index("idx_coin_transactions_user_id", "user_id", "id"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("wallets.user_id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[str] = mapped_column(String(8), nullable=False)
    description: Mapped[str] = mapped_column(String(256), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    @property
    def signed_amount(self) -> int:
        return self.amount if self.kind == "earned" else -self.amount


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------


class StepCursor(Base):
    """Idempotence watermark for step and distance accrual."""

    __tablename__ = "step_cursors"
    __table_args__ = (
        CheckConstraint("last_counted_steps >= 0", name="step_cursors_steps_non_negative"),
        CheckConstraint("banked_steps >= 0", name="step_cursors_banked_non_negative"),
    )

    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("wallets.user_id", ondelete="CASCADE"), primary_key=True
    )
    last_counted_steps: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    banked_steps: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_counted_distance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    distance_counted: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    last_sampled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class DailyActivity(Base):
    """Counted steps/distance per user per UTC day (streak challenges read this)."""

    __tablename__ = "daily_activity"
    __table_args__ = (
        UniqueConstraint("user_id", "day", name="daily_activity_user_id_day_key"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("wallets.user_id", ondelete="CASCADE"), nullable=False
    )
    day: Mapped[date] = mapped_column(Date, nullable=False)
    steps: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    distance_meters: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")


class ActivitySnapshot(Base):
    """Latest raw sample received from the activity source."""

    __tablename__ = "activity_snapshots"

    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("wallets.user_id", ondelete="CASCADE"), primary_key=True
    )
    steps: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    distance_meters: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    source: Mapped[str] = mapped_column(String(16), nullable=False, default="push", server_default="push")
    last_synced: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


class Challenge(Base):
    """Catalog entry. Read-only after seeding except for participants_count."""

    __tablename__ = "challenges"
    __table_args__ = (
        CheckConstraint("entry_fee >= 0", name="challenges_entry_fee_non_negative"),
        CheckConstraint("reward >= 0", name="challenges_reward_non_negative"),
        CheckConstraint("goal > 0", name="challenges_goal_positive"),
        CheckConstraint("start_date <= end_date", name="challenges_dates_ordered"),
        CheckConstraint("type IN ('steps', 'distance', 'streak')", name="challenges_type_valid"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    entry_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    start_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    goal: Mapped[float] = mapped_column(Float, nullable=False)
    daily_target: Mapped[int | None] = mapped_column(Integer, nullable=True)
    participants_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class UserChallenge(Base):
    """A user's participation in one challenge — UNIQUE(user_id, challenge_id)."""

    __tablename__ = "user_challenges"
    __table_args__ = (
        UniqueConstraint("user_id", "challenge_id", name="user_challenges_user_id_challenge_id_key"),
        CheckConstraint("current_progress >= 0", name="user_challenges_progress_non_negative"),
        Index("idx_user_challenges_challenge_id", "challenge_id"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("wallets.user_id", ondelete="CASCADE"), nullable=False
    )
    challenge_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    current_progress: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    steps_baseline: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    distance_baseline: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    last_streak_day: Mapped[date | None] = mapped_column(Date, nullable=True)

    challenge: Mapped[Challenge] = relationship("Challenge", lazy="joined")
