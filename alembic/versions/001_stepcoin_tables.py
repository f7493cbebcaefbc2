"""StepCoin schema: wallets, ledger, activity, challenges.

Revision ID: 001_stepcoin_tables
Revises: None
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_stepcoin_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Wallets ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS wallets (
            user_id VARCHAR(128) PRIMARY KEY,
            coins BIGINT NOT NULL DEFAULT 0,
            total_earned BIGINT NOT NULL DEFAULT 0,
            steps_counted BIGINT NOT NULL DEFAULT 0,
            last_updated TIMESTAMPTZ,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT wallets_coins_non_negative CHECK (coins >= 0),
            CONSTRAINT wallets_total_earned_non_negative CHECK (total_earned >= 0),
            CONSTRAINT wallets_steps_counted_non_negative CHECK (steps_counted >= 0)
        )
    """)

    # --- Coin transactions (append-only) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS coin_transactions (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(128) NOT NULL REFERENCES wallets(user_id) ON DELETE CASCADE,
            amount INTEGER NOT NULL,
            kind VARCHAR(8) NOT NULL,
            description VARCHAR(256) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT coin_transactions_amount_positive CHECK (amount > 0),
            CONSTRAINT coin_transactions_kind_valid CHECK (kind IN ('earned', 'spent'))
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_coin_transactions_user_id
        ON coin_transactions(user_id, id)
    """)

    # --- Step cursors ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS step_cursors (
            user_id VARCHAR(128) PRIMARY KEY REFERENCES wallets(user_id) ON DELETE CASCADE,
            last_counted_steps BIGINT NOT NULL DEFAULT 0,
            banked_steps INTEGER NOT NULL DEFAULT 0,
            last_counted_distance DOUBLE PRECISION NOT NULL DEFAULT 0,
            distance_counted DOUBLE PRECISION NOT NULL DEFAULT 0,
            last_sampled_at TIMESTAMPTZ,
            updated_at TIMESTAMPTZ,
            CONSTRAINT step_cursors_steps_non_negative CHECK (last_counted_steps >= 0),
            CONSTRAINT step_cursors_banked_non_negative CHECK (banked_steps >= 0)
        )
    """)

    # --- Daily activity buckets ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS daily_activity (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(128) NOT NULL REFERENCES wallets(user_id) ON DELETE CASCADE,
            day DATE NOT NULL,
            steps BIGINT NOT NULL DEFAULT 0,
            distance_meters DOUBLE PRECISION NOT NULL DEFAULT 0,
            CONSTRAINT daily_activity_user_id_day_key UNIQUE (user_id, day)
        )
    """)

    # --- Latest raw snapshot ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS activity_snapshots (
            user_id VARCHAR(128) PRIMARY KEY REFERENCES wallets(user_id) ON DELETE CASCADE,
            steps BIGINT NOT NULL DEFAULT 0,
            distance_meters DOUBLE PRECISION NOT NULL DEFAULT 0,
            source VARCHAR(16) NOT NULL DEFAULT 'push',
            last_synced TIMESTAMPTZ
        )
    """)

    # --- Challenge catalog ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenges (
            id VARCHAR(64) PRIMARY KEY,
            title VARCHAR(128) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            entry_fee INTEGER NOT NULL DEFAULT 0,
            reward INTEGER NOT NULL DEFAULT 0,
            start_date TIMESTAMPTZ NOT NULL,
            end_date TIMESTAMPTZ NOT NULL,
            type VARCHAR(16) NOT NULL,
            goal DOUBLE PRECISION NOT NULL,
            daily_target INTEGER,
            participants_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT challenges_entry_fee_non_negative CHECK (entry_fee >= 0),
            CONSTRAINT challenges_reward_non_negative CHECK (reward >= 0),
            CONSTRAINT challenges_goal_positive CHECK (goal > 0),
            CONSTRAINT challenges_dates_ordered CHECK (start_date <= end_date),
            CONSTRAINT challenges_type_valid CHECK (type IN ('steps', 'distance', 'streak'))
        )
    """)

    # --- Participation ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_challenges (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(128) NOT NULL REFERENCES wallets(user_id) ON DELETE CASCADE,
            challenge_id VARCHAR(64) NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            current_progress DOUBLE PRECISION NOT NULL DEFAULT 0,
            steps_baseline BIGINT NOT NULL DEFAULT 0,
            distance_baseline DOUBLE PRECISION NOT NULL DEFAULT 0,
            last_streak_day DATE,
            CONSTRAINT user_challenges_user_id_challenge_id_key UNIQUE (user_id, challenge_id),
            CONSTRAINT user_challenges_progress_non_negative CHECK (current_progress >= 0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_challenges_challenge_id
        ON user_challenges(challenge_id)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_challenges_active
        ON user_challenges(user_id)
        WHERE completed = false
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_challenges CASCADE")
    op.execute("DROP TABLE IF EXISTS challenges CASCADE")
    op.execute("DROP TABLE IF EXISTS activity_snapshots CASCADE")
    op.execute("DROP TABLE IF EXISTS daily_activity CASCADE")
    op.execute("DROP TABLE IF EXISTS step_cursors CASCADE")
    op.execute("DROP TABLE IF EXISTS coin_transactions CASCADE")
    op.execute("DROP TABLE IF EXISTS wallets CASCADE")
