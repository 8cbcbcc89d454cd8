"""Per-occurrence challenge progress; referral program tables.

Revision ID: 002_challenge_periods_and_referrals
Revises: 001_initial_schema
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_challenge_periods_and_referrals"
down_revision: str | None = "001_initial_schema"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Challenge progress keyed on the occurrence it was counted against ---
    op.execute("ALTER TABLE user_challenge_progress ADD COLUMN IF NOT EXISTS period_start TIMESTAMPTZ")
    op.execute("""
        UPDATE user_challenge_progress p
        SET period_start = c.start_date
        FROM challenges c
        WHERE c.id = p.challenge_id AND p.period_start IS NULL
    """)
    op.execute("ALTER TABLE user_challenge_progress ALTER COLUMN period_start SET NOT NULL")
    op.execute("""
        ALTER TABLE user_challenge_progress
        DROP CONSTRAINT IF EXISTS user_challenge_progress_user_challenge_key
    """)
    op.execute("""
        ALTER TABLE user_challenge_progress
        ADD CONSTRAINT user_challenge_progress_user_challenge_period_key
        UNIQUE (user_id, challenge_id, period_start)
    """)

    # --- Referrals ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_referral_stats (
            id SERIAL PRIMARY KEY,
            user_id INTEGER UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            referral_code VARCHAR(8) UNIQUE NOT NULL,
            total_invites INTEGER NOT NULL DEFAULT 0 CHECK (total_invites >= 0),
            completed_referrals INTEGER NOT NULL DEFAULT 0 CHECK (completed_referrals >= 0),
            total_rewards_earned INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS referrals (
            id SERIAL PRIMARY KEY,
            referrer_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            referee_email VARCHAR(255),
            referee_id INTEGER UNIQUE REFERENCES users(id) ON DELETE SET NULL,
            referral_code VARCHAR(8) UNIQUE NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'completed')),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            expires_at TIMESTAMPTZ NOT NULL,
            completed_at TIMESTAMPTZ
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_referrals_referrer ON referrals(referrer_id)")
    op.execute("""
        CREATE TABLE IF NOT EXISTS referral_rewards (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            referral_id INTEGER UNIQUE NOT NULL REFERENCES referrals(id) ON DELETE CASCADE,
            reward_type VARCHAR(32) NOT NULL,
            reward_value INTEGER NOT NULL,
            description VARCHAR(256) NOT NULL,
            is_redeemed BOOLEAN NOT NULL DEFAULT false,
            awarded_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_referral_rewards_user ON referral_rewards(user_id)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS referral_rewards CASCADE")
    op.execute("DROP TABLE IF EXISTS referrals CASCADE")
    op.execute("DROP TABLE IF EXISTS user_referral_stats CASCADE")

    # Keep only the latest occurrence per (user, challenge) so the old key holds.
    op.execute("""
        DELETE FROM user_challenge_progress p
        USING user_challenge_progress newer
        WHERE newer.user_id = p.user_id
          AND newer.challenge_id = p.challenge_id
          AND newer.period_start > p.period_start
    """)
    op.execute("""
        ALTER TABLE user_challenge_progress
        DROP CONSTRAINT IF EXISTS user_challenge_progress_user_challenge_period_key
    """)
    op.execute("""
        ALTER TABLE user_challenge_progress
        ADD CONSTRAINT user_challenge_progress_user_challenge_key UNIQUE (user_id, challenge_id)
    """)
    op.execute("ALTER TABLE user_challenge_progress DROP COLUMN IF EXISTS period_start")
