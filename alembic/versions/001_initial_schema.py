"""Initial schema: parks, votes, streaks, achievements, challenges, weekly competition.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            name VARCHAR(128),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Parks ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS parks (
            id SERIAL PRIMARY KEY,
            name VARCHAR(255) UNIQUE NOT NULL,
            location VARCHAR(255) NOT NULL DEFAULT '',
            image_url TEXT,
            rating DOUBLE PRECISION NOT NULL DEFAULT 1500 CHECK (rating > 0),
            vote_count INTEGER NOT NULL DEFAULT 0 CHECK (vote_count >= 0),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_parks_rating ON parks(rating)")

    # --- Votes ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS votes (
            id SERIAL PRIMARY KEY,
            park1_id INTEGER NOT NULL REFERENCES parks(id),
            park2_id INTEGER NOT NULL REFERENCES parks(id),
            winner_id INTEGER NOT NULL REFERENCES parks(id),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CHECK (park1_id <> park2_id),
            CHECK (winner_id IN (park1_id, park2_id))
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_votes_created_at ON votes(created_at)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS rating_history (
            id SERIAL PRIMARY KEY,
            park_id INTEGER NOT NULL REFERENCES parks(id),
            rating DOUBLE PRECISION NOT NULL,
            vote_id INTEGER NOT NULL REFERENCES votes(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_rating_history_park
        ON rating_history(park_id, created_at)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_votes (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            vote_id INTEGER NOT NULL REFERENCES votes(id) ON DELETE CASCADE,
            chosen_park_id INTEGER NOT NULL REFERENCES parks(id),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_votes_vote_id_key UNIQUE (vote_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_user_votes_user ON user_votes(user_id)")

    # --- Streaks ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_streaks (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_vote_date DATE,
            streak_start_date DATE,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_streaks_user_id_key UNIQUE (user_id),
            CHECK (longest_streak >= current_streak)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_streaks_current
        ON user_streaks(current_streak)
    """)

    # --- Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievement_definitions (
            id SERIAL PRIMARY KEY,
            code VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            icon VARCHAR(64) NOT NULL,
            color VARCHAR(32) NOT NULL,
            category VARCHAR(32) NOT NULL,
            target_value INTEGER NOT NULL DEFAULT 1,
            sort_order INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            achievement_code VARCHAR(64) NOT NULL REFERENCES achievement_definitions(code),
            unlocked_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_achievements_user_id_code_key UNIQUE (user_id, achievement_code)
        )
    """)

    # --- Challenges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenges (
            id SERIAL PRIMARY KEY,
            code VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            icon VARCHAR(64) NOT NULL,
            color VARCHAR(32) NOT NULL,
            type VARCHAR(16) NOT NULL CHECK (type IN ('monthly', 'seasonal')),
            target_value INTEGER NOT NULL CHECK (target_value > 0),
            start_date TIMESTAMPTZ NOT NULL,
            end_date TIMESTAMPTZ NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_challenge_progress (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            challenge_id INTEGER NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
            progress INTEGER NOT NULL DEFAULT 0,
            is_completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_challenge_progress_user_challenge_key UNIQUE (user_id, challenge_id)
        )
    """)

    # --- Weekly competition ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS weekly_competition_windows (
            id SERIAL PRIMARY KEY,
            week_start TIMESTAMPTZ NOT NULL,
            week_end TIMESTAMPTZ NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT weekly_competition_windows_week_start_key UNIQUE (week_start)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_weekly_windows_active
        ON weekly_competition_windows(is_active)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS weekly_badges (
            id SERIAL PRIMARY KEY,
            window_id INTEGER NOT NULL REFERENCES weekly_competition_windows(id) ON DELETE CASCADE,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            rank INTEGER NOT NULL CHECK (rank BETWEEN 1 AND 3),
            streak_length INTEGER NOT NULL,
            badge_icon VARCHAR(16) NOT NULL,
            badge_name VARCHAR(64) NOT NULL,
            awarded_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT weekly_badges_window_id_rank_key UNIQUE (window_id, rank)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_weekly_badges_user ON weekly_badges(user_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS scheduler_state (
            name VARCHAR(64) PRIMARY KEY,
            next_fire_at TIMESTAMPTZ NOT NULL,
            last_fired_at TIMESTAMPTZ
        )
    """)

    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            window_id INTEGER REFERENCES weekly_competition_windows(id) ON DELETE SET NULL,
            type VARCHAR(32) NOT NULL
                CHECK (type IN ('top_3_ranking', 'challenge_start', 'challenge_end')),
            title VARCHAR(256) NOT NULL,
            message TEXT NOT NULL,
            rank INTEGER,
            badge_icon VARCHAR(16),
            is_read BOOLEAN NOT NULL DEFAULT false,
            read_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notifications_user_created
        ON notifications(user_id, created_at)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS scheduler_state CASCADE")
    op.execute("DROP TABLE IF EXISTS weekly_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS weekly_competition_windows CASCADE")
    op.execute("DROP TABLE IF EXISTS user_challenge_progress CASCADE")
    op.execute("DROP TABLE IF EXISTS challenges CASCADE")
    op.execute("DROP TABLE IF EXISTS user_achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS achievement_definitions CASCADE")
    op.execute("DROP TABLE IF EXISTS user_streaks CASCADE")
    op.execute("DROP TABLE IF EXISTS user_votes CASCADE")
    op.execute("DROP TABLE IF EXISTS rating_history CASCADE")
    op.execute("DROP TABLE IF EXISTS votes CASCADE")
    op.execute("DROP TABLE IF EXISTS parks CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
