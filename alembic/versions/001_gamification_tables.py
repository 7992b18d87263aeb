"""Gamification tables.

Creates badges, points_ledger, user_badges and notifications, and adds the
points balance columns to users. The directory tables (universities, users)
are normally owned by the identity service; they are created here only if
missing so a fresh database can be migrated on its own.

Revision ID: 001_gamification_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_gamification_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Directory ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS universities (
            id BIGSERIAL PRIMARY KEY,
            name VARCHAR(256) NOT NULL
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            email VARCHAR(320) UNIQUE NOT NULL,
            university_id BIGINT REFERENCES universities(id),
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # --- Badge tiers ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badges (
            id BIGSERIAL PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            description TEXT,
            points_threshold INTEGER UNIQUE NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # --- Balance columns on users ---
    op.execute("ALTER TABLE users ADD COLUMN IF NOT EXISTS points INTEGER NOT NULL DEFAULT 0")
    op.execute("ALTER TABLE users ADD COLUMN IF NOT EXISTS current_badge_id BIGINT REFERENCES badges(id)")
    op.execute("""
        ALTER TABLE users DROP CONSTRAINT IF EXISTS users_points_non_negative
    """)
    op.execute("""
        ALTER TABLE users ADD CONSTRAINT users_points_non_negative CHECK (points >= 0)
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_university ON users(university_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_points ON users(points DESC, id ASC)")

    # --- Points ledger (append-only) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS points_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            source_type VARCHAR(32) NOT NULL,
            source_id BIGINT,
            delta INTEGER NOT NULL CONSTRAINT points_ledger_delta_non_zero CHECK (delta <> 0),
            description TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_points_ledger_user
        ON points_ledger(user_id, created_at DESC)
    """)

    # --- Achievement history ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_id BIGINT NOT NULL REFERENCES badges(id),
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_badges_user_id_badge_id_key UNIQUE (user_id, badge_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_user_badges_user ON user_badges(user_id)")

    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL,
            message TEXT NOT NULL,
            link_url VARCHAR(256),
            is_read BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notifications_user
        ON notifications(user_id, created_at DESC)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notifications_unread
        ON notifications(user_id)
        WHERE is_read = false
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS user_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS points_ledger CASCADE")
    op.execute("ALTER TABLE users DROP CONSTRAINT IF EXISTS users_points_non_negative")
    op.execute("ALTER TABLE users DROP COLUMN IF EXISTS current_badge_id")
    op.execute("ALTER TABLE users DROP COLUMN IF EXISTS points")
    op.execute("DROP TABLE IF EXISTS badges CASCADE")
