"""Baseline schema: users, sessions, friendships, habits, completions.

Revision ID: 001_baseline
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_baseline"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            email VARCHAR(320) UNIQUE NOT NULL,
            password_hash VARCHAR(256) NOT NULL,
            username VARCHAR(64) UNIQUE NOT NULL,
            full_name VARCHAR(128),
            avatar_url TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            last_login TIMESTAMPTZ,
            login_count INTEGER NOT NULL DEFAULT 0
        )
    """)

    # --- Sessions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS auth_sessions (
            id VARCHAR(36) PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            refresh_token_hash VARCHAR(128) NOT NULL,
            issued_at TIMESTAMPTZ NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL,
            is_revoked BOOLEAN NOT NULL DEFAULT false,
            revoked_at TIMESTAMPTZ,
            replaced_by VARCHAR(36),
            ip_address VARCHAR(45),
            user_agent VARCHAR(512)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_auth_sessions_user
        ON auth_sessions(user_id)
    """)

    # --- Friendships: one row per unordered pair ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS friendships (
            id BIGSERIAL PRIMARY KEY,
            requester_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            target_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            user_low_id BIGINT NOT NULL,
            user_high_id BIGINT NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            responded_at TIMESTAMPTZ,
            CONSTRAINT uq_friendships_pair UNIQUE (user_low_id, user_high_id),
            CONSTRAINT ck_friendships_pair_order CHECK (user_low_id < user_high_id),
            CONSTRAINT ck_friendships_status CHECK (status IN ('pending', 'accepted'))
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_friendships_requester_id
        ON friendships(requester_id)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_friendships_target_id
        ON friendships(target_id)
    """)

    # --- Habits ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS habits (
            id BIGSERIAL PRIMARY KEY,
            creator_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title VARCHAR(200) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_habits_creator_id
        ON habits(creator_id)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS player_habits (
            id BIGSERIAL PRIMARY KEY,
            habit_id BIGINT NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
            owner_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            status VARCHAR(16) NOT NULL DEFAULT 'active',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_player_habits_habit_owner UNIQUE (habit_id, owner_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_player_habits_owner_id
        ON player_habits(owner_id)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS habit_completions (
            id BIGSERIAL PRIMARY KEY,
            assignment_id BIGINT NOT NULL REFERENCES player_habits(id) ON DELETE CASCADE,
            completed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            completed_on DATE NOT NULL,
            CONSTRAINT uq_habit_completions_day UNIQUE (assignment_id, completed_on)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_habit_completions_assignment_id
        ON habit_completions(assignment_id)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS habit_completions CASCADE")
    op.execute("DROP TABLE IF EXISTS player_habits CASCADE")
    op.execute("DROP TABLE IF EXISTS habits CASCADE")
    op.execute("DROP TABLE IF EXISTS friendships CASCADE")
    op.execute("DROP TABLE IF EXISTS auth_sessions CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
