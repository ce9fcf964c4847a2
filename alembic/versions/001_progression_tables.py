"""Progression tables.

Creates the component catalog, leveling ledger, specialization and quest
graph tables. ``users`` is owned by the account service; it is created here
only when missing so the schema also stands up on its own.

Revision ID: 001_progression_tables
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_progression_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users (projection) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            username VARCHAR(64) UNIQUE NOT NULL,
            profile_image_url TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # --- Component catalog ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS maneuver_components (
            id BIGSERIAL PRIMARY KEY,
            division VARCHAR(32) NOT NULL,
            component_id VARCHAR(64) NOT NULL,
            display_name VARCHAR(128) NOT NULL,
            description TEXT,
            xp_value INTEGER NOT NULL DEFAULT 0,
            metadata JSONB NOT NULL DEFAULT '{}',
            is_active BOOLEAN NOT NULL DEFAULT true,
            updated_at TIMESTAMPTZ,
            CONSTRAINT maneuver_components_division_component_key UNIQUE (division, component_id)
        )
    """)

    # --- Leveling ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_progression (
            user_id BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            xp_total BIGINT NOT NULL DEFAULT 0 CHECK (xp_total >= 0 AND xp_total <= 1000000),
            xp_current BIGINT NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 1,
            updated_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            video_id VARCHAR(64),
            amount INTEGER NOT NULL,
            source VARCHAR(32) NOT NULL,
            contributions JSONB NOT NULL DEFAULT '[]',
            context JSONB,
            created_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_xp_ledger_user_video
        ON xp_ledger(user_id, video_id)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL,
            subtype VARCHAR(64) NOT NULL,
            title VARCHAR(256) NOT NULL,
            description TEXT,
            read BOOLEAN NOT NULL DEFAULT false,
            metadata JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notifications_user
        ON notifications(user_id, created_at DESC)
    """)

    # --- Specializations ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_specializations (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            specialization VARCHAR(16) NOT NULL CHECK (specialization IN ('slider', 'kicker', 'surface')),
            level INTEGER NOT NULL DEFAULT 1 CHECK (level BETWEEN 1 AND 10),
            xp_total BIGINT NOT NULL DEFAULT 0,
            xp_current BIGINT NOT NULL DEFAULT 0,
            tricks_completed INTEGER NOT NULL DEFAULT 0,
            best_trick_id VARCHAR(64),
            best_trick_xp INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ,
            updated_at TIMESTAMPTZ,
            CONSTRAINT user_specializations_user_track_key UNIQUE (user_id, specialization)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_specializations_leaderboard
        ON user_specializations(specialization, level DESC, xp_total DESC)
    """)

    # --- Quest graph ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS quest_nodes (
            id VARCHAR(64) PRIMARY KEY,
            specialization VARCHAR(16) NOT NULL,
            tier INTEGER NOT NULL,
            position INTEGER NOT NULL DEFAULT 0,
            branch_type VARCHAR(16) NOT NULL DEFAULT 'none',
            display_row INTEGER,
            title VARCHAR(128) NOT NULL,
            description TEXT,
            trick_id VARCHAR(64),
            prerequisites JSONB NOT NULL DEFAULT '[]',
            merge_left_id VARCHAR(64) REFERENCES quest_nodes(id),
            merge_right_id VARCHAR(64) REFERENCES quest_nodes(id),
            required_for_unlock BOOLEAN NOT NULL DEFAULT true,
            xp_bonus INTEGER NOT NULL DEFAULT 0,
            repeatable BOOLEAN NOT NULL DEFAULT false,
            is_shared_node BOOLEAN NOT NULL DEFAULT false
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_quest_nodes_specialization
        ON quest_nodes(specialization, tier, position)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS quest_completions (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            node_id VARCHAR(64) NOT NULL REFERENCES quest_nodes(id) ON DELETE CASCADE,
            video_id VARCHAR(64) NOT NULL,
            attempt_number INTEGER NOT NULL,
            is_first_completion BOOLEAN NOT NULL DEFAULT false,
            xp_awarded INTEGER NOT NULL DEFAULT 0,
            xp_bonus_received INTEGER NOT NULL DEFAULT 0,
            bonus_withheld BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            CONSTRAINT quest_completions_attempt_key UNIQUE (user_id, node_id, attempt_number)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_quest_completions_video
        ON quest_completions(video_id)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS quest_progress (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            node_id VARCHAR(64) NOT NULL REFERENCES quest_nodes(id) ON DELETE CASCADE,
            unlocked_at TIMESTAMPTZ,
            times_completed INTEGER NOT NULL DEFAULT 0,
            first_completed_at TIMESTAMPTZ,
            last_completed_at TIMESTAMPTZ,
            best_video_id VARCHAR(64),
            best_video_xp INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ,
            CONSTRAINT quest_progress_user_node_key UNIQUE (user_id, node_id)
        )
    """)

    # --- Operations ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS reconciliation_flags (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            node_id VARCHAR(64),
            video_id VARCHAR(64),
            reason VARCHAR(64) NOT NULL,
            detail TEXT,
            created_at TIMESTAMPTZ,
            resolved_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_reconciliation_flags_open
        ON reconciliation_flags(created_at) WHERE resolved_at IS NULL
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS reconciliation_flags CASCADE")
    op.execute("DROP TABLE IF EXISTS quest_progress CASCADE")
    op.execute("DROP TABLE IF EXISTS quest_completions CASCADE")
    op.execute("DROP TABLE IF EXISTS quest_nodes CASCADE")
    op.execute("DROP TABLE IF EXISTS user_specializations CASCADE")
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS xp_ledger CASCADE")
    op.execute("DROP TABLE IF EXISTS user_progression CASCADE")
    op.execute("DROP TABLE IF EXISTS maneuver_components CASCADE")
