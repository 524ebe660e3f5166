"""Ranking tables.

Creates competition_prestige, writer_scores, placement_scores,
writer_badges, score_snapshots, anti_gaming_flags and ranking_appeals.

Revision ID: 001_ranking_tables
Revises: None
Create Date: 2026-10-16
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_ranking_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Prestige ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS competition_prestige (
            competition_id VARCHAR(128) PRIMARY KEY,
            tier VARCHAR(16) NOT NULL DEFAULT 'standard',
            multiplier DOUBLE PRECISION NOT NULL DEFAULT 1.0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Writer Scores ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS writer_scores (
            writer_id VARCHAR(128) PRIMARY KEY,
            total_score DOUBLE PRECISION NOT NULL DEFAULT 0,
            submission_count INTEGER NOT NULL DEFAULT 0,
            placement_count INTEGER NOT NULL DEFAULT 0,
            rank INTEGER,
            tier VARCHAR(16),
            score_change_30d DOUBLE PRECISION NOT NULL DEFAULT 0,
            last_updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_writer_scores_rank
        ON writer_scores(rank)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_writer_scores_tier
        ON writer_scores(tier)
    """)

    # --- Placement Scores ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS placement_scores (
            placement_id VARCHAR(128) PRIMARY KEY,
            writer_id VARCHAR(128) NOT NULL,
            competition_id VARCHAR(128) NOT NULL,
            project_id VARCHAR(128) NOT NULL,
            status_weight DOUBLE PRECISION NOT NULL,
            prestige_multiplier DOUBLE PRECISION NOT NULL,
            verification_multiplier DOUBLE PRECISION NOT NULL,
            time_decay_factor DOUBLE PRECISION NOT NULL,
            confidence_factor DOUBLE PRECISION NOT NULL,
            raw_score DOUBLE PRECISION NOT NULL,
            placement_date TIMESTAMPTZ NOT NULL,
            computed_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_placement_scores_writer
        ON placement_scores(writer_id)
    """)

    # --- Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS writer_badges (
            id VARCHAR(64) PRIMARY KEY,
            writer_id VARCHAR(128) NOT NULL,
            label VARCHAR(256) NOT NULL,
            placement_id VARCHAR(128) NOT NULL,
            competition_id VARCHAR(128) NOT NULL,
            awarded_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_writer_badges_placement UNIQUE (placement_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_writer_badges_writer
        ON writer_badges(writer_id)
    """)

    # --- Snapshots ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS score_snapshots (
            id VARCHAR(64) PRIMARY KEY,
            writer_id VARCHAR(128) NOT NULL,
            total_score DOUBLE PRECISION NOT NULL,
            snapshot_date DATE NOT NULL,
            CONSTRAINT uq_score_snapshots_writer_date UNIQUE (writer_id, snapshot_date)
        )
    """)

    # --- Anti-gaming Flags ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS anti_gaming_flags (
            id VARCHAR(64) PRIMARY KEY,
            writer_id VARCHAR(128) NOT NULL,
            reason VARCHAR(32) NOT NULL,
            details TEXT NOT NULL DEFAULT '',
            competition_id VARCHAR(128),
            project_ids JSONB NOT NULL DEFAULT '[]',
            status VARCHAR(16) NOT NULL DEFAULT 'open',
            resolved_by_user_id VARCHAR(128),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_anti_gaming_flags_status
        ON anti_gaming_flags(status)
    """)

    # --- Appeals ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS ranking_appeals (
            id VARCHAR(64) PRIMARY KEY,
            writer_id VARCHAR(128) NOT NULL,
            reason TEXT NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'open',
            resolution_note TEXT,
            resolved_by_user_id VARCHAR(128),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_ranking_appeals_status
        ON ranking_appeals(status)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ranking_appeals CASCADE")
    op.execute("DROP TABLE IF EXISTS anti_gaming_flags CASCADE")
    op.execute("DROP TABLE IF EXISTS score_snapshots CASCADE")
    op.execute("DROP TABLE IF EXISTS writer_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS placement_scores CASCADE")
    op.execute("DROP TABLE IF EXISTS writer_scores CASCADE")
    op.execute("DROP TABLE IF EXISTS competition_prestige CASCADE")
