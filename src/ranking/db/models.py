"""ORM models for the ranking tables.

The schema is created by the alembic revision in alembic/versions; tests
create it directly from this metadata.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ranking.db.base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Prestige
# ---------------------------------------------------------------------------


class CompetitionPrestige(Base):
    """Admin-configured prestige multiplier per competition."""

    __tablename__ = "competition_prestige"

    competition_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    tier: Mapped[str] = mapped_column(String(16), nullable=False, default="standard")
    multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------


class WriterScore(Base):
    """Aggregate score per writer, bulk-replaced on every recompute."""

    __tablename__ = "writer_scores"
    __table_args__ = (
        Index("idx_writer_scores_rank", "rank"),
        Index("idx_writer_scores_tier", "tier"),
    )

    writer_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    total_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    submission_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    placement_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tier: Mapped[str | None] = mapped_column(String(16), nullable=True)
    score_change_30d: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class PlacementScore(Base):
    """Scored placement; the table is cleared and rebuilt on every recompute."""

    __tablename__ = "placement_scores"
    __table_args__ = (Index("idx_placement_scores_writer", "writer_id"),)

    placement_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    writer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    competition_id: Mapped[str] = mapped_column(String(128), nullable=False)
    project_id: Mapped[str] = mapped_column(String(128), nullable=False)
    status_weight: Mapped[float] = mapped_column(Float, nullable=False)
    prestige_multiplier: Mapped[float] = mapped_column(Float, nullable=False)
    verification_multiplier: Mapped[float] = mapped_column(Float, nullable=False)
    time_decay_factor: Mapped[float] = mapped_column(Float, nullable=False)
    confidence_factor: Mapped[float] = mapped_column(Float, nullable=False)
    raw_score: Mapped[float] = mapped_column(Float, nullable=False)
    placement_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Badges & snapshots
# ---------------------------------------------------------------------------


class WriterBadge(Base):
    """Permanent per-placement credential."""

    __tablename__ = "writer_badges"
    __table_args__ = (
        UniqueConstraint("placement_id", name="uq_writer_badges_placement"),
        Index("idx_writer_badges_writer", "writer_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    writer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    label: Mapped[str] = mapped_column(String(256), nullable=False)
    placement_id: Mapped[str] = mapped_column(String(128), nullable=False)
    competition_id: Mapped[str] = mapped_column(String(128), nullable=False)
    awarded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ScoreSnapshot(Base):
    """Total score of a writer on one calendar day."""

    __tablename__ = "score_snapshots"
    __table_args__ = (UniqueConstraint("writer_id", "snapshot_date", name="uq_score_snapshots_writer_date"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    writer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    total_score: Mapped[float] = mapped_column(Float, nullable=False)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------


class AntiGamingFlag(Base):
    """Suspected gaming of the ranking, open until an admin resolves it."""

    __tablename__ = "anti_gaming_flags"
    __table_args__ = (Index("idx_anti_gaming_flags_status", "status"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    writer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    reason: Mapped[str] = mapped_column(String(32), nullable=False)
    details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    competition_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    project_ids: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")
    resolved_by_user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class RankingAppeal(Base):
    """Writer-initiated request to review their ranking."""

    __tablename__ = "ranking_appeals"
    __table_args__ = (Index("idx_ranking_appeals_status", "status"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    writer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")
    resolution_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_by_user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
