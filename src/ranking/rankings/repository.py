"""Score repository: persistence and query shaping for the ranking tables.

All functions take the caller's session and never commit; the caller owns
the transaction boundary.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ranking.db.models import (
    AntiGamingFlag,
    CompetitionPrestige,
    PlacementScore,
    RankingAppeal,
    ScoreSnapshot,
    WriterBadge,
    WriterScore,
)
from ranking.scoring.formulas import DEFAULT_PRESTIGE_MULTIPLIER


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4()}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WriterScoreRow:
    """Aggregate computed by a recompute, before it is persisted."""

    writer_id: str
    total_score: float
    submission_count: int
    placement_count: int
    rank: int | None
    tier: str | None
    score_change_30d: float
    last_updated_at: datetime


# ---------------------------------------------------------------------------
# Prestige
# ---------------------------------------------------------------------------


async def get_prestige(db: AsyncSession, competition_id: str) -> CompetitionPrestige | None:
    return await db.get(CompetitionPrestige, competition_id)


async def list_prestige(db: AsyncSession) -> Sequence[CompetitionPrestige]:
    result = await db.execute(select(CompetitionPrestige).order_by(CompetitionPrestige.competition_id))
    return result.scalars().all()


async def upsert_prestige(db: AsyncSession, competition_id: str, tier: str, multiplier: float) -> CompetitionPrestige:
    """Insert or update the prestige config for a competition."""
    now = _utcnow()
    config = await db.get(CompetitionPrestige, competition_id)
    if config is None:
        config = CompetitionPrestige(competition_id=competition_id, tier=tier, multiplier=multiplier, updated_at=now)
        db.add(config)
    else:
        config.tier = tier
        config.multiplier = multiplier
        config.updated_at = now
    await db.flush()
    return config


async def prestige_lookup(db: AsyncSession) -> dict[str, float]:
    """competition_id -> multiplier. Missing competitions use DEFAULT_PRESTIGE_MULTIPLIER."""
    return {p.competition_id: p.multiplier for p in await list_prestige(db)}


def prestige_for(lookup: dict[str, float], competition_id: str) -> float:
    return lookup.get(competition_id, DEFAULT_PRESTIGE_MULTIPLIER)


# ---------------------------------------------------------------------------
# Writer scores
# ---------------------------------------------------------------------------


async def get_writer_score(db: AsyncSession, writer_id: str) -> WriterScore | None:
    return await db.get(WriterScore, writer_id)


async def replace_writer_scores(
    db: AsyncSession,
    rows: Sequence[WriterScoreRow],
    present_writer_ids: Iterable[str] = (),
) -> None:
    """Replace the rows of every writer seen by this computation.

    ``present_writer_ids`` may name writers that no longer have a positive
    total; their old rows are removed. Writers absent from the computation
    are left as they are.
    """
    writer_ids = sorted({r.writer_id for r in rows} | set(present_writer_ids))
    if not writer_ids:
        return
    # Chunked to stay under bind-parameter limits
    for start in range(0, len(writer_ids), 500):
        chunk = writer_ids[start:start + 500]
        await db.execute(delete(WriterScore).where(WriterScore.writer_id.in_(chunk)))
    db.add_all(
        WriterScore(
            writer_id=r.writer_id,
            total_score=r.total_score,
            submission_count=r.submission_count,
            placement_count=r.placement_count,
            rank=r.rank,
            tier=r.tier,
            score_change_30d=r.score_change_30d,
            last_updated_at=r.last_updated_at,
        )
        for r in rows
    )
    await db.flush()


async def list_leaderboard(
    db: AsyncSession,
    *,
    tier: str | None = None,
    trending: bool = False,
    limit: int = 20,
    offset: int = 0,
    allowed_writer_ids: set[str] | None = None,
) -> tuple[Sequence[WriterScore], int]:
    """Filtered, sorted, paginated slice of ranked writers plus the filtered total."""
    if allowed_writer_ids is not None and not allowed_writer_ids:
        return [], 0

    conditions = [WriterScore.total_score > 0]
    if tier:
        conditions.append(WriterScore.tier == tier)
    if allowed_writer_ids is not None:
        conditions.append(WriterScore.writer_id.in_(sorted(allowed_writer_ids)))

    total_result = await db.execute(select(func.count()).select_from(WriterScore).where(*conditions))
    total = total_result.scalar_one()

    if trending:
        order_by = (WriterScore.score_change_30d.desc(), WriterScore.total_score.desc(), WriterScore.writer_id)
    else:
        order_by = (WriterScore.rank.asc().nulls_last(), WriterScore.total_score.desc(), WriterScore.writer_id)

    result = await db.execute(
        select(WriterScore).where(*conditions).order_by(*order_by).offset(offset).limit(limit)
    )
    return result.scalars().all(), total


async def count_ranked_writers(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(WriterScore).where(WriterScore.total_score > 0))
    return result.scalar_one()


async def list_ranked_writers(db: AsyncSession) -> Sequence[WriterScore]:
    result = await db.execute(
        select(WriterScore).where(WriterScore.total_score > 0).order_by(WriterScore.rank.asc().nulls_last())
    )
    return result.scalars().all()


# ---------------------------------------------------------------------------
# Placement scores
# ---------------------------------------------------------------------------


async def clear_placement_scores(db: AsyncSession) -> None:
    await db.execute(delete(PlacementScore))


def add_placement_score(db: AsyncSession, score: PlacementScore) -> None:
    db.add(score)


async def get_placement_scores(db: AsyncSession, writer_id: str) -> Sequence[PlacementScore]:
    result = await db.execute(
        select(PlacementScore)
        .where(PlacementScore.writer_id == writer_id)
        .order_by(PlacementScore.placement_date.desc(), PlacementScore.placement_id)
    )
    return result.scalars().all()


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------


async def has_badge(db: AsyncSession, placement_id: str) -> bool:
    """Whether a placement has ever earned a badge."""
    result = await db.execute(select(WriterBadge.id).where(WriterBadge.placement_id == placement_id))
    return result.first() is not None


async def badged_placement_ids(db: AsyncSession) -> set[str]:
    result = await db.execute(select(WriterBadge.placement_id))
    return set(result.scalars())


async def award_badge(
    db: AsyncSession,
    writer_id: str,
    label: str,
    placement_id: str,
    competition_id: str,
) -> WriterBadge | None:
    """Award a badge for a placement. Returns None if one was already awarded."""
    if await has_badge(db, placement_id):
        return None
    badge = WriterBadge(
        id=_new_id("badge"),
        writer_id=writer_id,
        label=label,
        placement_id=placement_id,
        competition_id=competition_id,
        awarded_at=_utcnow(),
    )
    db.add(badge)
    await db.flush()
    return badge


async def get_badges(db: AsyncSession, writer_id: str) -> Sequence[WriterBadge]:
    result = await db.execute(
        select(WriterBadge)
        .where(WriterBadge.writer_id == writer_id)
        .order_by(WriterBadge.awarded_at.desc(), WriterBadge.id)
    )
    return result.scalars().all()


async def badge_labels_for(db: AsyncSession, writer_ids: Iterable[str]) -> dict[str, list[str]]:
    """Batch-load badge labels for a page of leaderboard entries."""
    ids = list(writer_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(WriterBadge.writer_id, WriterBadge.label)
        .where(WriterBadge.writer_id.in_(ids))
        .order_by(WriterBadge.awarded_at.desc(), WriterBadge.id)
    )
    labels: dict[str, list[str]] = {writer_id: [] for writer_id in ids}
    for row in result:
        labels[row.writer_id].append(row.label)
    return labels


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


async def upsert_snapshot(db: AsyncSession, writer_id: str, total_score: float, day: date) -> None:
    """At most one snapshot per writer per day; a second write replaces the score."""
    result = await db.execute(
        select(ScoreSnapshot).where(ScoreSnapshot.writer_id == writer_id, ScoreSnapshot.snapshot_date == day)
    )
    snapshot = result.scalar_one_or_none()
    if snapshot is None:
        db.add(ScoreSnapshot(id=_new_id("snap"), writer_id=writer_id, total_score=total_score, snapshot_date=day))
    else:
        snapshot.total_score = total_score
    await db.flush()


async def create_snapshots(db: AsyncSession, rows: Iterable[tuple[str, float]], day: date) -> int:
    count = 0
    for writer_id, total_score in rows:
        await upsert_snapshot(db, writer_id, total_score, day)
        count += 1
    return count


async def get_snapshot_scores(db: AsyncSession, days_ago: int, today: date) -> dict[str, float]:
    """writer_id -> score from the nearest snapshot dated on or before ``today - days_ago``."""
    cutoff = today - timedelta(days=days_ago)
    latest = (
        select(
            ScoreSnapshot.writer_id.label("writer_id"),
            func.max(ScoreSnapshot.snapshot_date).label("snapshot_date"),
        )
        .where(ScoreSnapshot.snapshot_date <= cutoff)
        .group_by(ScoreSnapshot.writer_id)
        .subquery()
    )
    result = await db.execute(
        select(ScoreSnapshot.writer_id, ScoreSnapshot.total_score).join(
            latest,
            and_(
                ScoreSnapshot.writer_id == latest.c.writer_id,
                ScoreSnapshot.snapshot_date == latest.c.snapshot_date,
            ),
        )
    )
    return {row.writer_id: row.total_score for row in result}


# ---------------------------------------------------------------------------
# Anti-gaming flags
# ---------------------------------------------------------------------------


async def create_flag(
    db: AsyncSession,
    writer_id: str,
    reason: str,
    details: str,
    competition_id: str | None = None,
    project_ids: list[str] | None = None,
) -> AntiGamingFlag:
    now = _utcnow()
    flag = AntiGamingFlag(
        id=_new_id("flag"),
        writer_id=writer_id,
        reason=reason,
        details=details,
        competition_id=competition_id,
        project_ids=list(project_ids or []),
        status="open",
        resolved_by_user_id=None,
        created_at=now,
        updated_at=now,
    )
    db.add(flag)
    await db.flush()
    return flag


async def find_open_flag(
    db: AsyncSession,
    writer_id: str,
    reason: str,
    competition_id: str | None,
    project_ids: Iterable[str],
) -> AntiGamingFlag | None:
    """Open flag for the same writer, reason, competition and project set, if any."""
    result = await db.execute(
        select(AntiGamingFlag).where(
            AntiGamingFlag.writer_id == writer_id,
            AntiGamingFlag.reason == reason,
            AntiGamingFlag.competition_id == competition_id,
            AntiGamingFlag.status == "open",
        )
    )
    wanted = sorted(project_ids)
    for flag in result.scalars():
        if sorted(flag.project_ids or []) == wanted:
            return flag
    return None


async def get_flag(db: AsyncSession, flag_id: str) -> AntiGamingFlag | None:
    return await db.get(AntiGamingFlag, flag_id)


async def list_flags(db: AsyncSession, status: str | None = None) -> Sequence[AntiGamingFlag]:
    stmt = select(AntiGamingFlag)
    if status:
        stmt = stmt.where(AntiGamingFlag.status == status)
    result = await db.execute(stmt.order_by(AntiGamingFlag.created_at.desc(), AntiGamingFlag.id))
    return result.scalars().all()


async def resolve_flag(db: AsyncSession, flag: AntiGamingFlag, resolved_by_user_id: str, status: str) -> AntiGamingFlag:
    flag.status = status
    flag.resolved_by_user_id = resolved_by_user_id
    flag.updated_at = _utcnow()
    await db.flush()
    return flag


# ---------------------------------------------------------------------------
# Appeals
# ---------------------------------------------------------------------------


async def create_appeal(db: AsyncSession, writer_id: str, reason: str) -> RankingAppeal:
    now = _utcnow()
    appeal = RankingAppeal(
        id=_new_id("appeal"),
        writer_id=writer_id,
        reason=reason,
        status="open",
        resolution_note=None,
        resolved_by_user_id=None,
        created_at=now,
        updated_at=now,
    )
    db.add(appeal)
    await db.flush()
    return appeal


async def get_appeal(db: AsyncSession, appeal_id: str) -> RankingAppeal | None:
    return await db.get(RankingAppeal, appeal_id)


async def list_appeals(db: AsyncSession, status: str | None = None) -> Sequence[RankingAppeal]:
    stmt = select(RankingAppeal)
    if status:
        stmt = stmt.where(RankingAppeal.status == status)
    result = await db.execute(stmt.order_by(RankingAppeal.created_at.desc(), RankingAppeal.id))
    return result.scalars().all()


async def resolve_appeal(
    db: AsyncSession,
    appeal: RankingAppeal,
    resolved_by_user_id: str,
    status: str,
    resolution_note: str,
) -> RankingAppeal:
    appeal.status = status
    appeal.resolved_by_user_id = resolved_by_user_id
    appeal.resolution_note = resolution_note
    appeal.updated_at = _utcnow()
    await db.flush()
    return appeal
