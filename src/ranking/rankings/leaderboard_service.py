"""Read side: leaderboard, writer score, badges, methodology.

Everything here reads what the last completed recompute wrote; nothing is
computed on demand.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from ranking.clients.upstream import ProjectDirectoryClient
from ranking.db.models import PlacementScore, WriterBadge, WriterScore
from ranking.exceptions import UpstreamUnavailableError
from ranking.rankings import repository as repo
from ranking.scoring.formulas import methodology

logger = logging.getLogger(__name__)


def _entry(score: WriterScore, badges: list[str]) -> dict:
    return {
        "writer_id": score.writer_id,
        "rank": score.rank or 0,
        "total_score": score.total_score,
        "submission_count": score.submission_count,
        "placement_count": score.placement_count,
        "tier": score.tier,
        "badges": badges,
        "score_change_30d": score.score_change_30d,
        "last_updated_at": score.last_updated_at,
    }


async def resolve_allowed_writers(
    projects: ProjectDirectoryClient,
    format: str | None,  # noqa: A002
    genre: str | None,
) -> set[str] | None:
    """Writers owning projects that match format/genre.

    None means no filter was requested. A directory failure degrades to an
    empty set so the request returns no rows instead of failing.
    """
    if not format and not genre:
        return None
    try:
        return await projects.list_owner_ids(format=format, genre=genre)
    except UpstreamUnavailableError:
        logger.warning("Project directory unavailable; leaderboard filter yields no writers")
        return set()


async def get_leaderboard(
    db: AsyncSession,
    projects: ProjectDirectoryClient,
    *,
    tier: str | None = None,
    trending: bool = False,
    format: str | None = None,  # noqa: A002
    genre: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> dict:
    """Filtered, paginated leaderboard with badge labels per entry."""
    allowed = await resolve_allowed_writers(projects, format, genre)
    scores, total = await repo.list_leaderboard(
        db, tier=tier, trending=trending, limit=limit, offset=offset, allowed_writer_ids=allowed,
    )
    labels = await repo.badge_labels_for(db, [s.writer_id for s in scores])
    return {
        "leaderboard": [_entry(s, labels.get(s.writer_id, [])) for s in scores],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


async def get_writer_score(db: AsyncSession, writer_id: str) -> dict | None:
    """Current standing of a writer, or None if they have never scored above zero."""
    score = await repo.get_writer_score(db, writer_id)
    if score is None or score.total_score <= 0:
        return None
    badges = await repo.get_badges(db, writer_id)
    return _entry(score, [b.label for b in badges])


async def get_badges(db: AsyncSession, writer_id: str) -> Sequence[WriterBadge]:
    return await repo.get_badges(db, writer_id)


async def get_placement_breakdown(db: AsyncSession, writer_id: str) -> Sequence[PlacementScore]:
    return await repo.get_placement_scores(db, writer_id)


def get_methodology() -> dict:
    return methodology()


async def create_daily_snapshots(db: AsyncSession, today: date) -> int:
    """Snapshot every ranked writer's total for ``today``. Commits."""
    if await repo.count_ranked_writers(db) == 0:
        return 0
    writers = await repo.list_ranked_writers(db)
    created = await repo.create_snapshots(db, ((w.writer_id, w.total_score) for w in writers), today)
    await db.commit()
    logger.info("Score snapshots written: %d (date=%s)", created, today.isoformat())
    return created
