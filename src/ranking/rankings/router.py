"""Ranking API endpoints: leaderboard, writer standing, prestige, recompute."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ranking.auth.dependencies import get_actor_id
from ranking.clients.upstream import (
    CompetitionDirectoryClient,
    ProjectDirectoryClient,
    SubmissionLedgerClient,
    get_competition_directory,
    get_project_directory,
    get_submission_ledger,
)
from ranking.config import get_settings
from ranking.database import get_session
from ranking.rankings import leaderboard_service
from ranking.rankings import repository as repo
from ranking.rankings.lock import recompute_guard
from ranking.rankings.recompute_service import request_incremental_recompute, run_full_recompute
from ranking.rankings.schemas import (
    BadgeResponse,
    BadgesResponse,
    IncrementalRecomputeRequest,
    IncrementalRecomputeResponse,
    LeaderboardResponse,
    MethodologyResponse,
    PlacementBreakdownResponse,
    PlacementScoreResponse,
    PrestigeItemResponse,
    PrestigeListResponse,
    PrestigeResponse,
    PrestigeUpsertRequest,
    RankedWriterResponse,
    RecomputeResponse,
    SnapshotResponse,
    TierDesignation,
)
from ranking.redis_client import get_redis_or_none
from ranking.scoring.formulas import DEFAULT_PRESTIGE_MULTIPLIERS
from ranking.workers.queue import get_job_queue

logger = structlog.get_logger()

router = APIRouter(prefix="/internal", tags=["Rankings"])


# ── Leaderboard & writers ──


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    tier: TierDesignation | None = Query(None),
    trending: bool = Query(False),
    format: str | None = Query(None, max_length=64),  # noqa: A002
    genre: str | None = Query(None, max_length=64),
    limit: int | None = Query(None, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_session),
    projects: ProjectDirectoryClient = Depends(get_project_directory),
):
    """Ranked writers, optionally filtered by tier or project format/genre."""
    if limit is None:
        limit = get_settings().leaderboard_default_limit
    data = await leaderboard_service.get_leaderboard(
        db, projects, tier=tier, trending=trending, format=format, genre=genre, limit=limit, offset=offset,
    )
    return LeaderboardResponse(
        leaderboard=[RankedWriterResponse(**entry) for entry in data["leaderboard"]],
        total=data["total"],
        limit=data["limit"],
        offset=data["offset"],
    )


@router.get("/writers/{writer_id}/score", response_model=RankedWriterResponse)
async def get_writer_score(writer_id: str, db: AsyncSession = Depends(get_session)):
    entry = await leaderboard_service.get_writer_score(db, writer_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="writer_not_found")
    return RankedWriterResponse(**entry)


@router.get("/writers/{writer_id}/badges", response_model=BadgesResponse)
async def get_writer_badges(writer_id: str, db: AsyncSession = Depends(get_session)):
    badges = await leaderboard_service.get_badges(db, writer_id)
    return BadgesResponse(badges=[BadgeResponse.model_validate(b) for b in badges])


@router.get("/writers/{writer_id}/placements", response_model=PlacementBreakdownResponse)
async def get_writer_placements(writer_id: str, db: AsyncSession = Depends(get_session)):
    """Per-placement factor breakdown from the last recompute."""
    rows = await leaderboard_service.get_placement_breakdown(db, writer_id)
    return PlacementBreakdownResponse(
        writer_id=writer_id,
        placements=[PlacementScoreResponse.model_validate(r) for r in rows],
    )


@router.get("/methodology", response_model=MethodologyResponse)
async def get_methodology():
    return MethodologyResponse(**leaderboard_service.get_methodology())


# ── Prestige ──


@router.get("/prestige", response_model=PrestigeListResponse)
async def list_prestige(db: AsyncSession = Depends(get_session)):
    rows = await repo.list_prestige(db)
    return PrestigeListResponse(prestige=[PrestigeResponse.model_validate(r) for r in rows])


@router.get("/prestige/{competition_id}", response_model=PrestigeItemResponse)
async def get_prestige(competition_id: str, db: AsyncSession = Depends(get_session)):
    row = await repo.get_prestige(db, competition_id)
    if row is None:
        raise HTTPException(status_code=404, detail="prestige_not_found")
    return PrestigeItemResponse(prestige=PrestigeResponse.model_validate(row))


@router.put("/prestige/{competition_id}", response_model=PrestigeItemResponse)
async def put_prestige(
    competition_id: str,
    body: PrestigeUpsertRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_session),
):
    """Set a competition's prestige tier. Takes effect on the next recompute."""
    multiplier = body.multiplier if body.multiplier is not None else DEFAULT_PRESTIGE_MULTIPLIERS[body.tier]
    row = await repo.upsert_prestige(db, competition_id, body.tier, multiplier)
    await db.commit()
    logger.info("prestige_updated", competition_id=competition_id, tier=body.tier, multiplier=multiplier, actor=actor_id)
    return PrestigeItemResponse(prestige=PrestigeResponse.model_validate(row))


# ── Recompute ──


@router.post("/recompute", response_model=RecomputeResponse)
async def recompute(
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_session),
    ledger: SubmissionLedgerClient = Depends(get_submission_ledger),
    competitions: CompetitionDirectoryClient = Depends(get_competition_directory),
):
    """Rebuild every score from the upstream ledger. 409 while another run holds the lock."""
    settings = get_settings()
    logger.info("recompute_requested", actor=actor_id)
    async with recompute_guard(get_redis_or_none(), settings.recompute_lock_timeout_seconds):
        result = await run_full_recompute(db, ledger, competitions)
    return RecomputeResponse(
        recomputed_at=result.recomputed_at,
        writer_count=result.writer_count,
        placement_count=result.placement_count,
        skipped_placements=result.skipped_placements,
        badges_awarded=result.badges_awarded,
        flags_created=result.flags_created,
    )


@router.post("/recompute/incremental", response_model=IncrementalRecomputeResponse, status_code=202)
async def recompute_incremental(body: IncrementalRecomputeRequest):
    queued = await request_incremental_recompute(get_job_queue(), body.writer_id)
    return IncrementalRecomputeResponse(accepted=True, writer_id=body.writer_id, queued=queued)


# ── Maintenance ──


@router.post("/maintenance/snapshot", response_model=SnapshotResponse)
async def create_snapshot(db: AsyncSession = Depends(get_session)):
    """Record today's totals; the 30-day delta reads these."""
    today = datetime.now(timezone.utc).date()
    created = await leaderboard_service.create_daily_snapshots(db, today)
    return SnapshotResponse(snapshots_created=created)
