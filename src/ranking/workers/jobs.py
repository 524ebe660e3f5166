"""Ranking arq worker: scheduled recompute and daily score snapshots.

Run with: arq ranking.workers.settings.WorkerSettings
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from arq import cron, func
from arq.connections import RedisSettings

from ranking.clients.upstream import build_competition_directory, build_submission_ledger
from ranking.config import get_settings
from ranking.database import close_db, get_session_factory, init_db
from ranking.exceptions import RecomputeInProgressError, UpstreamUnavailableError
from ranking.rankings.leaderboard_service import create_daily_snapshots
from ranking.rankings.lock import recompute_guard
from ranking.rankings.recompute_service import run_full_recompute
from ranking.redis_client import close_redis, get_redis, init_redis
from ranking.workers.queue import RECOMPUTE_JOB_NAME

logger = logging.getLogger(__name__)


async def recompute_rankings_job(ctx: dict) -> dict:
    """Full recompute. Skips quietly when another run holds the lock."""
    settings = get_settings()
    ledger = build_submission_ledger(settings)
    competitions = build_competition_directory(settings)
    try:
        async with recompute_guard(get_redis(), settings.recompute_lock_timeout_seconds):
            async with get_session_factory()() as db:
                result = await run_full_recompute(db, ledger, competitions)
    except RecomputeInProgressError:
        logger.info("Recompute already running; job %s skipped", ctx.get("job_id"))
        return {"skipped": True}
    except UpstreamUnavailableError as exc:
        logger.error("Recompute aborted: %s", exc)
        return {"skipped": False, "error": f"{exc.service}_unavailable"}

    return {
        "skipped": False,
        "writer_count": result.writer_count,
        "placement_count": result.placement_count,
        "badges_awarded": result.badges_awarded,
        "flags_created": result.flags_created,
    }


async def snapshot_scores_job(ctx: dict) -> int:
    """Daily snapshot of every ranked writer's total (feeds 30-day deltas)."""
    today = datetime.now(timezone.utc).date()
    async with get_session_factory()() as db:
        return await create_daily_snapshots(db, today)


async def ranking_startup(ctx: dict) -> None:
    """Initialize Redis + DB connections on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    logger.info("Ranking worker started")


async def ranking_shutdown(ctx: dict) -> None:
    await close_redis()
    await close_db()
    logger.info("Ranking worker shut down")


_settings = get_settings()


class WorkerSettings:
    """arq worker settings for ranking jobs."""

    # keep_result=0 frees the fixed job id as soon as a run finishes
    functions = [
        func(recompute_rankings_job, name=RECOMPUTE_JOB_NAME, keep_result=0),
        snapshot_scores_job,
    ]
    cron_jobs = [
        cron(snapshot_scores_job, hour={_settings.snapshot_cron_hour}, minute={0}),
        cron(recompute_rankings_job, minute={_settings.recompute_cron_minute}),
    ]
    on_startup = ranking_startup
    on_shutdown = ranking_shutdown
    redis_settings = RedisSettings.from_dsn(_settings.arq_redis_url)
    max_jobs = 2
    job_timeout = _settings.recompute_lock_timeout_seconds
