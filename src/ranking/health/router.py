"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ranking.config import get_settings
from ranking.database import get_session
from ranking.db.models import WriterScore
from ranking.redis_client import get_redis
from ranking.workers.queue import get_job_queue

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: 200 while the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe.

    Database and Redis must answer for ``ready``. The job queue and the time
    of the last recompute are reported but do not degrade the status: the
    API serves scores without a worker, and a fresh install has none.
    """
    checks: dict[str, object] = {}
    last_recompute_at: str | None = None

    try:
        result = await db.execute(select(func.max(WriterScore.last_updated_at)))
        latest = result.scalar()
        last_recompute_at = latest.isoformat() if latest else None
        checks["database"] = "ok"
    except SQLAlchemyError as exc:
        checks["database"] = f"error: {exc}"

    try:
        redis = get_redis()
        await redis.ping()
        checks["redis"] = "ok"
    except (RuntimeError, RedisError) as exc:
        checks["redis"] = f"error: {exc}"

    all_ok = all(v == "ok" for v in checks.values())
    return {
        "status": "ready" if all_ok else "degraded",
        "checks": checks,
        "job_queue": "connected" if get_job_queue() is not None else "disconnected",
        "last_recompute_at": last_recompute_at,
    }


@router.get("/version")
async def version() -> dict[str, str]:
    """Return service name, version and environment."""
    settings = get_settings()
    return {
        "service": "writer-ranking",
        "version": settings.app_version,
        "environment": settings.environment,
    }
