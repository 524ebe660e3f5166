"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.exceptions import RedisError

from ranking.config import get_settings
from ranking.database import close_db, init_db
from ranking.health.router import router as health_router
from ranking.middleware import setup_middleware
from ranking.moderation.router import router as moderation_router
from ranking.rankings.router import router as rankings_router
from ranking.redis_client import close_redis, init_redis
from ranking.workers.queue import close_job_queue, init_job_queue

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Incremental hints degrade to "not queued" without a job queue
    try:
        await init_job_queue(settings.arq_redis_url)
    except (OSError, RedisError):
        logger.warning("Job queue unavailable; incremental recompute hints will not be queued", exc_info=True)

    yield

    await close_job_queue()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Writer Ranking Service",
        description="Placement scoring, leaderboard, badges and ranking moderation",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(rankings_router)
    app.include_router(moderation_router)

    return app


app = create_app()
