"""arq job queue used by the API to hand work to the ranking worker."""

from __future__ import annotations

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

RECOMPUTE_JOB_NAME = "recompute_rankings_job"
RECOMPUTE_JOB_ID = "ranking:recompute:full"

_queue: ArqRedis | None = None


async def init_job_queue(url: str) -> None:
    """Connect the arq pool."""
    global _queue  # noqa: PLW0603
    _queue = await create_pool(RedisSettings.from_dsn(url))


async def close_job_queue() -> None:
    global _queue  # noqa: PLW0603
    if _queue:
        await _queue.aclose()
        _queue = None


def get_job_queue() -> ArqRedis | None:
    """The arq pool, or None when the API runs without a worker queue."""
    return _queue
