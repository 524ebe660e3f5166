"""Single-writer guard for full recomputes.

A recompute clears and rebuilds placement_scores, so two interleaved runs
against the same database could leave a doubled or mixed table. The guard
holds a process-local lock and, when Redis is configured, a Redis lock shared
by every API replica and arq worker. Acquisition never blocks: a second
caller gets RecomputeInProgressError immediately.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from redis.asyncio import Redis
from redis.exceptions import LockError

from ranking.exceptions import RecomputeInProgressError

logger = structlog.get_logger()

RECOMPUTE_LOCK_KEY = "lock:ranking:recompute"

_local_lock = asyncio.Lock()


@asynccontextmanager
async def recompute_guard(redis: Redis | None, timeout_seconds: int) -> AsyncIterator[None]:
    """Hold the recompute lock for the duration of the block."""
    if _local_lock.locked():
        raise RecomputeInProgressError

    async with _local_lock:
        if redis is None:
            yield
            return

        lock = redis.lock(RECOMPUTE_LOCK_KEY, timeout=timeout_seconds)
        if not await lock.acquire(blocking=False):
            raise RecomputeInProgressError
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Expired while the run was still going; another run may already own it
                logger.warning("recompute_lock_expired", timeout_seconds=timeout_seconds)
