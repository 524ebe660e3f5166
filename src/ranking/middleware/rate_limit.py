"""Redis-backed fixed window rate limiting middleware.

Callers arrive through the gateway, so many users share one client IP. The
window is counted per gateway user when the actor header is present and per
IP otherwise.
"""

import time
from typing import Any

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ranking.auth.dependencies import ACTOR_HEADER
from ranking.redis_client import get_redis

logger = structlog.get_logger()

# Probes and the version endpoint never count against a caller
_EXEMPT_PATHS = frozenset({"/health", "/ready", "/version"})


def rate_limit_subject(request: Request) -> str:
    """Bucket name for a request: ``user:<id>`` or ``ip:<addr>``."""
    actor = request.headers.get(ACTOR_HEADER, "").strip()
    if actor:
        return f"user:{actor}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Limit requests per gateway user (or client IP) using Redis counters."""

    def __init__(self, app: Any, requests_per_window: int = 100, window_seconds: int = 60) -> None:  # noqa: ANN401
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds

    def _limit_headers(self, remaining: int) -> dict[str, str]:
        return {
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Limit": str(self.requests_per_window),
        }

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        try:
            redis = get_redis()
        except RuntimeError:
            # Redis not initialized, serve without rate limiting
            return await call_next(request)

        subject = rate_limit_subject(request)
        window = int(time.time()) // self.window_seconds
        rate_key = f"ratelimit:ranking:{subject}:{window}"

        pipe = redis.pipeline()
        pipe.incr(rate_key)
        pipe.expire(rate_key, self.window_seconds + 1)
        current_count: int = (await pipe.execute())[0]

        if current_count > self.requests_per_window:
            logger.warning("rate_limited", subject=subject, path=request.url.path, count=current_count)
            return JSONResponse(
                status_code=429,
                content={"detail": "rate_limited"},
                headers={"Retry-After": str(self.window_seconds), **self._limit_headers(0)},
            )

        response = await call_next(request)
        response.headers.update(self._limit_headers(max(0, self.requests_per_window - current_count)))
        return response
