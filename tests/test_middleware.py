"""Tests for request id, rate limiting and error handling middleware."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from ranking.middleware import rate_limit

pytestmark = pytest.mark.asyncio


class _FakePipeline:
    def __init__(self, counts: dict[str, int]) -> None:
        self.counts = counts
        self.key: str | None = None

    def incr(self, key: str) -> None:
        self.key = key

    def expire(self, key: str, seconds: int) -> None:
        pass

    async def execute(self) -> list:
        # Window suffix dropped so a test cannot straddle a boundary
        bucket = self.key.rsplit(":", 1)[0]
        self.counts[bucket] = self.counts.get(bucket, 0) + 1
        return [self.counts[bucket], True]


class _FakeRedis:
    def __init__(self) -> None:
        self.counts: dict[str, int] = {}

    def pipeline(self) -> _FakePipeline:
        return _FakePipeline(self.counts)


async def test_request_id_generated(client: AsyncClient):
    response = await client.get("/version")
    assert len(response.headers["X-Request-Id"]) == 36


async def test_rate_limit_bypassed_without_redis(client: AsyncClient):
    response = await client.get("/internal/methodology")
    assert response.status_code == 200
    assert "X-RateLimit-Limit" not in response.headers


async def test_rate_limit_enforced(client: AsyncClient, monkeypatch):
    fake = _FakeRedis()
    monkeypatch.setattr(rate_limit, "get_redis", lambda: fake)

    statuses = [(await client.get("/internal/methodology")).status_code for _ in range(101)]
    assert statuses[:100] == [200] * 100
    assert statuses[100] == 429


async def test_rate_limit_counted_per_gateway_user(client: AsyncClient, monkeypatch):
    fake = _FakeRedis()
    monkeypatch.setattr(rate_limit, "get_redis", lambda: fake)

    for _ in range(100):
        await client.get("/internal/methodology", headers={"X-Auth-User-Id": "admin_01"})
    blocked = await client.get("/internal/methodology", headers={"X-Auth-User-Id": "admin_01"})
    other = await client.get("/internal/methodology", headers={"X-Auth-User-Id": "admin_02"})

    assert blocked.status_code == 429
    assert blocked.json() == {"detail": "rate_limited"}
    assert other.status_code == 200
    assert other.headers["X-RateLimit-Remaining"] == "99"
    assert set(fake.counts) == {"ratelimit:ranking:user:admin_01", "ratelimit:ranking:user:admin_02"}


async def test_probes_exempt_from_rate_limit(client: AsyncClient, monkeypatch):
    fake = _FakeRedis()
    monkeypatch.setattr(rate_limit, "get_redis", lambda: fake)
    await client.get("/health")
    await client.get("/ready")
    await client.get("/version")
    assert fake.counts == {}


async def test_validation_error_shape(client: AsyncClient):
    response = await client.get("/internal/leaderboard", params={"offset": -1})
    assert response.status_code == 422
    body = response.json()
    assert body["detail"] == "Validation error"
    assert isinstance(body["errors"], list)
