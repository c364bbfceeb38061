"""Tests for rate limiting."""
import pytest
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient
from starlette.requests import Request

from src.core.config import settings
from src.core.exceptions import RateLimitError, register_exception_handlers
from src.middleware.rate_limit import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RateLimitDependency,
    RateLimitMiddleware,
    RedisRateLimiter,
    client_key,
    create_rate_limiter,
)


def make_request(headers: dict | None = None, client=("10.0.0.1", 1234)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestInMemoryRateLimiter:
    """Test the in-process sliding window."""

    @pytest.mark.asyncio
    async def test_burst_limit(self):
        """Requests beyond the burst limit within a second are refused."""
        limiter = InMemoryRateLimiter()
        config = RateLimitConfig(burst_limit=2)

        first, _ = await limiter.check_rate_limit("ip:1", config)
        second, _ = await limiter.check_rate_limit("ip:1", config)
        third, headers = await limiter.check_rate_limit("ip:1", config)

        assert (first, second, third) == (True, True, False)
        assert headers["Retry-After"] == "1"

    @pytest.mark.asyncio
    async def test_minute_limit(self):
        limiter = InMemoryRateLimiter()
        config = RateLimitConfig(requests_per_minute=3, burst_limit=100)

        results = [(await limiter.check_rate_limit("ip:2", config))[0] for _ in range(4)]

        assert results == [True, True, True, False]

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        limiter = InMemoryRateLimiter()
        config = RateLimitConfig(burst_limit=1)

        assert (await limiter.check_rate_limit("ip:a", config))[0] is True
        assert (await limiter.check_rate_limit("ip:b", config))[0] is True

    @pytest.mark.asyncio
    async def test_remaining_headers(self):
        limiter = InMemoryRateLimiter()
        config = RateLimitConfig(requests_per_minute=10)

        _, headers = await limiter.check_rate_limit("ip:3", config)

        assert headers["X-RateLimit-Limit-Minute"] == "10"
        assert headers["X-RateLimit-Remaining-Minute"] == "9"
        assert "Retry-After" not in headers


class TestClientKey:
    """Test request identification."""

    def test_api_key_wins(self):
        request = make_request({"X-API-Key": "abcdefghijklmnopqrstuvwxyz"})

        assert client_key(request) == "api:abcdefghijklmnop"

    def test_forwarded_for(self):
        request = make_request({"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})

        assert client_key(request) == "ip:203.0.113.9"

    def test_client_host(self):
        assert client_key(make_request()) == "ip:10.0.0.1"


class TestRateLimitMiddleware:
    """Test the middleware on a minimal app."""

    @pytest.mark.asyncio
    async def test_returns_429_envelope(self):
        app = FastAPI()
        app.add_middleware(
            RateLimitMiddleware,
            config=RateLimitConfig(burst_limit=1),
            limiter=InMemoryRateLimiter(),
        )

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            ok = await ac.get("/ping")
            limited = await ac.get("/ping")

        assert ok.status_code == 200
        assert "X-RateLimit-Remaining-Minute" in ok.headers
        assert limited.status_code == 429
        assert limited.headers["Retry-After"] == "1"
        body = limited.json()
        assert body["status"] == "error"
        assert body["error"]["code"] == "RATE_LIMIT_EXCEEDED"

    @pytest.mark.asyncio
    async def test_excluded_paths_skip_limits(self):
        app = FastAPI()
        app.add_middleware(
            RateLimitMiddleware,
            config=RateLimitConfig(burst_limit=1),
            limiter=InMemoryRateLimiter(),
        )

        @app.get("/health")
        async def health():
            return {"status": "healthy"}

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            responses = [await ac.get("/health") for _ in range(3)]

        assert [r.status_code for r in responses] == [200, 200, 200]


class TestRateLimitDependency:
    """Test the per-endpoint dependency."""

    @pytest.mark.asyncio
    async def test_disabled_by_default_in_development(self):
        dependency = RateLimitDependency(burst_limit=1)

        for _ in range(3):
            await dependency(make_request())

    @pytest.mark.asyncio
    async def test_raises_when_exceeded(self):
        dependency = RateLimitDependency(burst_limit=1, enabled=True)

        await dependency(make_request())
        with pytest.raises(RateLimitError) as exc_info:
            await dependency(make_request())

        assert exc_info.value.details["retry_after"] == 1

    @pytest.mark.asyncio
    async def test_endpoint_returns_429(self):
        app = FastAPI()
        register_exception_handlers(app)
        limit = RateLimitDependency(burst_limit=1, enabled=True)

        @app.post("/submit", dependencies=[Depends(limit)])
        async def submit():
            return {"ok": True}

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            await ac.post("/submit")
            response = await ac.post("/submit")

        assert response.status_code == 429
        assert response.json()["message"].startswith("Too many requests")

    def test_follows_configured_storage(self, monkeypatch):
        """The dependency shares the limiter backend chosen by RATE_LIMIT_STORAGE."""
        monkeypatch.setattr(settings, "RATE_LIMIT_STORAGE", "memory")
        assert isinstance(RateLimitDependency(enabled=True).limiter, InMemoryRateLimiter)

        monkeypatch.setattr(settings, "RATE_LIMIT_STORAGE", "redis")
        assert isinstance(RateLimitDependency(enabled=True).limiter, RedisRateLimiter)


class TestCreateRateLimiter:
    def test_memory_backend(self):
        assert isinstance(create_rate_limiter("memory"), InMemoryRateLimiter)

    def test_redis_backend(self):
        """The Redis client is created lazily, so no server is needed here."""
        assert isinstance(create_rate_limiter("redis"), RedisRateLimiter)
