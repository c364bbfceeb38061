"""
Rate Limiting Middleware for API protection.

Implements sliding window rate limiting. Counters live in process memory by
default; set RATE_LIMIT_STORAGE=redis to share them between instances.
"""
import asyncio
import json
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

import redis.asyncio as redis
import structlog
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from src.core.config import settings
from src.core.exceptions import RateLimitError, error_envelope

logger = structlog.get_logger()

RETRY_AFTER = {"burst": 1, "minute": 60, "hour": 3600, "day": 86400}


@dataclass
class RateLimitConfig:
    """Rate limit configuration."""
    requests_per_minute: int = 60
    requests_per_hour: int = 1000
    requests_per_day: int = 10000
    burst_limit: int = 10  # Max requests in 1 second
    enabled: bool = True


@dataclass
class RateLimitState:
    """State for tracking rate limits."""
    minute_requests: list = field(default_factory=list)
    hour_requests: list = field(default_factory=list)
    day_requests: list = field(default_factory=list)
    last_request: float = 0


class RateLimiter(Protocol):
    async def check_rate_limit(self, key: str, config: RateLimitConfig) -> tuple[bool, dict]:
        ...


def _exceeded_window(
    config: RateLimitConfig,
    burst: int,
    minute: int,
    hour: int,
    day: int,
) -> Optional[str]:
    if burst >= config.burst_limit:
        return "burst"
    if minute >= config.requests_per_minute:
        return "minute"
    if hour >= config.requests_per_hour:
        return "hour"
    if day >= config.requests_per_day:
        return "day"
    return None


def build_headers(
    config: RateLimitConfig,
    minute: int,
    hour: int,
    day: int,
    exceeded: Optional[str],
) -> dict:
    """Rate limit headers for the given window counts."""
    headers = {
        "X-RateLimit-Limit-Minute": str(config.requests_per_minute),
        "X-RateLimit-Remaining-Minute": str(max(0, config.requests_per_minute - minute)),
        "X-RateLimit-Limit-Hour": str(config.requests_per_hour),
        "X-RateLimit-Remaining-Hour": str(max(0, config.requests_per_hour - hour)),
        "X-RateLimit-Limit-Day": str(config.requests_per_day),
        "X-RateLimit-Remaining-Day": str(max(0, config.requests_per_day - day)),
    }
    if exceeded:
        headers["Retry-After"] = str(RETRY_AFTER[exceeded])
    return headers


class InMemoryRateLimiter:
    """Process-local rate limiter; counters are lost on restart."""

    def __init__(self):
        self._storage: dict[str, RateLimitState] = defaultdict(RateLimitState)
        self._lock = asyncio.Lock()

    async def check_rate_limit(
        self,
        key: str,
        config: RateLimitConfig,
    ) -> tuple[bool, dict]:
        """
        Check if request is within rate limits.

        Args:
            key: Unique identifier (IP, API key, user ID)
            config: Rate limit configuration

        Returns:
            Tuple of (allowed, headers_dict)
        """
        async with self._lock:
            now = time.time()
            state = self._storage[key]

            state.minute_requests = [t for t in state.minute_requests if t > now - 60]
            state.hour_requests = [t for t in state.hour_requests if t > now - 3600]
            state.day_requests = [t for t in state.day_requests if t > now - 86400]

            burst = sum(1 for t in state.minute_requests if t > now - 1)
            exceeded = _exceeded_window(
                config,
                burst,
                len(state.minute_requests),
                len(state.hour_requests),
                len(state.day_requests),
            )

            if not exceeded:
                state.minute_requests.append(now)
                state.hour_requests.append(now)
                state.day_requests.append(now)
                state.last_request = now

            headers = build_headers(
                config,
                len(state.minute_requests),
                len(state.hour_requests),
                len(state.day_requests),
                exceeded,
            )
            return exceeded is None, headers


class RedisRateLimiter:
    """
    Sliding window limiter backed by one Redis sorted set per key.

    Each accepted request is a member scored by its timestamp; window counts
    are ZCOUNTs over the last second, minute, hour and day.
    """

    KEY_PREFIX = "ratelimit:"

    def __init__(self, client: redis.Redis | None = None):
        self._client = client

    async def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        return self._client

    async def check_rate_limit(
        self,
        key: str,
        config: RateLimitConfig,
    ) -> tuple[bool, dict]:
        client = await self._get_client()
        redis_key = f"{self.KEY_PREFIX}{key}"
        now = time.time()

        pipe = client.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now - 86400)
        pipe.zcount(redis_key, now - 1, "+inf")
        pipe.zcount(redis_key, now - 60, "+inf")
        pipe.zcount(redis_key, now - 3600, "+inf")
        pipe.zcard(redis_key)
        _, burst, minute, hour, day = await pipe.execute()

        exceeded = _exceeded_window(config, burst, minute, hour, day)
        if not exceeded:
            pipe = client.pipeline()
            pipe.zadd(redis_key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
            pipe.expire(redis_key, 86400)
            await pipe.execute()
            minute, hour, day = minute + 1, hour + 1, day + 1

        return exceeded is None, build_headers(config, minute, hour, day, exceeded)


def create_rate_limiter(storage: str | None = None) -> RateLimiter:
    """Pick the limiter backend named by RATE_LIMIT_STORAGE."""
    storage = storage or settings.RATE_LIMIT_STORAGE
    if storage == "redis":
        return RedisRateLimiter()
    return InMemoryRateLimiter()


def client_key(request: Request) -> str:
    """Get unique key for rate limiting."""
    # Check for API key first
    api_key = request.headers.get("X-API-Key")
    if api_key:
        return f"api:{api_key[:16]}"

    # Check for authenticated user
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"

    # Fall back to IP address
    client_ip = request.client.host if request.client else "unknown"

    # Check for forwarded IP
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()

    return f"ip:{client_ip}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rate limiting middleware for FastAPI.

    Applies rate limits based on IP address or API key.
    """

    def __init__(
        self,
        app,
        config: Optional[RateLimitConfig] = None,
        exclude_paths: Optional[list[str]] = None,
        limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(app)
        self.config = config or RateLimitConfig()
        self.exclude_paths = exclude_paths or [
            "/health",
            "/docs",
            "/openapi.json",
            "/redoc",
        ]
        self.limiter = limiter or create_rate_limiter()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request with rate limiting."""
        if not self.config.enabled:
            return await call_next(request)

        # Skip excluded paths
        path = request.url.path
        if any(path.startswith(exc) for exc in self.exclude_paths):
            return await call_next(request)

        key = client_key(request)
        allowed, headers = await self.limiter.check_rate_limit(key, self.config)

        if not allowed:
            logger.warning(
                "Rate limit exceeded",
                key=key,
                path=path,
                method=request.method,
            )
            error = RateLimitError(retry_after=int(headers.get("Retry-After", "60")))
            response = Response(
                content=json.dumps(error_envelope(error.message, error.code, error.details)),
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                media_type="application/json",
            )
            for header, value in headers.items():
                response.headers[header] = value
            return response

        # Process request
        response = await call_next(request)

        # Add rate limit headers
        for header, value in headers.items():
            response.headers[header] = value

        return response


class RateLimitDependency:
    """Dependency for tighter limits on specific public write endpoints."""

    def __init__(
        self,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        burst_limit: int = 10,
        enabled: bool | None = None,
    ):
        self.config = RateLimitConfig(
            requests_per_minute=requests_per_minute,
            requests_per_hour=requests_per_hour,
            burst_limit=burst_limit,
            enabled=settings.ENVIRONMENT != "development" if enabled is None else enabled,
        )
        self.limiter = create_rate_limiter()

    async def __call__(self, request: Request) -> None:
        """Check rate limit for this endpoint."""
        if not self.config.enabled:
            return

        allowed, headers = await self.limiter.check_rate_limit(client_key(request), self.config)

        if not allowed:
            raise RateLimitError(retry_after=int(headers["Retry-After"]))


# Comment submission and newsletter sign-up are unauthenticated writes
submission_rate_limit = RateLimitDependency(
    requests_per_minute=5,
    requests_per_hour=50,
    burst_limit=2,
)
