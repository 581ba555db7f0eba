"""
Redis-backed sliding window rate limiter (application level).

- Every request counts against a per-IP window
- Authenticated requests also count against a per-user window; writes
  (POST/PUT/PATCH/DELETE) have their own, tighter per-user window

Windows are Redis sorted sets scored by request time. When Redis is
unreachable requests are let through.
"""

from __future__ import annotations

import time
import uuid

import redis.asyncio as redis
import structlog
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response

from app.auth.jwt_handler import verify_token
from app.config import get_settings

logger = structlog.get_logger()

EXEMPT_PATHS = frozenset({"/health", "/live", "/ready", "/metrics"})
WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class SlidingWindow:
    def __init__(self, redis_url: str, window_seconds: int):
        self._redis_url = redis_url
        self._client: redis.Redis | None = None
        self.window_seconds = window_seconds

    async def _redis(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    async def hit(self, key: str, limit: int) -> tuple[bool, int]:
        """Count one request under ``key``; return (allowed, remaining)."""
        try:
            r = await self._redis()
            now = time.time()
            pipe = r.pipeline()
            pipe.zremrangebyscore(key, 0, now - self.window_seconds)
            pipe.zcard(key)
            pipe.zadd(key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
            pipe.expire(key, self.window_seconds + 1)
            current = (await pipe.execute())[1]
        except redis.RedisError:
            logger.warning("rate_limiter_redis_error", key=key)
            return True, limit

        if current >= limit:
            return False, 0
        return True, max(limit - current - 1, 0)


def _too_many(detail: str, retry_after: int) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": detail, "retry_after": retry_after},
        headers={"Retry-After": str(retry_after)},
    )


class RateLimiterMiddleware(BaseHTTPMiddleware):
    def __init__(self, app):
        super().__init__(app)
        settings = get_settings()
        self.enabled = settings.rate_limit_enabled
        self.per_ip_limit = settings.rate_limit_per_ip
        self.per_user_limit = settings.rate_limit_per_user
        self.writes_per_user_limit = settings.rate_limit_writes_per_user
        self.window = SlidingWindow(settings.redis_dsn, settings.rate_limit_window_seconds)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self.enabled or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        retry_after = self.window.window_seconds
        client_ip = request.headers.get("X-Real-IP", request.client.host if request.client else "unknown")
        ip_allowed, ip_remaining = await self.window.hit(f"ratelimit:ip:{client_ip}", self.per_ip_limit)
        if not ip_allowed:
            return _too_many("Too many requests from this IP", retry_after)

        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            payload = verify_token(auth_header.split(" ", 1)[1])
            if payload and payload.get("type") == "access":
                user_id = payload["sub"]
                allowed, _ = await self.window.hit(f"ratelimit:user:{user_id}", self.per_user_limit)
                if allowed and request.method in WRITE_METHODS:
                    allowed, _ = await self.window.hit(
                        f"ratelimit:user:{user_id}:writes", self.writes_per_user_limit
                    )
                if not allowed:
                    logger.info("rate_limited", user_id=user_id, path=request.url.path)
                    return _too_many("Too many requests — user rate limit exceeded", retry_after)

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining-IP"] = str(ip_remaining)
        return response
