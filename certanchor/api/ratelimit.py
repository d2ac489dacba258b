"""Rate limiting dependency for FastAPI routes.

A dependency rather than a middleware, so only the routes that declare
it are limited.  In this service that is the public verification pair;
health, metrics, and authenticated lifecycle routes are never limited.

Keys use the most specific identity available: the JWT `sub` when a
bearer token is present (so verifiers behind one NAT don't share a
bucket), otherwise the client IP.
"""

from __future__ import annotations

import logging

import jwt as pyjwt
from fastapi import HTTPException, Request, status

from certanchor.core.metrics import RATE_LIMIT_HITS
from certanchor.db.redis import redis_pool
from certanchor.services.rate_limiter import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RateLimiter,
    RedisRateLimiter,
)

logger = logging.getLogger(__name__)

if redis_pool is not None:
    _rate_limiter: RateLimiter = RedisRateLimiter(redis_pool)
else:
    _rate_limiter = InMemoryRateLimiter()

VERIFY_LIMIT = RateLimitConfig(capacity=30, refill_rate=0.5)


def require_rate_limit(config: RateLimitConfig = VERIFY_LIMIT):
    """Dependency factory: enforce a token-bucket limit on a route.

    Usage:
        @router.get("/...", dependencies=[Depends(require_rate_limit())])
    """

    async def _check(request: Request) -> None:
        key = _build_key(request)
        result = await _rate_limiter.check(key, config)

        # Attached to every response by RequestContextMiddleware.
        request.state.rate_limit_headers = {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
        }

        if not result.allowed:
            RATE_LIMIT_HITS.labels(key_type=key.split(":", 1)[0]).inc()
            logger.warning("Rate limit exceeded key=%s path=%s", key, request.url.path)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Rate limit exceeded",
                headers={
                    "Retry-After": str(int(result.retry_after) + 1),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

    return _check


def _build_key(request: Request) -> str:
    """user:<sub> when a bearer token is present, else ip:<client ip>.

    The token is decoded WITHOUT signature verification: only `sub` is
    needed for bucketing, and a forged sub just gets its own bucket.
    """
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        try:
            claims = pyjwt.decode(auth_header[7:], options={"verify_signature": False})
        except pyjwt.InvalidTokenError:
            claims = {}
        sub = claims.get("sub")
        if isinstance(sub, str) and sub:
            return f"user:{sub}"

    client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"
