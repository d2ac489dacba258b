"""Redis connection management.

Same conditional pattern as engine.py: with REDIS_URL set, one shared
connection pool; without it, the rate limiter and task queue fall back
to in-memory implementations and no Redis server is needed.

Redis holds only ephemeral, shared state here (rate-limit buckets and
the certificate_anchoring queue).  Certificates never live in Redis.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from certanchor.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Ping on startup, close the pool on shutdown."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured — Redis features use in-memory fallbacks")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
        logger.info("Redis connected")
    except Exception:
        # Start anyway; rate limiting and queueing fail per request instead.
        logger.exception("Redis connection failed on startup")

    try:
        yield
    finally:
        await redis_pool.aclose()
        logger.info("Redis connection pool closed")
