"""Health and readiness endpoints.

  /health  liveness plus dependency report.  Always 200 while the
           process can answer; `status` says "ok" or "degraded".
  /ready   readiness.  503 when the database is configured but
           unreachable, since no lifecycle operation works without it.
           Redis and the ledger are optional: the rate limiter and
           queue have in-memory fallbacks, and issuance proceeds
           unanchored without a ledger.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text

from certanchor.api.dependencies import get_ledger
from certanchor.db.engine import engine
from certanchor.db.redis import redis_pool
from certanchor.ledger.client import LedgerServices

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_database() -> str:
    if engine is None:
        return "not_configured"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.warning("Database health check failed", exc_info=True)
        return "degraded"
    return "ok"


async def _check_redis() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except Exception:
        logger.warning("Redis health check failed", exc_info=True)
        return "degraded"
    return "ok"


def _check_ledger(ledger: LedgerServices) -> str:
    if ledger.anchor_client is None:
        return "not_configured"
    if not ledger.keyring.configured:
        return "no_signing_key"
    return "ok"


@router.get("/health")
async def health(
    ledger: Annotated[LedgerServices, Depends(get_ledger)],
) -> dict:
    checks = {
        "database": await _check_database(),
        "redis": await _check_redis(),
        "ledger": _check_ledger(ledger),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if await _check_database() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
