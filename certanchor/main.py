from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from certanchor.api.certificate_requests import router as certificate_requests_router
from certanchor.api.certificates import router as certificates_router
from certanchor.api.health import router as health_router
from certanchor.api.institutions import router as institutions_router
from certanchor.api.metrics_endpoint import router as metrics_router
from certanchor.core.config import SETTINGS
from certanchor.core.logging import setup_logging
from certanchor.db.engine import lifespan_db
from certanchor.db.redis import lifespan_redis
from certanchor.ledger.client import lifespan_ledger
from certanchor.middleware.metrics import MetricsMiddleware
from certanchor.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Torn down in reverse order: ledger clients, then Redis, then the DB.
    async with lifespan_db():
        async with lifespan_redis():
            async with lifespan_ledger(app, SETTINGS):
                yield


# only app setup + router registration

app = FastAPI(
    title="cert-anchor-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last-added runs first: RequestContext → Metrics → CORS → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(institutions_router)
app.include_router(certificate_requests_router)
app.include_router(certificates_router)

logger.info(
    "cert-anchor-service started  env=%s log_level=%s port=%d docs=%s ledger=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
    SETTINGS.ledger_network if SETTINGS.ledger_configured else "off",
)
