"""Request context middleware: request ids, timing, and response headers.

Every request gets an id (the caller's X-Request-ID if it sent a sane
one, else a fresh UUID).  It is stored in a ContextVar, which is
per-task rather than per-thread, so concurrent requests on the event
loop never see each other's id.  A LogRecord factory copies it onto
every record, so lines logged by the lifecycle or ledger code during a
request carry it too.  (A root-logger filter would not: logger filters
skip records propagated up from child loggers.)

Rate-limit headers computed by api/ratelimit.py are attached to the
response here, so successful verifications also report the quota.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


_base_record_factory = logging.getLogRecordFactory()


def _record_factory(*args, **kwargs) -> logging.LogRecord:
    record = _base_record_factory(*args, **kwargs)
    record.request_id = request_id_var.get()  # type: ignore[attr-defined]
    return record


_record_factory.installs_request_id = True  # type: ignore[attr-defined]

# Guarded against double installation on module reload.
if not getattr(_base_record_factory, "installs_request_id", False):
    logging.setLogRecordFactory(_record_factory)


def _incoming_request_id(request: Request) -> str:
    supplied = request.headers.get("x-request-id", "")
    if _REQUEST_ID_RE.match(supplied):
        return supplied
    return str(uuid.uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = _incoming_request_id(request)
        token = request_id_var.set(req_id)
        try:
            start = time.monotonic()
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)

            logger.info(
                "%s %s → %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = req_id
        for name, value in getattr(request.state, "rate_limit_headers", {}).items():
            response.headers.setdefault(name, value)
        return response
