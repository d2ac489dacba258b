"""Background worker process.

RUN:  python -m certanchor.worker

Same image as the API, different command:
  api:    uvicorn certanchor.main:app --host 0.0.0.0 --port 8000
  worker: python -m certanchor.worker

The loop polls every registered queue, hands each task to its handler
with a WorkerContext (ledger services plus a store factory), and logs
the result.  A failing task is logged and dropped; the API can enqueue
it again.

Without DATABASE_URL the worker sees its own empty in-memory store, so
anchoring retries only do useful work against Postgres.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any

from certanchor.core.config import SETTINGS
from certanchor.core.errors import CertAnchorError
from certanchor.core.logging import setup_logging
from certanchor.ledger.client import LedgerServices, build_ledger_services
from certanchor.repos.store import Store, open_store
from certanchor.services.lifecycle import CertificateLifecycle
from certanchor.services.task_queue import ANCHOR_QUEUE, Task, TaskQueue, task_queue

logger = logging.getLogger("certanchor.worker")


@dataclass
class WorkerContext:
    ledger: LedgerServices
    open_store: Callable[[], AbstractAsyncContextManager[Store]] = field(default=open_store)


TaskHandler = Callable[[dict, WorkerContext], Coroutine[Any, Any, None]]

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(ANCHOR_QUEUE)
async def handle_certificate_anchoring(payload: dict, ctx: WorkerContext) -> None:
    """Anchor a certificate that approval left unanchored.

    The API authorized the request before enqueueing; the certificate's
    state is re-checked here because it may have been revoked or anchored
    since.
    """
    credential_id = payload["credential_id"]
    async with ctx.open_store() as store:
        lifecycle = CertificateLifecycle(store, ctx.ledger)
        try:
            issuance = await lifecycle.anchor_certificate(credential_id)
        except CertAnchorError as e:
            logger.info(
                "Skipping anchoring for %s: %s",
                credential_id,
                e,
                extra={"credential_id": credential_id},
            )
            return

    if issuance.anchored:
        logger.info(
            "Anchor retry for %s succeeded (requested by user=%s)",
            credential_id,
            payload.get("requested_by"),
            extra={"credential_id": credential_id},
        )
    else:
        logger.warning(
            "Anchor retry for %s failed: %s",
            credential_id,
            issuance.anchor.reason,  # type: ignore[union-attr]
            extra={"credential_id": credential_id},
        )


async def process_task(task: Task, ctx: WorkerContext) -> bool:
    """Run one task through its handler.  Returns False if it failed."""
    handler = HANDLERS[task.queue]
    try:
        await handler(task.payload, ctx)
    except Exception:
        logger.exception("Task %s on [%s] failed", task.id, task.queue)
        return False
    logger.info("Task %s on [%s] completed", task.id, task.queue)
    return True


async def run_worker(queue: TaskQueue = task_queue) -> None:
    """Poll all registered queues and dispatch tasks to handlers."""
    ctx = WorkerContext(ledger=build_ledger_services(SETTINGS))
    queues = list(HANDLERS.keys())
    logger.info("Worker started — listening on queues: %s", queues)
    try:
        while True:
            for queue_name in queues:
                task = await queue.dequeue(queue_name, timeout=1)
                if task is None:
                    continue
                await process_task(task, ctx)
    finally:
        await ctx.ledger.aclose()


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
