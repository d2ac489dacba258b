"""Worker tests: anchor retries dequeued from the task queue."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from certanchor.ledger.client import LedgerServices
from certanchor.models.institution import Institution
from certanchor.repos.store import InMemoryStore
from certanchor.services.lifecycle import CertificateLifecycle
from certanchor.services.task_queue import ANCHOR_QUEUE, InMemoryTaskQueue, Task
from certanchor.worker import HANDLERS, WorkerContext, process_task
from tests.conftest import institution_admin, student


def _context(store: InMemoryStore, ledger: LedgerServices) -> WorkerContext:
    @asynccontextmanager
    async def open_store():
        yield store

    return WorkerContext(ledger=ledger, open_store=open_store)


def _unanchored_certificate(store: InMemoryStore) -> str:
    institution = Institution.new(name="MIT")
    asyncio.run(store.institutions.add(institution))
    lifecycle = CertificateLifecycle(store, LedgerServices())
    request = asyncio.run(
        lifecycle.submit(
            student("jane"),
            institution_id=institution.id,
            subject_name="Jane Doe",
            course_name="CS101",
        )
    )
    issuance = asyncio.run(lifecycle.approve(request.id, institution_admin(institution.id)))
    assert not issuance.anchored
    return issuance.certificate.credential_id


def test_anchor_handler_is_registered() -> None:
    assert ANCHOR_QUEUE in HANDLERS


def test_anchor_task_anchors_certificate(ledger: LedgerServices) -> None:
    store = InMemoryStore()
    credential_id = _unanchored_certificate(store)
    task = Task(id="t1", queue=ANCHOR_QUEUE, payload={"credential_id": credential_id})

    assert asyncio.run(process_task(task, _context(store, ledger)))

    certificate = asyncio.run(store.certificates.get(credential_id))
    assert certificate is not None
    assert certificate.ledger_asset_id is not None


def test_anchor_task_for_revoked_certificate_is_skipped(ledger: LedgerServices) -> None:
    store = InMemoryStore()
    credential_id = _unanchored_certificate(store)
    certificate = asyncio.run(store.certificates.get(credential_id))
    assert certificate is not None
    asyncio.run(
        CertificateLifecycle(store, ledger).revoke(
            credential_id, institution_admin(certificate.institution_id)
        )
    )

    task = Task(id="t2", queue=ANCHOR_QUEUE, payload={"credential_id": credential_id})
    assert asyncio.run(process_task(task, _context(store, ledger)))
    certificate = asyncio.run(store.certificates.get(credential_id))
    assert certificate is not None and certificate.ledger_asset_id is None


def test_malformed_task_fails_without_raising(ledger: LedgerServices) -> None:
    task = Task(id="t3", queue=ANCHOR_QUEUE, payload={})
    assert not asyncio.run(process_task(task, _context(InMemoryStore(), ledger)))


def test_in_memory_queue_is_fifo() -> None:
    queue = InMemoryTaskQueue()

    async def roundtrip():
        await queue.enqueue(ANCHOR_QUEUE, {"n": 1})
        await queue.enqueue(ANCHOR_QUEUE, {"n": 2})
        assert await queue.queue_length(ANCHOR_QUEUE) == 2
        first = await queue.dequeue(ANCHOR_QUEUE)
        second = await queue.dequeue(ANCHOR_QUEUE)
        empty = await queue.dequeue(ANCHOR_QUEUE)
        return first, second, empty

    first, second, empty = asyncio.run(roundtrip())
    assert first is not None and first.payload == {"n": 1}
    assert second is not None and second.payload == {"n": 2}
    assert empty is None
