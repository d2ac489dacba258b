"""InMemoryStore unit-of-work tests.

Verifies:
1. rollback() undoes the current task's uncommitted writes
2. commit() makes writes permanent
3. One task's rollback never touches another task's writes
4. Certificates may share a fingerprint
"""

from __future__ import annotations

import asyncio
import datetime
from uuid import uuid4

from certanchor.models.certificate import (
    Certificate,
    CertificateRequest,
    RequestStatus,
)
from certanchor.models.institution import Institution
from certanchor.repos.store import InMemoryStore

ISSUED_AT = int(datetime.datetime(2024, 1, 15, tzinfo=datetime.UTC).timestamp())


def _request(institution_id) -> CertificateRequest:
    return CertificateRequest.new(
        requester_id="jane",
        institution_id=institution_id,
        subject_name="Jane Doe",
        course_name="CS101",
        created_at=ISSUED_AT,
    )


def _certificate(request: CertificateRequest, credential_id: str, issued_at: int) -> Certificate:
    return Certificate(
        credential_id=credential_id,
        request_id=request.id,
        subject_id=request.requester_id,
        institution_id=request.institution_id,
        subject_name=request.subject_name,
        course_name=request.course_name,
        fingerprint="ab" * 32,
        fingerprint_scheme="sha256-canonical-json-v1",
        issued_at=issued_at,
        payload={"studentName": "Jane Doe"},
    )


def test_rollback_restores_request_status() -> None:
    store = InMemoryStore()
    request = _request(uuid4())

    async def flow():
        await store.requests.add(request)
        await store.commit()
        await store.requests.compare_and_set_status(
            request.id, RequestStatus.PENDING, RequestStatus.APPROVED
        )
        await store.rollback()
        return await store.requests.get(request.id)

    restored = asyncio.run(flow())
    assert restored is not None
    assert restored.status is RequestStatus.PENDING


def test_rollback_removes_uncommitted_inserts() -> None:
    store = InMemoryStore()
    institution = Institution.new(name="MIT")

    async def flow():
        await store.institutions.add(institution)
        await store.rollback()

    asyncio.run(flow())
    assert asyncio.run(store.institutions.get(institution.id)) is None
    assert asyncio.run(store.institutions.get_by_name("MIT")) is None


def test_committed_writes_survive_rollback() -> None:
    store = InMemoryStore()
    institution = Institution.new(name="MIT")

    async def flow():
        await store.institutions.add(institution)
        await store.commit()
        await store.rollback()

    asyncio.run(flow())
    assert asyncio.run(store.institutions.get(institution.id)) == institution


def test_rollback_only_touches_own_task() -> None:
    store = InMemoryStore()
    mine = Institution.new(name="MIT")
    theirs = Institution.new(name="Stanford")

    async def mine_then_rollback(ready: asyncio.Event):
        await store.institutions.add(mine)
        await ready.wait()
        await store.rollback()

    async def theirs_uncommitted(ready: asyncio.Event):
        await store.institutions.add(theirs)
        ready.set()

    async def both():
        ready = asyncio.Event()
        await asyncio.gather(mine_then_rollback(ready), theirs_uncommitted(ready))

    asyncio.run(both())
    assert asyncio.run(store.institutions.get(mine.id)) is None
    assert asyncio.run(store.institutions.get(theirs.id)) == theirs


def test_certificates_may_share_a_fingerprint() -> None:
    store = InMemoryStore()
    institution_id = uuid4()
    first, second = _request(institution_id), _request(institution_id)
    older = _certificate(first, "CERT-0LZ3K9XQ1-AAAAAAAA", ISSUED_AT)
    newer = _certificate(second, "CERT-0LZ3K9XQ2-BBBBBBBB", ISSUED_AT + 1)

    asyncio.run(store.certificates.add(older))
    asyncio.run(store.certificates.add(newer))

    assert asyncio.run(store.certificates.get_by_fingerprint("ab" * 32)) == newer
    assert len(asyncio.run(store.certificates.list_by_institution(institution_id))) == 2
