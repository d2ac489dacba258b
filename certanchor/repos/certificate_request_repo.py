from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from certanchor.core.errors import StoreConflictError
from certanchor.models.certificate import CertificateRequest, RequestStatus
from certanchor.repos.memory_journal import MemoryJournal


class CertificateRequestRepo(Protocol):
    async def get(self, request_id: UUID) -> CertificateRequest | None: ...
    async def add(self, request: CertificateRequest) -> None: ...
    async def list_by_requester(self, requester_id: str) -> list[CertificateRequest]: ...
    async def list_by_institution(
        self, institution_id: UUID, status: RequestStatus | None = None
    ) -> list[CertificateRequest]: ...
    async def compare_and_set_status(
        self,
        request_id: UUID,
        expected: RequestStatus,
        new: RequestStatus,
        *,
        rejection_reason: str | None = None,
    ) -> CertificateRequest | None: ...


class InMemoryCertificateRequestRepo:
    def __init__(self, journal: MemoryJournal | None = None) -> None:
        self._journal = journal or MemoryJournal()
        self._by_id: dict[UUID, CertificateRequest] = {}

    async def get(self, request_id: UUID) -> CertificateRequest | None:
        return self._by_id.get(request_id)

    async def add(self, request: CertificateRequest) -> None:
        if request.id in self._by_id:
            raise StoreConflictError("certificate request already exists")
        self._journal.put(self._by_id, request.id, request)

    async def list_by_requester(self, requester_id: str) -> list[CertificateRequest]:
        found = [r for r in self._by_id.values() if r.requester_id == requester_id]
        return sorted(found, key=lambda r: r.created_at, reverse=True)

    async def list_by_institution(
        self, institution_id: UUID, status: RequestStatus | None = None
    ) -> list[CertificateRequest]:
        found = [
            r
            for r in self._by_id.values()
            if r.institution_id == institution_id and (status is None or r.status == status)
        ]
        return sorted(found, key=lambda r: r.created_at, reverse=True)

    async def compare_and_set_status(
        self,
        request_id: UUID,
        expected: RequestStatus,
        new: RequestStatus,
        *,
        rejection_reason: str | None = None,
    ) -> CertificateRequest | None:
        """Atomically move a request from `expected` to `new`.

        Returns the updated record, or None if the request doesn't exist
        or is no longer in `expected` (another actor got there first).
        No await between the check and the write, so this is atomic on
        the event loop.
        """
        current = self._by_id.get(request_id)
        if current is None or current.status != expected:
            return None
        updated = replace(current, status=new, rejection_reason=rejection_reason)
        self._journal.put(self._by_id, request_id, updated)
        return updated
