from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from certanchor.core.errors import StoreConflictError
from certanchor.models.certificate import Certificate, CertificateStatus
from certanchor.repos.memory_journal import MemoryJournal


class CertificateRepo(Protocol):
    async def get(self, credential_id: str) -> Certificate | None: ...
    async def get_by_fingerprint(self, fingerprint: str) -> Certificate | None: ...
    async def get_by_request(self, request_id: UUID) -> Certificate | None: ...
    async def add(self, certificate: Certificate) -> None: ...
    async def list_by_subject(self, subject_id: str) -> list[Certificate]: ...
    async def list_by_institution(self, institution_id: UUID) -> list[Certificate]: ...
    async def compare_and_set_status(
        self,
        credential_id: str,
        expected: CertificateStatus,
        new: CertificateStatus,
        *,
        revoked_at: int | None = None,
    ) -> Certificate | None: ...
    async def set_anchor(
        self, credential_id: str, asset_id: int, tx_id: str
    ) -> Certificate | None: ...


class InMemoryCertificateRepo:
    def __init__(self, journal: MemoryJournal | None = None) -> None:
        self._journal = journal or MemoryJournal()
        self._by_credential_id: dict[str, Certificate] = {}
        self._by_fingerprint: dict[str, tuple[str, ...]] = {}
        self._by_request: dict[UUID, str] = {}

    async def get(self, credential_id: str) -> Certificate | None:
        return self._by_credential_id.get(credential_id)

    async def get_by_fingerprint(self, fingerprint: str) -> Certificate | None:
        # Identical payloads issued in the same second share a fingerprint.
        found = [self._by_credential_id[c] for c in self._by_fingerprint.get(fingerprint, ())]
        if not found:
            return None
        return min(found, key=lambda c: (-c.issued_at, c.credential_id))

    async def get_by_request(self, request_id: UUID) -> Certificate | None:
        credential_id = self._by_request.get(request_id)
        if credential_id is None:
            return None
        return self._by_credential_id.get(credential_id)

    async def add(self, certificate: Certificate) -> None:
        # Mirrors the unique constraints on the certificates table.
        if certificate.credential_id in self._by_credential_id:
            raise StoreConflictError("credential_id already exists")
        if certificate.request_id in self._by_request:
            raise StoreConflictError("request already has a certificate")
        self._journal.put(self._by_credential_id, certificate.credential_id, certificate)
        self._journal.put(
            self._by_fingerprint,
            certificate.fingerprint,
            (*self._by_fingerprint.get(certificate.fingerprint, ()), certificate.credential_id),
        )
        self._journal.put(self._by_request, certificate.request_id, certificate.credential_id)

    async def list_by_subject(self, subject_id: str) -> list[Certificate]:
        found = [c for c in self._by_credential_id.values() if c.subject_id == subject_id]
        return sorted(found, key=lambda c: c.issued_at, reverse=True)

    async def list_by_institution(self, institution_id: UUID) -> list[Certificate]:
        found = [
            c for c in self._by_credential_id.values() if c.institution_id == institution_id
        ]
        return sorted(found, key=lambda c: c.issued_at, reverse=True)

    async def compare_and_set_status(
        self,
        credential_id: str,
        expected: CertificateStatus,
        new: CertificateStatus,
        *,
        revoked_at: int | None = None,
    ) -> Certificate | None:
        current = self._by_credential_id.get(credential_id)
        if current is None or current.status != expected:
            return None
        updated = replace(current, status=new, revoked_at=revoked_at)
        self._journal.put(self._by_credential_id, credential_id, updated)
        return updated

    async def set_anchor(
        self, credential_id: str, asset_id: int, tx_id: str
    ) -> Certificate | None:
        """Write the ledger reference once.  None if absent or already anchored."""
        current = self._by_credential_id.get(credential_id)
        if current is None or current.ledger_asset_id is not None:
            return None
        if current.ledger_tx_id is not None:
            return None
        updated = replace(current, ledger_asset_id=asset_id, ledger_tx_id=tx_id)
        self._journal.put(self._by_credential_id, credential_id, updated)
        return updated
