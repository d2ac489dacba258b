"""PostgreSQL implementation of CertificateRepo."""

from __future__ import annotations

import json
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from certanchor.core.errors import StoreConflictError
from certanchor.db.tables import CertificateRow
from certanchor.ledger.transactions import to_uint64
from certanchor.models.certificate import Certificate, CertificateStatus
from certanchor.services.fingerprint import canonical_bytes


class PgCertificateRepo:
    """Satisfies the CertificateRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _one(self, stmt) -> Certificate | None:
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_certificate(row)

    async def get(self, credential_id: str) -> Certificate | None:
        return await self._one(
            select(CertificateRow).where(CertificateRow.credential_id == credential_id)
        )

    async def get_by_fingerprint(self, fingerprint: str) -> Certificate | None:
        # Identical payloads issued in the same second share a fingerprint.
        return await self._one(
            select(CertificateRow)
            .where(CertificateRow.fingerprint == fingerprint)
            .order_by(CertificateRow.issued_at.desc(), CertificateRow.credential_id)
            .limit(1)
        )

    async def get_by_request(self, request_id: UUID) -> Certificate | None:
        return await self._one(
            select(CertificateRow).where(CertificateRow.request_id == request_id)
        )

    async def add(self, certificate: Certificate) -> None:
        row = CertificateRow(
            credential_id=certificate.credential_id,
            request_id=certificate.request_id,
            subject_id=certificate.subject_id,
            institution_id=certificate.institution_id,
            subject_name=certificate.subject_name,
            course_name=certificate.course_name,
            fingerprint=certificate.fingerprint,
            fingerprint_scheme=certificate.fingerprint_scheme,
            # Stored as the exact bytes that were hashed.
            payload_json=canonical_bytes(certificate.payload).decode("utf-8"),
            issued_at=certificate.issued_at,
            status=certificate.status.value,
            revoked_at=certificate.revoked_at,
            ledger_asset_id=certificate.ledger_asset_id,
            ledger_tx_id=certificate.ledger_tx_id,
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError:
            raise StoreConflictError(
                "certificate conflicts with an existing credential_id or request"
            ) from None

    async def list_by_subject(self, subject_id: str) -> list[Certificate]:
        stmt = (
            select(CertificateRow)
            .where(CertificateRow.subject_id == subject_id)
            .order_by(CertificateRow.issued_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_certificate(r) for r in rows]

    async def list_by_institution(self, institution_id: UUID) -> list[Certificate]:
        stmt = (
            select(CertificateRow)
            .where(CertificateRow.institution_id == institution_id)
            .order_by(CertificateRow.issued_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_certificate(r) for r in rows]

    async def compare_and_set_status(
        self,
        credential_id: str,
        expected: CertificateStatus,
        new: CertificateStatus,
        *,
        revoked_at: int | None = None,
    ) -> Certificate | None:
        stmt = (
            update(CertificateRow)
            .where(CertificateRow.credential_id == credential_id)
            .where(CertificateRow.status == expected.value)
            .values(status=new.value, revoked_at=revoked_at)
            .returning(CertificateRow)
        )
        return await self._one(stmt)

    async def set_anchor(
        self, credential_id: str, asset_id: int, tx_id: str
    ) -> Certificate | None:
        """Write the ledger reference once.  None if absent or already anchored."""
        stmt = (
            update(CertificateRow)
            .where(CertificateRow.credential_id == credential_id)
            .where(CertificateRow.ledger_asset_id.is_(None))
            .where(CertificateRow.ledger_tx_id.is_(None))
            .values(
                ledger_asset_id=to_uint64(asset_id, field_name="ledger_asset_id"),
                ledger_tx_id=tx_id,
            )
            .returning(CertificateRow)
        )
        return await self._one(stmt)


def _row_to_certificate(row: CertificateRow) -> Certificate:
    asset_id = row.ledger_asset_id
    return Certificate(
        credential_id=row.credential_id,
        request_id=row.request_id,
        subject_id=row.subject_id,
        institution_id=row.institution_id,
        subject_name=row.subject_name,
        course_name=row.course_name,
        fingerprint=row.fingerprint,
        fingerprint_scheme=row.fingerprint_scheme,
        issued_at=row.issued_at,
        payload=json.loads(row.payload_json),
        status=CertificateStatus(row.status),
        revoked_at=row.revoked_at,
        # NUMERIC comes back as Decimal.
        ledger_asset_id=(
            None if asset_id is None else to_uint64(asset_id, field_name="ledger_asset_id")
        ),
        ledger_tx_id=row.ledger_tx_id,
    )
