"""PostgreSQL implementation of CertificateRequestRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from certanchor.core.errors import StoreConflictError
from certanchor.db.tables import CertificateRequestRow
from certanchor.models.certificate import CertificateRequest, RequestStatus


class PgCertificateRequestRepo:
    """Satisfies the CertificateRequestRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, request_id: UUID) -> CertificateRequest | None:
        stmt = select(CertificateRequestRow).where(CertificateRequestRow.id == request_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_request(row)

    async def add(self, request: CertificateRequest) -> None:
        row = CertificateRequestRow(
            id=request.id,
            requester_id=request.requester_id,
            institution_id=request.institution_id,
            subject_name=request.subject_name,
            course_name=request.course_name,
            classification=request.classification,
            status=request.status.value,
            rejection_reason=request.rejection_reason,
            created_at=request.created_at,
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError:
            raise StoreConflictError("certificate request already exists") from None

    async def list_by_requester(self, requester_id: str) -> list[CertificateRequest]:
        stmt = (
            select(CertificateRequestRow)
            .where(CertificateRequestRow.requester_id == requester_id)
            .order_by(CertificateRequestRow.created_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_request(r) for r in rows]

    async def list_by_institution(
        self, institution_id: UUID, status: RequestStatus | None = None
    ) -> list[CertificateRequest]:
        stmt = select(CertificateRequestRow).where(
            CertificateRequestRow.institution_id == institution_id
        )
        if status is not None:
            stmt = stmt.where(CertificateRequestRow.status == status.value)
        stmt = stmt.order_by(CertificateRequestRow.created_at.desc())
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_request(r) for r in rows]

    async def compare_and_set_status(
        self,
        request_id: UUID,
        expected: RequestStatus,
        new: RequestStatus,
        *,
        rejection_reason: str | None = None,
    ) -> CertificateRequest | None:
        """Conditional UPDATE guarded on the current status.

        Two approvers racing on the same request both issue this UPDATE;
        the row lock makes the second one see the new status and match
        zero rows.
        """
        stmt = (
            update(CertificateRequestRow)
            .where(CertificateRequestRow.id == request_id)
            .where(CertificateRequestRow.status == expected.value)
            .values(status=new.value, rejection_reason=rejection_reason)
            .returning(CertificateRequestRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None  # missing, or a concurrent update won the race
        return _row_to_request(row)


def _row_to_request(row: CertificateRequestRow) -> CertificateRequest:
    return CertificateRequest(
        id=row.id,
        requester_id=row.requester_id,
        institution_id=row.institution_id,
        subject_name=row.subject_name,
        course_name=row.course_name,
        created_at=row.created_at,
        classification=row.classification,
        status=RequestStatus(row.status),
        rejection_reason=row.rejection_reason,
    )
