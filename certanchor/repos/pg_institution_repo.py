"""PostgreSQL implementation of InstitutionRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from certanchor.core.errors import StoreConflictError
from certanchor.db.tables import InstitutionRow
from certanchor.models.institution import Institution


class PgInstitutionRepo:
    """Satisfies the InstitutionRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, institution_id: UUID) -> Institution | None:
        row = await self._session.get(InstitutionRow, institution_id)
        if row is None:
            return None
        return _row_to_institution(row)

    async def get_by_name(self, name: str) -> Institution | None:
        stmt = select(InstitutionRow).where(InstitutionRow.name == name)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_institution(row)

    async def add(self, institution: Institution) -> None:
        row = InstitutionRow(
            id=institution.id,
            name=institution.name,
            ledger_address=institution.ledger_address,
            verified=institution.verified,
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError:
            raise StoreConflictError("institution name already exists") from None

    async def list_all(self) -> list[Institution]:
        stmt = select(InstitutionRow).order_by(InstitutionRow.name)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_institution(r) for r in rows]


def _row_to_institution(row: InstitutionRow) -> Institution:
    return Institution(
        id=row.id,
        name=row.name,
        ledger_address=row.ledger_address,
        verified=row.verified,
    )
