from __future__ import annotations

from typing import Protocol
from uuid import UUID

from certanchor.core.errors import StoreConflictError
from certanchor.models.institution import Institution
from certanchor.repos.memory_journal import MemoryJournal


class InstitutionRepo(Protocol):
    async def get(self, institution_id: UUID) -> Institution | None: ...
    async def get_by_name(self, name: str) -> Institution | None: ...
    async def add(self, institution: Institution) -> None: ...
    async def list_all(self) -> list[Institution]: ...


class InMemoryInstitutionRepo:
    def __init__(self, journal: MemoryJournal | None = None) -> None:
        self._journal = journal or MemoryJournal()
        self._by_id: dict[UUID, Institution] = {}
        self._by_name: dict[str, Institution] = {}

    async def get(self, institution_id: UUID) -> Institution | None:
        return self._by_id.get(institution_id)

    async def get_by_name(self, name: str) -> Institution | None:
        return self._by_name.get(name)

    async def add(self, institution: Institution) -> None:
        if institution.name in self._by_name:
            raise StoreConflictError("institution name already exists")
        self._journal.put(self._by_id, institution.id, institution)
        self._journal.put(self._by_name, institution.name, institution)

    async def list_all(self) -> list[Institution]:
        return sorted(self._by_id.values(), key=lambda i: i.name)
