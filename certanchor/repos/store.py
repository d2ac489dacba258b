"""Unit-of-work wrapper around the three repos.

The lifecycle service needs to commit at a specific point (after the
approval transition and certificate insert, before anchoring), so it
talks to a Store rather than to the repos and session separately.

  - InMemoryStore: process-wide (memory_store), used when DATABASE_URL
    is unset and in tests.  Writes are visible immediately; a MemoryJournal
    remembers each task's uncommitted writes so rollback() can undo them.
  - PgStore: one per request, wraps the request-scoped AsyncSession.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from certanchor.db.engine import async_session_factory
from certanchor.repos.certificate_repo import CertificateRepo, InMemoryCertificateRepo
from certanchor.repos.certificate_request_repo import (
    CertificateRequestRepo,
    InMemoryCertificateRequestRepo,
)
from certanchor.repos.institution_repo import InMemoryInstitutionRepo, InstitutionRepo
from certanchor.repos.memory_journal import MemoryJournal
from certanchor.repos.pg_certificate_repo import PgCertificateRepo
from certanchor.repos.pg_certificate_request_repo import PgCertificateRequestRepo
from certanchor.repos.pg_institution_repo import PgInstitutionRepo

logger = logging.getLogger(__name__)


class Store(Protocol):
    institutions: InstitutionRepo
    requests: CertificateRequestRepo
    certificates: CertificateRepo

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...


class InMemoryStore:
    def __init__(self) -> None:
        self.clear()

    def clear(self) -> None:
        self._journal = MemoryJournal()
        self.institutions = InMemoryInstitutionRepo(self._journal)
        self.requests = InMemoryCertificateRequestRepo(self._journal)
        self.certificates = InMemoryCertificateRepo(self._journal)

    async def commit(self) -> None:
        self._journal.commit()

    async def rollback(self) -> None:
        undone = self._journal.rollback()
        if undone:
            logger.debug("Rolled back %d in-memory writes", undone)


class PgStore:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.institutions = PgInstitutionRepo(session)
        self.requests = PgCertificateRequestRepo(session)
        self.certificates = PgCertificateRepo(session)

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()


# Process-wide store used when DATABASE_URL is unset.
memory_store = InMemoryStore()


@asynccontextmanager
async def open_store() -> AsyncIterator[Store]:
    """Yield a Store for one unit of work (an HTTP request or a worker task).

    Postgres: a fresh session, committed on success and rolled back on
    error.  Otherwise the shared in-memory store.
    """
    if async_session_factory is None:
        try:
            yield memory_store
            await memory_store.commit()
        except Exception:
            await memory_store.rollback()
            raise
        return
    async with async_session_factory() as session:
        try:
            yield PgStore(session)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
