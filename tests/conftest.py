from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from certanchor.api.dependencies import get_ledger
from certanchor.api.ratelimit import _rate_limiter
from certanchor.ledger.anchor import LedgerAnchorClient
from certanchor.ledger.client import LedgerServices
from certanchor.ledger.rpc import InMemoryLedgerRpc
from certanchor.ledger.signing import SigningIdentity, SigningKeyring
from certanchor.main import app
from certanchor.models.institution import Institution
from certanchor.models.principal import INSTITUTION_ADMIN, PLATFORM_ADMIN, STUDENT, Principal
from certanchor.repos.store import memory_store
from certanchor.services import token_service
from certanchor.services.task_queue import task_queue

# Ensure repo root is on sys.path so `import certanchor` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture(autouse=True)
def reset_store() -> None:
    """Fresh in-memory institutions, requests, and certificates per test."""
    memory_store.clear()


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Clear rate limit buckets between tests so limits don't bleed."""
    if hasattr(_rate_limiter, "_buckets"):
        _rate_limiter._buckets.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "clear"):
        task_queue.clear()  # type: ignore[union-attr]


@pytest.fixture
def ledger_rpc() -> InMemoryLedgerRpc:
    return InMemoryLedgerRpc()


@pytest.fixture
def ledger(ledger_rpc: InMemoryLedgerRpc) -> LedgerServices:
    """Ledger services over the in-memory ledger with a service-wide signing key."""
    return LedgerServices(
        anchor_client=LedgerAnchorClient(ledger_rpc, sleep=no_sleep),
        keyring=SigningKeyring(default=SigningIdentity.generate()),
    )


@pytest.fixture(autouse=True)
def override_ledger(ledger: LedgerServices):
    """Route handlers get the in-memory ledger instead of app.state.ledger."""
    app.dependency_overrides[get_ledger] = lambda: ledger
    yield
    app.dependency_overrides.pop(get_ledger, None)


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    username: str = "test-user",
    roles: list[str] | None = None,
    institution_id: UUID | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(
        sub=username, roles=roles, institution_id=institution_id
    )


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Domain helpers
# ---------------------------------------------------------------------------


def create_test_institution(name: str = "MIT") -> Institution:
    """Create and persist an institution in the shared in-memory store."""
    institution = Institution.new(name=name, verified=True)
    asyncio.run(memory_store.institutions.add(institution))
    return institution


def student(user_id: str = "student-1", institution_id: UUID | None = None) -> Principal:
    return Principal(
        user_id=user_id, roles=frozenset({STUDENT}), institution_id=institution_id
    )


def institution_admin(institution_id: UUID, user_id: str = "registrar") -> Principal:
    return Principal(
        user_id=user_id,
        roles=frozenset({INSTITUTION_ADMIN}),
        institution_id=institution_id,
    )


def platform_admin(user_id: str = "platform-admin") -> Principal:
    return Principal(user_id=user_id, roles=frozenset({PLATFORM_ADMIN}))
