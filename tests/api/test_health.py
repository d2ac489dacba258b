from __future__ import annotations

from fastapi.testclient import TestClient

from certanchor.api.dependencies import get_ledger
from certanchor.ledger.client import LedgerServices
from certanchor.main import app


def test_health_returns_ok(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    # In tests, Postgres and Redis are not configured
    assert data["checks"]["database"] == "not_configured"
    assert data["checks"]["redis"] == "not_configured"
    assert data["checks"]["ledger"] == "ok"


def test_health_reports_unconfigured_ledger(client: TestClient) -> None:
    app.dependency_overrides[get_ledger] = lambda: LedgerServices()
    resp = client.get("/health")
    assert resp.json()["checks"]["ledger"] == "not_configured"
    assert resp.json()["status"] == "ok"


def test_ready_returns_200(client: TestClient) -> None:
    resp = client.get("/ready")
    assert resp.status_code == 200
