"""Prometheus metrics middleware tests.

prometheus_client counters live in a global registry and cannot be reset
between tests, so every assertion is on a delta: read, act, read again.
"""

from __future__ import annotations

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def test_request_counter_increments(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health", "status_code": "200"}
    before = _get_sample("http_requests_total", labels)
    client.get("/health")
    assert _get_sample("http_requests_total", labels) - before >= 1


def test_request_duration_histogram_observes(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health"}
    before = _get_sample("http_request_duration_seconds_count", labels)
    client.get("/health")
    assert _get_sample("http_request_duration_seconds_count", labels) - before >= 1


def test_endpoint_label_is_route_template(client: TestClient) -> None:
    """Credential ids in the path must not create one series per certificate."""
    labels = {
        "method": "GET",
        "endpoint": "/v1/certificates/{identifier}/verify",
        "status_code": "200",
    }
    before = _get_sample("http_requests_total", labels)
    client.get("/v1/certificates/CERT-000000000-AAAAAAAA/verify")
    client.get("/v1/certificates/CERT-000000000-BBBBBBBB/verify")
    assert _get_sample("http_requests_total", labels) - before == 2
    assert (
        REGISTRY.get_sample_value(
            "http_requests_total",
            {
                "method": "GET",
                "endpoint": "/v1/certificates/CERT-000000000-AAAAAAAA/verify",
                "status_code": "200",
            },
        )
        is None
    )


def test_unmatched_paths_share_one_label(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "<unmatched>", "status_code": "404"}
    before = _get_sample("http_requests_total", labels)
    client.get("/no/such/path")
    client.get("/another/missing/path")
    assert _get_sample("http_requests_total", labels) - before == 2


def test_metrics_endpoint_returns_prometheus_format(client: TestClient) -> None:
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text
    assert "certificate_verifications_total" in resp.text
    assert "ledger_anchor_attempts_total" in resp.text


def test_metrics_endpoint_not_self_instrumented(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/metrics", "status_code": "200"}
    before = _get_sample("http_requests_total", labels)
    client.get("/metrics")
    client.get("/metrics")
    assert _get_sample("http_requests_total", labels) == before
