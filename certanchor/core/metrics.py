"""Prometheus metric inventory.

Every metric the service exports is declared here; modules import the
one they own and increment it at the point of action.  /metrics exposes
them in text format for scraping.

Certificate metrics are the ones worth alerting on:

  ledger_anchor_attempts_total{result="failed"} rising while
  certificates_issued_total keeps pace means the ledger is down and
  certificates are being issued unanchored.  That is allowed (anchoring
  is best-effort) but someone should know.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    # Approvals that anchor synchronously wait for ledger confirmation
    # (several seconds), hence the long tail buckets.
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Certificate lifecycle
# ---------------------------------------------------------------------------

CERTIFICATES_ISSUED = Counter(
    "certificates_issued_total",
    "Certificates issued (request approvals that committed)",
)

CERTIFICATE_TRANSITIONS = Counter(
    "certificate_transitions_total",
    "Lifecycle transitions by kind and outcome",
    ["transition", "outcome"],  # submit|approve|reject|revoke × ok|conflict|denied
)

LEDGER_ANCHOR_ATTEMPTS = Counter(
    "ledger_anchor_attempts_total",
    "Ledger anchoring attempts by result",
    ["result"],  # anchored|failed|skipped
)

LEDGER_ANCHOR_DURATION = Histogram(
    "ledger_anchor_duration_seconds",
    "Time from transaction build to confirmation (or abandonment)",
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0],
)

CERTIFICATE_VERIFICATIONS = Counter(
    "certificate_verifications_total",
    "Verification requests by outcome",
    ["result"],  # valid|not_found|revoked|integrity_mismatch
)

CHAIN_CHECKS = Counter(
    "ledger_chain_checks_total",
    "On-chain cross-checks by status",
    ["status"],  # confirmed|confirmed_truncated|mismatch|not_found|inconclusive
)

# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting (429s)",
    ["key_type"],  # "user" or "ip"
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],
)
