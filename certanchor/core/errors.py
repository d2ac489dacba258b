"""Domain error taxonomy.

Services raise these; the API layer translates them into HTTP statuses.
Keeping the two apart lets callers tell "bad input" from "raced with
another actor" without parsing messages:

  ValidationError      → 422  missing field, malformed identifier
  AuthorizationError   → 403  actor not allowed to perform the transition
  NotFoundError        → 404  request/certificate/institution absent
  ConflictError        → 409  transition lost a compare-and-set
  StoreConflictError   → 409  unique constraint violated in the store

Ledger failures are NOT part of this hierarchy.  They live in
certanchor.ledger.errors and are absorbed by the lifecycle and
verification services instead of reaching callers.
"""

from __future__ import annotations


class CertAnchorError(Exception):
    """Base class for domain errors raised by the service layer."""


class ValidationError(CertAnchorError, ValueError):
    pass


class AuthorizationError(CertAnchorError):
    pass


class NotFoundError(CertAnchorError, LookupError):
    pass


class ConflictError(CertAnchorError):
    pass


class StoreConflictError(ConflictError):
    """A uniqueness constraint in the persistent store was violated."""
