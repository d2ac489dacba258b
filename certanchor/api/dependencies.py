"""FastAPI dependencies: authentication, store, ledger, services.

Route handlers never reach for globals.  They declare what they need:

    async def approve(
        principal: Annotated[Principal, Depends(require_user)],
        lifecycle: Annotated[CertificateLifecycle, Depends(get_lifecycle)],
    ): ...

get_store yields one Store per request (a Postgres session, or the
shared in-memory store).  get_ledger returns the LedgerServices that
lifespan_ledger put on app.state; tests override it with an in-memory
ledger via app.dependency_overrides.

Authorization decisions (which institution an actor may act for) are
NOT made here.  They belong to services/authorization.py and are
checked inside each lifecycle transition.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from certanchor.core.errors import (
    AuthorizationError,
    CertAnchorError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from certanchor.ledger.client import LedgerServices
from certanchor.models.principal import KNOWN_ROLES, Principal
from certanchor.repos.store import Store, open_store
from certanchor.services import token_service
from certanchor.services.lifecycle import CertificateLifecycle
from certanchor.services.verification import VerificationService

logger = logging.getLogger(__name__)

# Tokens come from the auth server; tokenUrl only feeds the OpenAPI docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal."""
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise _unauthorized("Invalid token") from None

    raw_roles = claims.get("roles") or []
    if not isinstance(raw_roles, list):
        raise _unauthorized("Invalid token")
    # Unknown roles are dropped rather than trusted.
    roles = frozenset(r for r in raw_roles if r in KNOWN_ROLES)

    institution_id: UUID | None = None
    raw_institution = claims.get("institution_id")
    if raw_institution is not None:
        try:
            institution_id = UUID(str(raw_institution))
        except ValueError:
            logger.warning("Token with malformed institution_id rejected")
            raise _unauthorized("Invalid token") from None

    principal = Principal(
        user_id=claims["sub"],
        roles=roles,
        institution_id=institution_id,
    )
    logger.debug(
        "Token validated for user=%s roles=%s institution=%s",
        principal.user_id,
        sorted(principal.roles),
        principal.institution_id,
    )
    return principal


def require_role(role: str):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role("admin"))
    Returns the Principal if the role is present, else 403.
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_role(role):
            logger.warning(
                "Access denied: user=%s missing role=%s",
                principal.user_id,
                role,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


# ---------------------------------------------------------------------------
# Store, ledger, and services
# ---------------------------------------------------------------------------


async def get_store() -> AsyncIterator[Store]:
    async with open_store() as store:
        yield store


def get_ledger(request: Request) -> LedgerServices:
    ledger = getattr(request.app.state, "ledger", None)
    if ledger is None:
        # Lifespan not run (e.g. TestClient used without a context manager).
        return LedgerServices()
    return ledger


def get_lifecycle(
    store: Annotated[Store, Depends(get_store)],
    ledger: Annotated[LedgerServices, Depends(get_ledger)],
) -> CertificateLifecycle:
    return CertificateLifecycle(store, ledger)


def get_verification(
    store: Annotated[Store, Depends(get_store)],
    ledger: Annotated[LedgerServices, Depends(get_ledger)],
) -> VerificationService:
    return VerificationService(store, ledger)


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------

_STATUS_FOR_ERROR: list[tuple[type[CertAnchorError], int]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_CONTENT),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
]


def http_error(exc: CertAnchorError) -> HTTPException:
    """Translate a domain error into the HTTPException a handler raises.

    Usage:
        try:
            ...
        except CertAnchorError as e:
            raise http_error(e) from None
    """
    for error_type, status_code in _STATUS_FOR_ERROR:
        if isinstance(exc, error_type):
            detail = "Insufficient permissions" if status_code == 403 else str(exc)
            return HTTPException(status_code=status_code, detail=detail)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
