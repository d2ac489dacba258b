"""Single authorization predicate for lifecycle transitions.

Every transition asks one question, once:

    is_authorized(principal, action, institution_id)

The answer depends only on the actor's roles, the actor's institution,
and the institution that owns the target request or certificate.
Platform admins pass every institution-scoped check.

    SUBMIT            student
    REVIEW            institution_admin of the owning institution
    REVOKE            institution_admin of the owning institution
    VIEW_INSTITUTION  institution_admin of the owning institution
"""

from __future__ import annotations

import logging
from enum import StrEnum
from uuid import UUID

from certanchor.core.errors import AuthorizationError
from certanchor.models.principal import INSTITUTION_ADMIN, STUDENT, Principal

logger = logging.getLogger(__name__)


class Action(StrEnum):
    SUBMIT = "submit"
    REVIEW = "review"
    REVOKE = "revoke"
    VIEW_INSTITUTION = "view_institution"


def is_authorized(principal: Principal, action: Action, institution_id: UUID | None) -> bool:
    if action is Action.SUBMIT:
        return principal.has_role(STUDENT)

    if principal.is_platform_admin():
        return True
    if institution_id is None:
        return False
    return principal.has_role(INSTITUTION_ADMIN) and principal.belongs_to(institution_id)


def authorize(principal: Principal, action: Action, institution_id: UUID | None) -> None:
    """Raise AuthorizationError unless is_authorized() allows the action."""
    if not is_authorized(principal, action, institution_id):
        logger.warning(
            "Access denied: user=%s action=%s institution=%s",
            principal.user_id,
            action,
            institution_id,
        )
        raise AuthorizationError(f"not allowed to {action}")
