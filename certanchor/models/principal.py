from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

STUDENT = "student"
INSTITUTION_ADMIN = "institution_admin"
PLATFORM_ADMIN = "admin"

KNOWN_ROLES = frozenset({STUDENT, INSTITUTION_ADMIN, PLATFORM_ADMIN})


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated JWT.

    Carried through the request via FastAPI's dependency system and
    handed to the lifecycle service, which makes every authorization
    decision from it (see services/authorization.py).

        user_id:        subject from JWT
        roles:          student | institution_admin | admin
        institution_id: institution the user administers or studies at,
                        from the `institution_id` claim (None for users
                        not attached to an institution)
    """

    user_id: str
    roles: frozenset[str]
    institution_id: UUID | None = None

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str]) -> bool:
        return bool(self.roles & roles)

    def is_platform_admin(self) -> bool:
        return PLATFORM_ADMIN in self.roles

    def belongs_to(self, institution_id: UUID) -> bool:
        return self.institution_id is not None and self.institution_id == institution_id
