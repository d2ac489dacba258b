from __future__ import annotations

from uuid import uuid4

import pytest

from certanchor.core.errors import AuthorizationError
from certanchor.models.principal import Principal
from certanchor.services.authorization import Action, authorize, is_authorized
from tests.conftest import institution_admin, platform_admin, student

INSTITUTION = uuid4()
OTHER = uuid4()


@pytest.mark.parametrize("action", [Action.REVIEW, Action.REVOKE, Action.VIEW_INSTITUTION])
def test_institution_admin_scoped_to_own_institution(action: Action) -> None:
    admin = institution_admin(INSTITUTION)
    assert is_authorized(admin, action, INSTITUTION)
    assert not is_authorized(admin, action, OTHER)
    assert not is_authorized(admin, action, None)


@pytest.mark.parametrize("action", [Action.REVIEW, Action.REVOKE, Action.VIEW_INSTITUTION])
def test_platform_admin_passes_institution_checks(action: Action) -> None:
    assert is_authorized(platform_admin(), action, OTHER)


@pytest.mark.parametrize("action", [Action.REVIEW, Action.REVOKE, Action.VIEW_INSTITUTION])
def test_student_cannot_act_for_institution(action: Action) -> None:
    assert not is_authorized(student(institution_id=INSTITUTION), action, INSTITUTION)


def test_only_students_submit() -> None:
    assert is_authorized(student(), Action.SUBMIT, INSTITUTION)
    assert not is_authorized(institution_admin(INSTITUTION), Action.SUBMIT, INSTITUTION)
    assert not is_authorized(platform_admin(), Action.SUBMIT, INSTITUTION)


def test_admin_role_without_institution_claim_is_denied() -> None:
    unattached = Principal(user_id="u", roles=frozenset({"institution_admin"}))
    assert not is_authorized(unattached, Action.REVIEW, INSTITUTION)


def test_authorize_raises_and_logs(caplog: pytest.LogCaptureFixture) -> None:
    with pytest.raises(AuthorizationError):
        authorize(student("jane"), Action.REVOKE, INSTITUTION)
    assert "Access denied: user=jane action=revoke" in caplog.text
