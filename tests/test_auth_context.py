from datetime import datetime, timedelta, timezone

import pytest

from eventdesk.core.config import get_settings
from eventdesk.core.errors import AuthenticationError
from eventdesk.security.context import (
    StaffRole,
    context_from_token,
    parse_staff_role,
    resolve_auth_context,
)
from eventdesk.security.tokens import TokenClaims, issue_token


def _claims(**overrides) -> TokenClaims:
    values = {
        "user_id": "user-1",
        "email": "user@example.com",
        "tenant_id": None,
        "role": None,
        "expires_at": None,
    }
    values.update(overrides)
    return TokenClaims(**values)


def test_defaults_role_to_user_and_tenant_to_user_id():
    ctx = resolve_auth_context(_claims())

    assert ctx.role is StaffRole.USER
    assert ctx.tenant_id == "user-1"
    assert ctx.is_staff is False


def test_keeps_explicit_tenant_and_staff_role():
    ctx = resolve_auth_context(_claims(tenant_id="tenant-7", role="support"))

    assert ctx.tenant_id == "tenant-7"
    assert ctx.role is StaffRole.SUPPORT
    assert ctx.is_staff is True


@pytest.mark.parametrize("value", [None, "", "superuser", "ADMIN"])
def test_unknown_roles_degrade_to_user(value):
    assert parse_staff_role(value) is StaffRole.USER


def test_context_is_rebuilt_for_each_call():
    claims = _claims(tenant_id="tenant-1", role="admin")

    first = resolve_auth_context(claims)
    second = resolve_auth_context(claims)

    assert first == second
    assert first is not second


def test_context_from_token_rejects_missing_and_invalid_tokens():
    with pytest.raises(AuthenticationError):
        context_from_token(None)
    with pytest.raises(AuthenticationError):
        context_from_token("not.a.token")


def test_context_from_token_rejects_expired_token():
    token = issue_token(
        "user-1",
        "user@example.com",
        secret=get_settings().jwt_secret,
        ttl=timedelta(minutes=5),
        now=datetime.now(timezone.utc) - timedelta(hours=1),
    )

    with pytest.raises(AuthenticationError) as excinfo:
        context_from_token(token)
    assert excinfo.value.to_payload() == {"error": "Not authenticated"}


def test_context_from_token_accepts_session_token():
    token = issue_token("user-1", "user@example.com", secret=get_settings().jwt_secret, tenant_id="tenant-2")

    ctx = context_from_token(token)

    assert ctx.user_id == "user-1"
    assert ctx.tenant_id == "tenant-2"
    assert ctx.role is StaffRole.USER
