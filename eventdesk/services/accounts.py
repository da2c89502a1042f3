from __future__ import annotations

import hmac
from typing import Any

from eventdesk.core import schema
from eventdesk.core.config import get_settings
from eventdesk.core.errors import StorageError
from eventdesk.core.logging import log_error, log_info, log_warning
from eventdesk.core.schema import classify_missing_schema
from eventdesk.repositories import tenant_members as tenant_members_repo
from eventdesk.repositories import users as user_repo
from eventdesk.security.context import STAFF_ROLES, parse_staff_role
from eventdesk.security.passwords import verify_password


class EmailAlreadyRegistered(Exception):
    pass


async def _provision_tenant(user: dict[str, Any]) -> dict[str, Any]:
    """Give a new user their own tenant, owned by them.

    Databases still on the pre-tenancy schema skip this step: the user is then
    their own legacy tenant.
    """

    tenant_id = user["id"]
    try:
        await tenant_members_repo.create_tenant(tenant_id, user.get("name") or user["email"])
        await tenant_members_repo.add_member(tenant_id, user["id"], "owner")
        await user_repo.set_default_tenant(user["id"], tenant_id)
    except Exception as exc:
        missing = classify_missing_schema(exc)
        if missing is not None and missing.migration == schema.MULTITENANT_RBAC:
            log_warning("Tenancy schema missing, user left in legacy tenancy", user_id=user["id"])
            return user
        log_error("Failed to provision tenant", user_id=user["id"], error=repr(exc))
        raise StorageError() from exc
    return {**user, "default_tenant_id": tenant_id}


async def register_account(*, email: str, name: str, password: str) -> dict[str, Any]:
    if await user_repo.get_user_by_email(email):
        raise EmailAlreadyRegistered(email)
    user = await user_repo.create_user(email=email, name=name, password=password)
    user = await _provision_tenant(user)
    log_info("Account registered", user_id=user["id"])
    return user


async def authenticate(email: str, password: str) -> dict[str, Any] | None:
    user = await user_repo.get_user_by_email(email)
    if not user or not verify_password(password, user.get("password_hash")):
        return None
    return user


def access_code_matches(candidate: str) -> bool:
    expected = get_settings().admin_access_code
    if not expected:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


def is_staff_user(user: dict[str, Any]) -> bool:
    return parse_staff_role(user.get("role")) in STAFF_ROLES
