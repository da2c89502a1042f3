"""Resolve a caller's relationship to a tenant.

The result is a closed union: :class:`Found` for a stored membership,
:class:`Legacy` for the synthesised owner membership used while the
``tenant_members`` table has not been migrated yet, or ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from eventdesk.core.errors import StorageError
from eventdesk.core.logging import log_debug, log_error
from eventdesk.core.schema import is_missing_table
from eventdesk.repositories import tenant_members as tenant_members_repo


class MembershipRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


@dataclass(frozen=True)
class Found:
    role: MembershipRole


@dataclass(frozen=True)
class Legacy:
    role: MembershipRole = MembershipRole.OWNER


Membership = Found | Legacy


async def resolve_membership(tenant_id: str, user_id: str) -> Membership | None:
    try:
        row = await tenant_members_repo.get_member(tenant_id, user_id)
    except Exception as exc:
        if is_missing_table(exc, "tenant_members"):
            # Before tenancy existed every user was their own tenant.
            log_debug("Membership store missing, using legacy tenancy", tenant_id=tenant_id)
            return Legacy() if tenant_id == user_id else None
        log_error("Failed to resolve tenant membership", tenant_id=tenant_id, error=repr(exc))
        raise StorageError() from exc

    if row is None:
        return None
    try:
        role = MembershipRole(row["role"])
    except ValueError:
        # An unknown stored role grants the least privilege.
        role = MembershipRole.MEMBER
    return Found(role)
