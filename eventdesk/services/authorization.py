"""Role authorization gate.

Two independent axes decide access:

* the global staff role from the session token, which only ever unlocks the
  explicitly named staff capabilities below;
* the caller's membership in the tenant that owns the resource, which
  unlocks tenant-scoped capabilities for that tenant only.

A staff role never stands in for a membership, and a membership never
reaches across tenants.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from eventdesk.core.errors import AuthorizationError
from eventdesk.security.context import AuthContext, StaffRole
from eventdesk.services.memberships import Found, Legacy, Membership, MembershipRole


class Capability(str, Enum):
    # Global staff capabilities
    VIEW_ALL_TICKETS = "tickets.view_all"
    MANAGE_ALL_TICKETS = "tickets.manage_all"
    VIEW_TICKET_STATS = "tickets.view_stats"
    VIEW_ALL_TENANTS = "tenants.view_all"
    VIEW_FINANCE = "finance.view"
    # Tenant-scoped capabilities
    READ_TICKETS = "tenant.tickets.read"
    WRITE_TICKETS = "tenant.tickets.write"
    READ_EVENTS = "tenant.events.read"
    MANAGE_EVENTS = "tenant.events.manage"
    READ_REGISTRATIONS = "tenant.registrations.read"
    MANAGE_TENANT = "tenant.settings.manage"


STAFF_CAPABILITIES: dict[Capability, frozenset[StaffRole]] = {
    Capability.VIEW_ALL_TICKETS: frozenset({StaffRole.ADMIN, StaffRole.SUPPORT}),
    Capability.MANAGE_ALL_TICKETS: frozenset({StaffRole.ADMIN, StaffRole.SUPPORT}),
    Capability.VIEW_TICKET_STATS: frozenset({StaffRole.ADMIN, StaffRole.SUPPORT}),
    Capability.VIEW_ALL_TENANTS: frozenset({StaffRole.ADMIN}),
    Capability.VIEW_FINANCE: frozenset({StaffRole.ADMIN, StaffRole.FINANCE}),
}

MUTATION_CAPABILITIES = frozenset(
    {
        Capability.WRITE_TICKETS,
        Capability.MANAGE_EVENTS,
        Capability.MANAGE_TENANT,
    }
)

_MUTATING_MEMBER_ROLES = frozenset({MembershipRole.OWNER, MembershipRole.ADMIN})


@dataclass(frozen=True)
class Allow:
    pass


@dataclass(frozen=True)
class Deny:
    reason: str


Decision = Allow | Deny


def is_staff_capability(capability: Capability) -> bool:
    return capability in STAFF_CAPABILITIES


def authorize(
    ctx: AuthContext,
    membership: Membership | None,
    resource_tenant_id: str | None,
    capability: Capability,
) -> Decision:
    if is_staff_capability(capability):
        if ctx.role in STAFF_CAPABILITIES[capability]:
            return Allow()
        return Deny("staff role required")

    if resource_tenant_id is not None and resource_tenant_id != ctx.tenant_id:
        return Deny("tenant mismatch")

    if membership is None:
        return Deny("not a member of the tenant")

    if capability not in MUTATION_CAPABILITIES:
        return Allow()

    if isinstance(membership, Legacy):
        return Allow()
    if isinstance(membership, Found) and membership.role in _MUTATING_MEMBER_ROLES:
        return Allow()
    return Deny("tenant owner or admin required")


def require(
    ctx: AuthContext,
    membership: Membership | None,
    resource_tenant_id: str | None,
    capability: Capability,
) -> None:
    """Raise :class:`AuthorizationError` unless :func:`authorize` allows."""

    decision = authorize(ctx, membership, resource_tenant_id, capability)
    if isinstance(decision, Deny):
        raise AuthorizationError()


def is_allowed(
    ctx: AuthContext,
    membership: Membership | None,
    resource_tenant_id: str | None,
    capability: Capability,
) -> bool:
    return isinstance(authorize(ctx, membership, resource_tenant_id, capability), Allow)
