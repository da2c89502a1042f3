import pytest

from eventdesk.core.errors import AuthorizationError
from eventdesk.security.context import AuthContext, StaffRole
from eventdesk.services.authorization import (
    MUTATION_CAPABILITIES,
    STAFF_CAPABILITIES,
    Allow,
    Capability,
    Deny,
    authorize,
    is_allowed,
    require,
)
from eventdesk.services.memberships import Found, Legacy, MembershipRole

TENANT_CAPABILITIES = [capability for capability in Capability if capability not in STAFF_CAPABILITIES]
MEMBERSHIPS = [
    None,
    Legacy(),
    Found(MembershipRole.OWNER),
    Found(MembershipRole.ADMIN),
    Found(MembershipRole.MEMBER),
]


def _ctx(role: StaffRole = StaffRole.USER, tenant_id: str = "tenant-a") -> AuthContext:
    return AuthContext(user_id="user-1", email="user@example.com", role=role, tenant_id=tenant_id)


@pytest.mark.parametrize("role", list(StaffRole))
@pytest.mark.parametrize("membership", MEMBERSHIPS)
@pytest.mark.parametrize("capability", TENANT_CAPABILITIES)
def test_tenant_capabilities_never_cross_tenants(role, membership, capability):
    decision = authorize(_ctx(role), membership, "tenant-b", capability)

    assert isinstance(decision, Deny)


@pytest.mark.parametrize("capability", list(STAFF_CAPABILITIES))
@pytest.mark.parametrize("role", list(StaffRole))
def test_staff_capabilities_follow_global_role_only(capability, role):
    decision = authorize(_ctx(role), None, "tenant-b", capability)

    expected = role in STAFF_CAPABILITIES[capability]
    assert isinstance(decision, Allow) is expected


def test_finance_role_cannot_read_ticket_queue():
    assert not is_allowed(_ctx(StaffRole.FINANCE), None, None, Capability.VIEW_ALL_TICKETS)
    assert is_allowed(_ctx(StaffRole.FINANCE), None, None, Capability.VIEW_FINANCE)


def test_support_role_cannot_list_tenants():
    assert not is_allowed(_ctx(StaffRole.SUPPORT), None, None, Capability.VIEW_ALL_TENANTS)
    assert is_allowed(_ctx(StaffRole.ADMIN), None, None, Capability.VIEW_ALL_TENANTS)


def test_staff_role_does_not_replace_membership():
    decision = authorize(_ctx(StaffRole.ADMIN), None, "tenant-a", Capability.READ_TICKETS)

    assert decision == Deny("not a member of the tenant")


@pytest.mark.parametrize("membership", MEMBERSHIPS[1:])
def test_any_membership_reads_own_tenant(membership):
    assert is_allowed(_ctx(), membership, "tenant-a", Capability.READ_TICKETS)
    assert is_allowed(_ctx(), membership, None, Capability.READ_EVENTS)


@pytest.mark.parametrize("capability", sorted(MUTATION_CAPABILITIES, key=lambda item: item.value))
def test_mutations_need_owner_admin_or_legacy(capability):
    assert is_allowed(_ctx(), Found(MembershipRole.OWNER), "tenant-a", capability)
    assert is_allowed(_ctx(), Found(MembershipRole.ADMIN), "tenant-a", capability)
    assert is_allowed(_ctx(), Legacy(), "tenant-a", capability)
    assert not is_allowed(_ctx(), Found(MembershipRole.MEMBER), "tenant-a", capability)


def test_require_raises_without_leaking_tenant():
    with pytest.raises(AuthorizationError) as excinfo:
        require(_ctx(), Found(MembershipRole.OWNER), "tenant-secret", Capability.READ_TICKETS)

    assert "tenant-secret" not in str(excinfo.value.to_payload())


def test_require_passes_on_allow():
    require(_ctx(StaffRole.SUPPORT), None, None, Capability.MANAGE_ALL_TICKETS)
