from __future__ import annotations

import sqlite3

import pymysql
import pytest

from eventdesk.core.errors import StorageError
from eventdesk.services import memberships
from eventdesk.services.memberships import Found, Legacy, MembershipRole


@pytest.fixture
def anyio_backend():
    return "asyncio"


def _member_lookup(result=None, error: Exception | None = None):
    calls: list[tuple[str, str]] = []

    async def fake_get_member(tenant_id: str, user_id: str):
        calls.append((tenant_id, user_id))
        if error is not None:
            raise error
        return result

    return fake_get_member, calls


@pytest.mark.anyio
async def test_found_membership_carries_role(monkeypatch):
    lookup, calls = _member_lookup({"tenant_id": "t-1", "user_id": "u-1", "role": "admin"})
    monkeypatch.setattr(memberships.tenant_members_repo, "get_member", lookup)

    result = await memberships.resolve_membership("t-1", "u-1")

    assert result == Found(MembershipRole.ADMIN)
    assert calls == [("t-1", "u-1")]


@pytest.mark.anyio
async def test_missing_row_is_none(monkeypatch):
    lookup, _ = _member_lookup(None)
    monkeypatch.setattr(memberships.tenant_members_repo, "get_member", lookup)

    assert await memberships.resolve_membership("t-1", "u-1") is None


@pytest.mark.anyio
async def test_unknown_stored_role_is_member(monkeypatch):
    lookup, _ = _member_lookup({"tenant_id": "t-1", "user_id": "u-1", "role": "billing"})
    monkeypatch.setattr(memberships.tenant_members_repo, "get_member", lookup)

    assert await memberships.resolve_membership("t-1", "u-1") == Found(MembershipRole.MEMBER)


@pytest.mark.anyio
async def test_missing_table_yields_legacy_owner_for_own_tenant(monkeypatch):
    error = sqlite3.OperationalError("no such table: tenant_members")
    lookup, calls = _member_lookup(error=error)
    monkeypatch.setattr(memberships.tenant_members_repo, "get_member", lookup)

    first = await memberships.resolve_membership("u-1", "u-1")
    second = await memberships.resolve_membership("u-1", "u-1")

    assert first == second == Legacy(MembershipRole.OWNER)
    assert len(calls) == 2


@pytest.mark.anyio
async def test_missing_table_denies_foreign_tenant(monkeypatch):
    error = pymysql.err.ProgrammingError(1146, "Table 'portal.tenant_members' doesn't exist")
    lookup, _ = _member_lookup(error=error)
    monkeypatch.setattr(memberships.tenant_members_repo, "get_member", lookup)

    assert await memberships.resolve_membership("other-tenant", "u-1") is None


@pytest.mark.anyio
async def test_other_storage_errors_propagate(monkeypatch):
    lookup, _ = _member_lookup(error=sqlite3.OperationalError("database is locked"))
    monkeypatch.setattr(memberships.tenant_members_repo, "get_member", lookup)

    with pytest.raises(StorageError) as excinfo:
        await memberships.resolve_membership("u-1", "u-1")
    assert isinstance(excinfo.value.__cause__, sqlite3.OperationalError)


@pytest.mark.anyio
async def test_missing_table_of_another_store_is_not_legacy(monkeypatch):
    lookup, _ = _member_lookup(error=sqlite3.OperationalError("no such table: tenants"))
    monkeypatch.setattr(memberships.tenant_members_repo, "get_member", lookup)

    with pytest.raises(StorageError):
        await memberships.resolve_membership("u-1", "u-1")
