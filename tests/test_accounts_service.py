from __future__ import annotations

import sqlite3

import pytest

from eventdesk.core.config import get_settings
from eventdesk.core.errors import StorageError
from eventdesk.services import accounts


@pytest.fixture
def anyio_backend():
    return "asyncio"


def _user(**overrides):
    user = {"id": "user-1", "email": "ana@example.com", "name": "Ana", "role": "user"}
    user.update(overrides)
    return user


@pytest.fixture
def account_repos(monkeypatch):
    calls: list[tuple] = []
    state = {"existing": None, "tenant_error": None}

    async def fake_get_user_by_email(email):
        return state["existing"]

    async def fake_create_user(*, email, name, password):
        calls.append(("create_user", email, name))
        return _user(email=email, name=name)

    async def fake_create_tenant(tenant_id, name):
        if state["tenant_error"] is not None:
            raise state["tenant_error"]
        calls.append(("create_tenant", tenant_id, name))
        return {"id": tenant_id, "name": name}

    async def fake_add_member(tenant_id, user_id, role):
        calls.append(("add_member", tenant_id, user_id, role))

    async def fake_set_default_tenant(user_id, tenant_id):
        calls.append(("set_default_tenant", user_id, tenant_id))

    monkeypatch.setattr(accounts.user_repo, "get_user_by_email", fake_get_user_by_email)
    monkeypatch.setattr(accounts.user_repo, "create_user", fake_create_user)
    monkeypatch.setattr(accounts.user_repo, "set_default_tenant", fake_set_default_tenant)
    monkeypatch.setattr(accounts.tenant_members_repo, "create_tenant", fake_create_tenant)
    monkeypatch.setattr(accounts.tenant_members_repo, "add_member", fake_add_member)
    return calls, state


@pytest.mark.anyio
async def test_register_provisions_owned_tenant(account_repos):
    calls, _ = account_repos

    user = await accounts.register_account(email="ana@example.com", name="Ana", password="password123")

    assert user["default_tenant_id"] == "user-1"
    assert calls == [
        ("create_user", "ana@example.com", "Ana"),
        ("create_tenant", "user-1", "Ana"),
        ("add_member", "user-1", "user-1", "owner"),
        ("set_default_tenant", "user-1", "user-1"),
    ]


@pytest.mark.anyio
async def test_register_rejects_taken_email(account_repos):
    calls, state = account_repos
    state["existing"] = _user()

    with pytest.raises(accounts.EmailAlreadyRegistered):
        await accounts.register_account(email="ana@example.com", name="Ana", password="password123")

    assert calls == []


@pytest.mark.anyio
async def test_register_without_tenancy_schema_leaves_legacy_user(account_repos):
    _, state = account_repos
    state["tenant_error"] = sqlite3.OperationalError("no such table: tenants")

    user = await accounts.register_account(email="ana@example.com", name="Ana", password="password123")

    assert "default_tenant_id" not in user


@pytest.mark.anyio
async def test_register_surfaces_other_storage_failures(account_repos):
    _, state = account_repos
    state["tenant_error"] = sqlite3.OperationalError("database is locked")

    with pytest.raises(StorageError):
        await accounts.register_account(email="ana@example.com", name="Ana", password="password123")


@pytest.mark.anyio
async def test_authenticate_checks_password(monkeypatch):
    from eventdesk.security.passwords import hash_password

    stored = _user(password_hash=hash_password("correct-password"))

    async def fake_get_user_by_email(email):
        return stored if email == "ana@example.com" else None

    monkeypatch.setattr(accounts.user_repo, "get_user_by_email", fake_get_user_by_email)

    assert await accounts.authenticate("ana@example.com", "correct-password") == stored
    assert await accounts.authenticate("ana@example.com", "wrong-password") is None
    assert await accounts.authenticate("bob@example.com", "correct-password") is None


def test_access_code_comparison():
    assert accounts.access_code_matches(get_settings().admin_access_code)
    assert not accounts.access_code_matches("desk-access-cod")
    assert not accounts.access_code_matches("")


def test_access_code_disabled_when_unset(monkeypatch):
    monkeypatch.setattr(get_settings(), "admin_access_code", None)

    assert not accounts.access_code_matches("desk-access-code")


@pytest.mark.parametrize(
    "role,expected",
    [("admin", True), ("support", True), ("finance", True), ("user", False), (None, False), ("root", False)],
)
def test_staff_detection(role, expected):
    assert accounts.is_staff_user(_user(role=role)) is expected
