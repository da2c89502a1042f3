"""Tests for the page access pre-filter middleware."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from fastapi.testclient import TestClient

from eventdesk.security.prefilter import PageAccessMiddleware
from eventdesk.security.tokens import issue_token

SECRET = "prefilter-test-secret-" + "x" * 32


def _app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(PageAccessMiddleware, secret=SECRET)

    @app.get("/{path:path}")
    async def page(path: str):
        return PlainTextResponse(f"page:{path}")

    return app


def _client(token: str | None = None) -> TestClient:
    return TestClient(_app(), cookies={"token": token} if token else None, follow_redirects=False)


def _token(role: str | None = None, **kwargs) -> str:
    return issue_token("user-1", "user@example.com", secret=SECRET, tenant_id="tenant-1", role=role, **kwargs)


def test_protected_page_without_cookie_redirects_to_login():
    response = _client().get("/dashboard?tab=events")

    assert response.status_code == 307
    assert response.headers["location"] == "http://testserver/login"
    assert "set-cookie" not in response.headers


def test_invalid_cookie_is_cleared_on_redirect():
    response = _client("not.a.token").get("/eventos/42")

    assert response.status_code == 307
    assert response.headers["location"].endswith("/login")
    assert "max-age=0" in response.headers["set-cookie"].lower()


def test_expired_cookie_is_treated_as_missing():
    expired = _token(now=datetime.now(timezone.utc) - timedelta(days=8), ttl=timedelta(days=7))

    response = _client(expired).get("/perfil")

    assert response.status_code == 307
    assert response.headers["location"].endswith("/login")


def test_token_signed_with_other_secret_is_rejected():
    foreign = issue_token("user-1", "user@example.com", secret="another-secret-" + "y" * 32)

    response = _client(foreign).get("/suporte")

    assert response.status_code == 307


def test_valid_session_reaches_protected_page():
    response = _client(_token()).get("/suporte/tickets")

    assert response.status_code == 200
    assert response.text == "page:suporte/tickets"


def test_admin_area_without_session_goes_to_admin_login():
    response = _client().get("/admin/tickets")

    assert response.headers["location"].endswith("/admin/login")


def test_admin_area_sends_non_staff_to_dashboard():
    response = _client(_token()).get("/admin")

    assert response.status_code == 307
    assert response.headers["location"].endswith("/dashboard")


@pytest.mark.parametrize("role", ["admin", "support", "finance"])
def test_staff_roles_reach_admin_area(role):
    response = _client(_token(role)).get("/admin/tickets")

    assert response.status_code == 200


def test_admin_login_page_is_public():
    response = _client().get("/admin/login")

    assert response.status_code == 200


def test_signed_in_staff_skip_admin_login():
    response = _client(_token("support")).get("/admin/login")

    assert response.headers["location"].endswith("/admin")


@pytest.mark.parametrize("path", ["/login", "/signup"])
def test_signed_in_users_skip_login_pages(path):
    response = _client(_token()).get(path)

    assert response.status_code == 307
    assert response.headers["location"].endswith("/dashboard")


def test_login_page_with_bad_cookie_is_served():
    response = _client("garbage").get("/login")

    assert response.status_code == 200


def test_api_paths_pass_through_untouched():
    response = _client().get("/api/support/tickets")

    assert response.status_code == 200


def test_prefix_matching_respects_path_boundaries():
    response = _client().get("/dashboarding")

    assert response.status_code == 200
