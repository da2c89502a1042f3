from __future__ import annotations

from datetime import timedelta
from typing import Any, Mapping

from fastapi import Response

from eventdesk.core.config import get_settings
from eventdesk.security.context import parse_staff_role
from eventdesk.security.tokens import issue_token


class SessionManager:
    """Issues and clears the signed session cookie.

    Sessions are not stored server side: the cookie carries the signed claims
    and every request rebuilds its context from them.
    """

    def __init__(self) -> None:
        self._settings = get_settings()
        self.session_cookie_name = self._settings.session_cookie_name
        self.session_ttl = timedelta(days=self._settings.session_ttl_days)

    def _is_secure(self) -> bool:
        return self._settings.environment.lower() == "production"

    def create_token(self, user: Mapping[str, Any]) -> str:
        user_id = str(user["id"])
        tenant_id = user.get("default_tenant_id") or user_id
        return issue_token(
            user_id,
            str(user["email"]),
            secret=self._settings.jwt_secret,
            tenant_id=str(tenant_id),
            role=parse_staff_role(user.get("role")).value,
            ttl=self.session_ttl,
        )

    def apply_session_cookie(self, response: Response, token: str) -> None:
        response.set_cookie(
            self.session_cookie_name,
            token,
            httponly=True,
            secure=self._is_secure(),
            max_age=int(self.session_ttl.total_seconds()),
            samesite="strict",
            path="/",
        )

    def clear_session_cookie(self, response: Response) -> None:
        response.set_cookie(
            self.session_cookie_name,
            "",
            httponly=True,
            secure=self._is_secure(),
            max_age=0,
            samesite="strict",
            path="/",
        )


session_manager = SessionManager()
