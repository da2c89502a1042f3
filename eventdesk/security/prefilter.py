from __future__ import annotations

from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from eventdesk.core.config import get_settings
from eventdesk.core.logging import log_debug
from eventdesk.security.context import STAFF_ROLES, parse_staff_role
from eventdesk.security.tokens import InvalidCredential, TokenClaims, verify_token_prefilter

PROTECTED_PREFIXES = ("/dashboard", "/eventos", "/suporte", "/perfil", "/admin")
ADMIN_PREFIX = "/admin"
ADMIN_LOGIN_PATH = "/admin/login"
LOGIN_PATHS = ("/login", "/signup")


def _is_protected(path: str) -> bool:
    if path == ADMIN_LOGIN_PATH:
        return False
    return any(path == prefix or path.startswith(f"{prefix}/") for prefix in PROTECTED_PREFIXES)


def _is_admin_area(path: str) -> bool:
    return path == ADMIN_PREFIX or path.startswith(f"{ADMIN_PREFIX}/")


class PageAccessMiddleware(BaseHTTPMiddleware):
    """Gate page navigation before the request reaches any handler.

    Runs ahead of the application and never touches the database: the token
    is checked with :func:`verify_token_prefilter`, which accepts exactly the
    tokens the API dependencies accept. API routes (``/api``) authenticate
    per request and are not handled here.
    """

    def __init__(self, app, *, secret: str | None = None) -> None:
        super().__init__(app)
        settings = get_settings()
        self._secret = secret or settings.jwt_secret
        self._cookie_name = settings.session_cookie_name
        self._secure = settings.environment.lower() == "production"

    def _verify(self, token: str | None) -> TokenClaims | None:
        if not token:
            return None
        try:
            return verify_token_prefilter(token, self._secret)
        except InvalidCredential:
            return None

    def _redirect(self, request: Request, target: str, *, clear_cookie: bool = False) -> RedirectResponse:
        response = RedirectResponse(url=str(request.url.replace(path=target, query="")), status_code=307)
        if clear_cookie:
            response.set_cookie(
                self._cookie_name,
                "",
                max_age=0,
                path="/",
                httponly=True,
                samesite="strict",
                secure=self._secure,
            )
        return response

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path.startswith("/api"):
            return await call_next(request)

        token = request.cookies.get(self._cookie_name)

        if _is_protected(path):
            target = ADMIN_LOGIN_PATH if _is_admin_area(path) else "/login"
            if not token:
                log_debug("Page redirect, no session", path=path, target=target)
                return self._redirect(request, target)
            claims = self._verify(token)
            if claims is None:
                log_debug("Page redirect, invalid or expired session", path=path, target=target)
                return self._redirect(request, target, clear_cookie=True)
            if _is_admin_area(path) and parse_staff_role(claims.role) not in STAFF_ROLES:
                log_debug("Page redirect, staff role required", path=path)
                return self._redirect(request, "/dashboard")
            return await call_next(request)

        if token and path == ADMIN_LOGIN_PATH:
            claims = self._verify(token)
            if claims and parse_staff_role(claims.role) in STAFF_ROLES:
                return self._redirect(request, ADMIN_PREFIX)

        if token and path in LOGIN_PATHS:
            if self._verify(token):
                return self._redirect(request, "/dashboard")

        return await call_next(request)
