from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from fastapi import Request

from eventdesk.core.config import get_settings
from eventdesk.core.errors import AuthenticationError
from eventdesk.core.logging import log_debug
from eventdesk.security.tokens import InvalidCredential, TokenClaims, verify_token


class StaffRole(str, Enum):
    """Platform-wide role carried in the session token, independent of tenants."""

    USER = "user"
    ADMIN = "admin"
    SUPPORT = "support"
    FINANCE = "finance"


STAFF_ROLES = frozenset({StaffRole.ADMIN, StaffRole.SUPPORT, StaffRole.FINANCE})


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    email: str
    role: StaffRole
    tenant_id: str

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def parse_staff_role(value: str | None) -> StaffRole:
    if not value:
        return StaffRole.USER
    try:
        return StaffRole(value)
    except ValueError:
        return StaffRole.USER


def resolve_auth_context(claims: TokenClaims) -> AuthContext:
    """Build the per-request context from verified claims.

    Tokens issued before tenants existed carry neither ``role`` nor
    ``tenantId``: such callers are plain users whose own id is their tenant.
    """

    return AuthContext(
        user_id=claims.user_id,
        email=claims.email,
        role=parse_staff_role(claims.role),
        tenant_id=claims.tenant_id or claims.user_id,
    )


def context_from_token(token: str | None) -> AuthContext:
    if not token:
        raise AuthenticationError()
    try:
        claims = verify_token(token, get_settings().jwt_secret)
    except InvalidCredential as exc:
        log_debug("Rejected session token", reason=str(exc))
        raise AuthenticationError() from None
    return resolve_auth_context(claims)


def context_from_request(request: Request) -> AuthContext:
    token = request.cookies.get(get_settings().session_cookie_name)
    return context_from_token(token)
