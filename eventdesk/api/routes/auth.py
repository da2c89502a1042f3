from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from eventdesk.api.dependencies.auth import get_auth_context
from eventdesk.api.dependencies.database import require_database
from eventdesk.core.errors import AuthenticationError
from eventdesk.core.logging import log_audit_event
from eventdesk.repositories import users as user_repo
from eventdesk.schemas.auth import (
    AdminLoginRequest,
    AuthResponse,
    LoginRequest,
    SignupRequest,
    UserProfile,
)
from eventdesk.security.context import AuthContext, context_from_request, parse_staff_role
from eventdesk.security.request_logger import client_ip
from eventdesk.security.session import session_manager
from eventdesk.services import accounts as accounts_service

router = APIRouter(prefix="/api", tags=["Authentication"])


def _profile(user: dict[str, Any], tenant_id: str | None = None) -> UserProfile:
    return UserProfile(
        id=user["id"],
        email=user["email"],
        name=user.get("name"),
        role=parse_staff_role(user.get("role")).value,
        tenant_id=tenant_id or user.get("default_tenant_id") or user["id"],
        created_at=user.get("created_at"),
    )


def _user_agent(request: Request) -> str:
    return request.headers.get("user-agent", "unknown")


def _log_login_failure(request: Request, email: str, reason: str) -> None:
    log_audit_event(
        "AUTH LOGIN",
        "fail",
        user_email=str(email or "").lower(),
        ip_address=client_ip(request),
        reason=reason,
        user_agent=_user_agent(request),
    )


def _session_response(user: dict[str, Any], *, status_code: int = status.HTTP_200_OK) -> Response:
    body = AuthResponse(user=_profile(user))
    response = JSONResponse(content=body.model_dump(mode="json", by_alias=True), status_code=status_code)
    session_manager.apply_session_cookie(response, session_manager.create_token(user))
    return response


@router.post(
    "/auth/signup",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account and its tenant",
)
async def signup(
    payload: SignupRequest,
    request: Request,
    _: None = Depends(require_database),
) -> Response:
    try:
        user = await accounts_service.register_account(
            email=payload.email,
            name=payload.name,
            password=payload.password,
        )
    except accounts_service.EmailAlreadyRegistered:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered") from None
    log_audit_event(
        "AUTH",
        "signup",
        user_id=user["id"],
        user_email=user["email"],
        tenant_id=user.get("default_tenant_id"),
        ip_address=client_ip(request),
    )
    return _session_response(user, status_code=status.HTTP_201_CREATED)


@router.post("/auth/login", response_model=AuthResponse, summary="Authenticate and set the session cookie")
async def login(
    payload: LoginRequest,
    request: Request,
    _: None = Depends(require_database),
) -> Response:
    user = await accounts_service.authenticate(payload.email, payload.password)
    if not user:
        _log_login_failure(request, payload.email, "invalid_credentials")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    log_audit_event(
        "AUTH",
        "login",
        user_id=user["id"],
        user_email=user["email"],
        ip_address=client_ip(request),
        user_agent=_user_agent(request),
    )
    return _session_response(user)


@router.post("/admin/auth/login", response_model=AuthResponse, summary="Staff login with access code")
async def admin_login(
    payload: AdminLoginRequest,
    request: Request,
    _: None = Depends(require_database),
) -> Response:
    if not accounts_service.access_code_matches(payload.access_code):
        _log_login_failure(request, payload.email, "invalid_access_code")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    user = await accounts_service.authenticate(payload.email, payload.password)
    if not user:
        _log_login_failure(request, payload.email, "invalid_credentials")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not accounts_service.is_staff_user(user):
        _log_login_failure(request, payload.email, "not_staff")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required")
    log_audit_event(
        "AUTH",
        "admin_login",
        user_id=user["id"],
        user_email=user["email"],
        ip_address=client_ip(request),
        role=user.get("role"),
    )
    return _session_response(user)


@router.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT, summary="Clear the session cookie")
async def logout(request: Request) -> Response:
    try:
        ctx = context_from_request(request)
    except AuthenticationError:
        ctx = None
    if ctx is not None:
        log_audit_event("AUTH", "logout", user_id=ctx.user_id, user_email=ctx.email, ip_address=client_ip(request))
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    session_manager.clear_session_cookie(response)
    return response


@router.get("/auth/me", response_model=AuthResponse, summary="Return the signed-in user")
async def me(
    ctx: AuthContext = Depends(get_auth_context),
    _: None = Depends(require_database),
) -> AuthResponse:
    user = await user_repo.get_user_by_id(ctx.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return AuthResponse(user=_profile(user, ctx.tenant_id))
