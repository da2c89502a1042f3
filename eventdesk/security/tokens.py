"""Session token signing and verification.

Tokens are HS256 JWTs carrying ``userId``, ``email`` and optionally
``tenantId`` and ``role``. Two verifiers exist:

* :func:`verify_token` runs inside request handling and relies on PyJWT;
* :func:`verify_token_prefilter` runs in the page pre-filter middleware
  before any database or application state is touched, and only needs
  ``hmac``/``base64``/``json``.

Both gate the same resources, so they must accept and reject exactly the same
inputs. They share token splitting, header rules and claim rules; only the
signature check and segment decoding are implemented twice.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

ALGORITHM = "HS256"
_ALLOWED_HEADER_KEYS = {"alg", "typ"}
_SEGMENT = re.compile(r"[A-Za-z0-9_-]+")


class InvalidCredential(Exception):
    """The token is malformed, tampered with, or outside its validity window."""


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str
    tenant_id: str | None
    role: str | None
    expires_at: datetime | None


def issue_token(
    user_id: str,
    email: str,
    *,
    secret: str,
    tenant_id: str | None = None,
    role: str | None = None,
    ttl: timedelta = timedelta(days=7),
    now: datetime | None = None,
) -> str:
    issued_at = now or datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "userId": user_id,
        "email": email,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + ttl).timestamp()),
    }
    if tenant_id:
        payload["tenantId"] = tenant_id
    if role:
        payload["role"] = role
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def _split(token: str) -> tuple[str, str, str]:
    if not isinstance(token, str) or not token:
        raise InvalidCredential("empty token")
    parts = token.split(".")
    if len(parts) != 3 or not all(_SEGMENT.fullmatch(part) for part in parts):
        raise InvalidCredential("token must have three base64url segments")
    return parts[0], parts[1], parts[2]


def _check_header(header: Any) -> None:
    if not isinstance(header, dict):
        raise InvalidCredential("header is not an object")
    if header.get("alg") != ALGORITHM:
        raise InvalidCredential("unsupported algorithm")
    if set(header) - _ALLOWED_HEADER_KEYS:
        raise InvalidCredential("unsupported header parameters")


def _numeric(payload: dict[str, Any], name: str) -> float | None:
    value = payload.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidCredential(f"{name} must be numeric")
    return float(value)


def _claims_from_payload(payload: Any, now: float) -> TokenClaims:
    if not isinstance(payload, dict):
        raise InvalidCredential("payload is not an object")

    exp = _numeric(payload, "exp")
    nbf = _numeric(payload, "nbf")
    iat = _numeric(payload, "iat")
    if exp is not None and now >= exp:
        raise InvalidCredential("token expired")
    if nbf is not None and now < nbf:
        raise InvalidCredential("token not yet valid")
    if iat is not None and now < iat:
        raise InvalidCredential("token issued in the future")

    user_id = payload.get("userId")
    email = payload.get("email")
    if not isinstance(user_id, str) or not user_id:
        raise InvalidCredential("userId missing")
    if not isinstance(email, str) or not email:
        raise InvalidCredential("email missing")

    tenant_id = payload.get("tenantId")
    role = payload.get("role")
    return TokenClaims(
        user_id=user_id,
        email=email,
        tenant_id=tenant_id if isinstance(tenant_id, str) and tenant_id else None,
        role=role if isinstance(role, str) and role else None,
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc) if exp is not None else None,
    )


def _require_secret(secret: str) -> bytes:
    if not isinstance(secret, str) or not secret:
        raise InvalidCredential("no signing secret configured")
    return secret.encode("utf-8")


def _now(now: datetime | None) -> float:
    return now.timestamp() if now is not None else time.time()


def verify_token(token: str, secret: str, *, now: datetime | None = None) -> TokenClaims:
    """Verify a session token during request handling."""

    key = _require_secret(secret)
    _split(token)
    try:
        _check_header(jwt.get_unverified_header(token))
        payload = jwt.decode(
            token,
            key,
            algorithms=[ALGORITHM],
            options={
                "verify_exp": False,
                "verify_nbf": False,
                "verify_iat": False,
                "verify_aud": False,
                "verify_iss": False,
                "verify_sub": False,
                "verify_jti": False,
            },
        )
    except jwt.PyJWTError as exc:
        raise InvalidCredential(str(exc)) from exc
    return _claims_from_payload(payload, _now(now))


def _b64url_decode(segment: str) -> bytes:
    data = segment.encode("ascii")
    remainder = len(data) % 4
    if remainder:
        data += b"=" * (4 - remainder)
    return base64.urlsafe_b64decode(data)


def _json_segment(segment: str) -> Any:
    try:
        return json.loads(_b64url_decode(segment))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise InvalidCredential("segment is not base64url JSON") from exc


def verify_token_prefilter(token: str, secret: str, *, now: datetime | None = None) -> TokenClaims:
    """Verify a session token with the standard library only."""

    key = _require_secret(secret)
    header_segment, payload_segment, signature_segment = _split(token)
    _check_header(_json_segment(header_segment))

    try:
        signature = _b64url_decode(signature_segment)
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise InvalidCredential("signature is not base64url") from exc
    expected = hmac.new(
        key,
        f"{header_segment}.{payload_segment}".encode("ascii"),
        hashlib.sha256,
    ).digest()
    if not hmac.compare_digest(signature, expected):
        raise InvalidCredential("signature mismatch")

    return _claims_from_payload(_json_segment(payload_segment), _now(now))
