from __future__ import annotations

from typing import Callable

from fastapi import Depends, Request

from eventdesk.security.context import AuthContext, context_from_request
from eventdesk.services import authorization
from eventdesk.services.authorization import Capability


async def get_auth_context(request: Request) -> AuthContext:
    """Rebuild the caller's context from the session cookie on every request."""
    ctx = context_from_request(request)
    request.state.auth_context = ctx
    return ctx


def require_staff_capability(capability: Capability) -> Callable[..., AuthContext]:
    async def dependency(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        authorization.require(ctx, None, None, capability)
        return ctx

    return dependency
