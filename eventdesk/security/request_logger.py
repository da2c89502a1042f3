from __future__ import annotations

import time
from typing import Iterable
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from eventdesk.core.logging import log_debug, log_error, log_info

REQUEST_ID_HEADER = "X-Request-ID"


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with its status, duration and a correlation id."""

    def __init__(self, app, *, exempt_paths: Iterable[str] | None = None) -> None:
        super().__init__(app)
        self.exempt_paths = tuple(exempt_paths or ())

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if any(path.startswith(prefix) for prefix in self.exempt_paths):
            return await call_next(request)

        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.request_id = request_id
        ip_address = client_ip(request)
        started = time.perf_counter()
        log_debug("Incoming request", method=request.method, path=path, client_ip=ip_address)

        try:
            response = await call_next(request)
        except Exception as exc:
            log_error(
                "Request raised unhandled exception",
                method=request.method,
                path=path,
                request_id=request_id,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                error=repr(exc),
            )
            raise

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers[REQUEST_ID_HEADER] = request_id
        if response.status_code >= 500:
            log_error(
                "Request completed with server error",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=duration_ms,
                request_id=request_id,
            )
        else:
            log_info(
                "Request completed",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=duration_ms,
                request_id=request_id,
            )
        return response
