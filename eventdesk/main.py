from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from eventdesk.api.routes import admin_tenants, admin_tickets, auth, health, support_tickets
from eventdesk.core.config import get_settings
from eventdesk.core.database import db
from eventdesk.core.errors import AppError, SchemaNotReady
from eventdesk.core.logging import configure_logging, log_error, log_info, log_warning
from eventdesk.security.prefilter import PageAccessMiddleware
from eventdesk.security.request_logger import RequestLoggingMiddleware

configure_logging()
settings = get_settings()

tags_metadata = [
    {"name": "Authentication", "description": "Signup, login, logout and the current session."},
    {"name": "Support tickets", "description": "Tickets raised by tenant users."},
    {"name": "Support desk", "description": "Cross-tenant queue for support staff."},
    {"name": "Tenants", "description": "Platform tenant directory."},
    {"name": "Health", "description": "Liveness probe."},
]

app = FastAPI(
    title=settings.app_name,
    description="Multi-tenant event platform: session authorization and the support ticket desk.",
    openapi_tags=tags_metadata,
)

app.add_middleware(PageAccessMiddleware)
app.add_middleware(
    RequestLoggingMiddleware,
    exempt_paths=("/static", "/health"),
)


@app.exception_handler(AppError)
async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, SchemaNotReady):
        log_error("Schema not ready", path=request.url.path, migration=exc.migration)
    elif exc.status_code >= 500:
        log_error("Request failed", path=request.url.path, error=type(exc).__name__)
    else:
        log_warning("Request rejected", path=request.url.path, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid data", "details": details},
    )


@app.exception_handler(StarletteHTTPException)
async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log_error("Unhandled exception", path=request.url.path, error=repr(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


app.include_router(auth.router)
app.include_router(support_tickets.router)
app.include_router(admin_tickets.router)
app.include_router(admin_tenants.router)
app.include_router(health.router)


@app.on_event("startup")
async def on_startup() -> None:
    await db.connect()
    await db.run_migrations()
    log_info("Application startup", environment=settings.environment)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await db.disconnect()
    log_info("Application shutdown")
