"""loguru configuration and the structured logging helpers used across the service.

Helpers take a message plus keyword metadata. Metadata is bound to the record
and also appended to the message as sorted ``key=value`` pairs so plain-text
sinks stay greppable.

Audit events (logins, ticket changes) are tagged so the optional auth log file
only receives those, in a line format fail2ban style tools can match.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from loguru import logger

CONSOLE_FORMAT = "{time:YYYY-MM-DDTHH:mm:ss.SSSZ} | {level} | {message}\n{exception}"
AUDIT_FORMAT = "{time:YYYY-MM-DDTHH:mm:ss.SSSZ} {message}\n"


def configure_logging() -> None:
    from eventdesk.core.config import get_settings

    settings = get_settings()
    logger.remove()
    logger.add(sys.stdout, format=CONSOLE_FORMAT, level=settings.log_level.upper(), colorize=False)

    if settings.auth_log_path:
        _add_audit_sink(settings.auth_log_path.expanduser())


def _add_audit_sink(path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(path),
            format=AUDIT_FORMAT,
            level="INFO",
            encoding="utf-8",
            enqueue=True,
            filter=lambda record: record["extra"].get("audit", False),
        )
    except OSError as exc:
        logger.warning(f"AUTH LOG FILE DISABLED path={path} error={exc}")


def _format_meta(meta: dict[str, Any]) -> str:
    return " ".join(f"{key}={meta[key]}" for key in sorted(meta))


def _emit(level: str, message: str, meta: dict[str, Any], *, audit: bool = False) -> None:
    bound = logger.bind(audit=audit, **meta) if (meta or audit) else logger
    # depth=2 attributes the record to the helper's caller
    text = f"{message} | {_format_meta(meta)}" if meta else message
    bound.opt(depth=2).log(level, text)


def log_error(message: str, **meta) -> None:
    _emit("ERROR", message, meta)


def log_warning(message: str, **meta) -> None:
    _emit("WARNING", message, meta)


def log_info(message: str, **meta) -> None:
    _emit("INFO", message, meta)


def log_debug(message: str, **meta) -> None:
    _emit("DEBUG", message, meta)


def log_audit_event(
    event_type: str,
    action: str,
    *,
    user_id: str | None = None,
    user_email: str | None = None,
    tenant_id: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    ip_address: str | None = None,
    **extra_meta,
) -> None:
    """Record who did what, as ``{event_type} {action} | key=value ...``.

    ``None`` values are dropped so absent fields never show up as ``key=None``.
    """

    fields = {
        "user_id": user_id,
        "user_email": user_email,
        "tenant_id": tenant_id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "ip": ip_address,
        **extra_meta,
    }
    meta = {key: value for key, value in fields.items() if value is not None and value != ""}
    _emit("INFO", f"{event_type} {action}", meta, audit=True)
