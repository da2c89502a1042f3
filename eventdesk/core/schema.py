"""Schema revision tracking for a partially migrated database.

The service keeps answering requests while ``migrations/`` is being applied
one file at a time. Two signals say which revision is live:

* the ``migrations`` tracking table (the marker), read through
  :class:`SchemaMarker`;
* the storage error raised when a query touches a table or column that does
  not exist yet, recognised by :func:`classify_missing_schema`. This is only
  needed for databases created before the tracking table existed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

from eventdesk.core.logging import log_debug

SUPPORT_TICKETS = "000_support_tickets"
MULTITENANT_RBAC = "001_multitenant_rbac"
TICKET_ASSIGNMENT = "002_support_ticket_assignment"
TICKET_SLA_TAGS = "003_support_ticket_sla_tags"

ALL_MIGRATIONS: tuple[str, ...] = (
    SUPPORT_TICKETS,
    MULTITENANT_RBAC,
    TICKET_ASSIGNMENT,
    TICKET_SLA_TAGS,
)

# Which migration introduced each table or column.
_OBJECT_MIGRATIONS: dict[str, str] = {
    "support_tickets": SUPPORT_TICKETS,
    "support_ticket_messages": SUPPORT_TICKETS,
    "tenants": MULTITENANT_RBAC,
    "tenant_members": MULTITENANT_RBAC,
    "tenant_id": MULTITENANT_RBAC,
    "default_tenant_id": MULTITENANT_RBAC,
    "assigned_user_id": TICKET_ASSIGNMENT,
    "assigned_at": TICKET_ASSIGNMENT,
    "last_message_at": TICKET_SLA_TAGS,
    "last_message_sender": TICKET_SLA_TAGS,
    "tags": TICKET_SLA_TAGS,
}

# MySQL: ER_NO_SUCH_TABLE, ER_BAD_FIELD_ERROR
_MYSQL_MISSING_TABLE = 1146
_MYSQL_MISSING_COLUMN = 1054

_TABLE_PATTERNS = (
    re.compile(r"no such table:\s*[`'\"]?([\w.]+)", re.IGNORECASE),
    re.compile(r"table\s+'([\w.]+)'\s+doesn't exist", re.IGNORECASE),
    re.compile(r"could not find the table\s+'([\w.]+)'", re.IGNORECASE),
    re.compile(r"relation\s+\"?([\w.]+)\"?\s+does not exist", re.IGNORECASE),
)
_COLUMN_PATTERNS = (
    re.compile(r"no such column:\s*[`'\"]?([\w.]+)", re.IGNORECASE),
    re.compile(r"unknown column\s+'([\w.]+)'", re.IGNORECASE),
    re.compile(r"has no column named\s+([\w.]+)", re.IGNORECASE),
    re.compile(r"column\s+\"?([\w.]+)\"?\s+does not exist", re.IGNORECASE),
)


@dataclass(frozen=True)
class MissingSchemaObject:
    kind: str  # "table" or "column"
    name: str

    @property
    def migration(self) -> str | None:
        return _OBJECT_MIGRATIONS.get(self.name)


def _strip_qualifier(name: str) -> str:
    # "db.tenant_members" / "t.last_message_at" -> bare name
    return name.rsplit(".", 1)[-1].strip("`'\"").lower()


def classify_missing_schema(exc: BaseException) -> MissingSchemaObject | None:
    """Return the table or column an error complains about, or ``None``.

    Errors that are not about a missing schema object (connection loss,
    constraint violations, syntax errors) are never classified.
    """

    args = getattr(exc, "args", ())
    code = args[0] if args and isinstance(args[0], int) else None
    message = " ".join(str(arg) for arg in args) if args else str(exc)

    if code not in (None, _MYSQL_MISSING_TABLE, _MYSQL_MISSING_COLUMN):
        return None

    if code in (None, _MYSQL_MISSING_TABLE):
        for pattern in _TABLE_PATTERNS:
            match = pattern.search(message)
            if match:
                return MissingSchemaObject("table", _strip_qualifier(match.group(1)))
    if code in (None, _MYSQL_MISSING_COLUMN):
        for pattern in _COLUMN_PATTERNS:
            match = pattern.search(message)
            if match:
                return MissingSchemaObject("column", _strip_qualifier(match.group(1)))
    return None


def is_missing_table(exc: BaseException, table: str) -> bool:
    missing = classify_missing_schema(exc)
    return missing is not None and missing.kind == "table" and missing.name == table


MarkerLoader = Callable[[], Awaitable[set[str]]]


class SchemaMarker:
    """Cached view of the ``migrations`` tracking table.

    The applied set only ever grows, so once every known migration is present
    the answer is cached for the life of the process. Incomplete answers are
    re-read on each call so a migration applied while the service runs is
    picked up by the next request.
    """

    def __init__(self, loader: MarkerLoader, required: Iterable[str] = ALL_MIGRATIONS) -> None:
        self._loader = loader
        self._required = frozenset(required)
        self._complete = False

    def reset(self) -> None:
        self._complete = False

    async def applied(self) -> frozenset[str] | None:
        """Applied migration ids, or ``None`` when the marker itself is absent."""

        if self._complete:
            return self._required
        try:
            applied = frozenset(await self._loader())
        except Exception as exc:
            if is_missing_table(exc, "migrations"):
                log_debug("Schema marker unavailable, falling back to probing")
                return None
            raise
        if self._required <= applied:
            self._complete = True
        return applied
