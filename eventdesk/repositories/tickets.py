from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Sequence, TypeVar
from uuid import uuid4

from eventdesk.core import schema
from eventdesk.core.database import db, from_db_datetime, to_db_datetime
from eventdesk.core.errors import SchemaNotReady, StorageError
from eventdesk.core.logging import log_debug, log_error, log_info, log_warning
from eventdesk.core.schema import MissingSchemaObject, classify_missing_schema

TicketRecord = dict[str, Any]
MessageRecord = dict[str, Any]

T = TypeVar("T")

CLOSED_STATUSES = ("resolved", "closed")

# Written on every message append; older schemas simply do not track them.
SLA_BOOKKEEPING_FIELDS = ("last_message_at", "last_message_sender")


@dataclass(frozen=True)
class QueryLevel:
    """One query shape, matching one schema revision."""

    name: str
    requires: frozenset[str]
    columns: str
    joins: str
    order_by: str
    supports_assignment: bool
    supports_sla: bool

    @property
    def migration(self) -> str:
        return max(self.requires)


_CREATOR_JOIN = "LEFT JOIN users AS c ON c.id = t.creator_id"
_TENANT_ASSIGNEE_JOINS = (
    "LEFT JOIN tenants AS tn ON tn.id = t.tenant_id\n"
    "        LEFT JOIN users AS a ON a.id = t.assigned_user_id"
)
_BASE_COLUMNS = (
    "t.id, t.tenant_id, t.creator_id, t.subject, t.status, t.priority, "
    "t.created_at, t.updated_at, c.name AS creator_name, c.email AS creator_email"
)
_ASSIGNMENT_COLUMNS = (
    "t.assigned_user_id, t.assigned_at, tn.name AS tenant_name, "
    "a.name AS assignee_name, a.email AS assignee_email"
)
_SLA_COLUMNS = "t.tags, t.last_message_at, t.last_message_sender"

SLA_TAGS_LEVEL = QueryLevel(
    name="sla_tags",
    requires=frozenset(schema.ALL_MIGRATIONS),
    columns=f"{_BASE_COLUMNS}, {_ASSIGNMENT_COLUMNS}, {_SLA_COLUMNS}",
    joins=f"{_CREATOR_JOIN}\n        {_TENANT_ASSIGNEE_JOINS}",
    order_by="t.last_message_at DESC, t.updated_at DESC",
    supports_assignment=True,
    supports_sla=True,
)
ASSIGNMENT_LEVEL = QueryLevel(
    name="assignment",
    requires=frozenset(
        {schema.SUPPORT_TICKETS, schema.MULTITENANT_RBAC, schema.TICKET_ASSIGNMENT}
    ),
    columns=f"{_BASE_COLUMNS}, {_ASSIGNMENT_COLUMNS}",
    joins=f"{_CREATOR_JOIN}\n        {_TENANT_ASSIGNEE_JOINS}",
    order_by="t.updated_at DESC",
    supports_assignment=True,
    supports_sla=False,
)
# The oldest revision has no fixed column list beyond the ticket row itself;
# ``t.*`` still carries tenant_id on databases that have it.
BASE_LEVEL = QueryLevel(
    name="base",
    requires=frozenset({schema.SUPPORT_TICKETS}),
    columns="t.*, c.name AS creator_name, c.email AS creator_email",
    joins=_CREATOR_JOIN,
    order_by="t.updated_at DESC",
    supports_assignment=False,
    supports_sla=False,
)

QUERY_LEVELS: tuple[QueryLevel, ...] = (SLA_TAGS_LEVEL, ASSIGNMENT_LEVEL, BASE_LEVEL)

schema_marker = schema.SchemaMarker(lambda: db.applied_migrations())


def transaction():
    """Group ticket writes so they commit or roll back together."""
    return db.transaction()


@dataclass
class TicketFilters:
    status: str | None = None
    priority: str | None = None
    tenant_id: str | None = None
    creator_id: str | None = None
    assigned: str | None = None  # "me" | "unassigned"
    actor_id: str | None = None
    awaiting: str | None = None  # "support"
    search: str | None = None
    tag: str | None = None
    require_sla: bool = False
    limit: int | None = 200
    offset: int = 0

    def eligible(self, level: QueryLevel) -> bool:
        if (self.awaiting or self.tag or self.require_sla) and not level.supports_sla:
            return False
        if self.assigned and not level.supports_assignment:
            return False
        return True


@dataclass
class TicketQueryResult:
    level: str
    tickets: list[TicketRecord] = field(default_factory=list)


def _deserialise_tags(value: Any) -> list[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        items: Iterable[Any] = value
    else:
        try:
            parsed = json.loads(str(value))
        except json.JSONDecodeError:
            parsed = str(value).split(",")
        items = parsed if isinstance(parsed, list) else [parsed]
    tags: list[str] = []
    for item in items:
        text = str(item).strip()
        if text and text not in tags:
            tags.append(text)
    return tags


def _serialise_tags(value: Iterable[str] | None) -> str | None:
    if value is None:
        return None
    return json.dumps(_deserialise_tags(list(value)), ensure_ascii=False)


def _normalise_ticket(row: dict[str, Any]) -> TicketRecord:
    record = dict(row)
    for key in ("id", "tenant_id", "creator_id", "assigned_user_id"):
        value = record.get(key)
        record[key] = str(value) if value is not None else None
    for key in ("created_at", "updated_at", "assigned_at", "last_message_at"):
        record[key] = from_db_datetime(record.get(key))
    record["tags"] = _deserialise_tags(record.get("tags"))
    record.setdefault("last_message_sender", None)
    record["status"] = str(record.get("status") or "open")
    record["priority"] = str(record.get("priority") or "normal")
    return record


def _normalise_message(row: dict[str, Any]) -> MessageRecord:
    record = dict(row)
    record["id"] = str(record["id"])
    record["ticket_id"] = str(record["ticket_id"])
    record["created_at"] = from_db_datetime(record.get("created_at"))
    return record


def _migration_for(missing: MissingSchemaObject | None, fallback: str) -> str:
    if missing is not None and missing.migration:
        return missing.migration
    return fallback


async def _applied_migrations() -> frozenset[str] | None:
    try:
        return await schema_marker.applied()
    except Exception as exc:
        log_error("Failed to read schema marker", error=repr(exc))
        raise StorageError() from exc


async def _cascade(
    operation: str,
    levels: Sequence[QueryLevel],
    runner: Callable[[QueryLevel], Awaitable[T]],
) -> tuple[QueryLevel, T]:
    """Run ``runner`` against each level, newest first, until one succeeds.

    Only errors about a missing table or column move on to the next level;
    anything else is a storage failure. When no level is left, the error names
    the migration that would make the oldest eligible shape work.
    """

    if not levels:
        raise ValueError("no query level to try")
    applied = await _applied_migrations()
    last_missing: MissingSchemaObject | None = None

    for level in levels:
        if applied is not None and not level.requires <= applied:
            continue
        try:
            result = await runner(level)
        except Exception as exc:
            missing = classify_missing_schema(exc)
            if missing is None:
                log_error(f"Ticket {operation} failed", level=level.name, error=repr(exc))
                raise StorageError() from exc
            log_debug(
                f"Ticket {operation} falling back",
                level=level.name,
                missing=f"{missing.kind}:{missing.name}",
            )
            last_missing = missing
            continue
        return level, result

    oldest = levels[-1]
    if last_missing is not None:
        migration = _migration_for(last_missing, oldest.migration)
    elif applied is not None:
        pending = [name for name in schema.ALL_MIGRATIONS if name in oldest.requires and name not in applied]
        migration = pending[0] if pending else oldest.migration
    else:
        migration = oldest.migration
    log_warning(f"Ticket {operation} needs a pending migration", migration=migration)
    raise SchemaNotReady(migration)


_LIKE_ESCAPE = "!"


def _like_contains(value: str) -> str:
    """LIKE pattern matching ``value`` literally anywhere in the column."""
    escaped = value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
    for wildcard in ("%", "_"):
        escaped = escaped.replace(wildcard, _LIKE_ESCAPE + wildcard)
    return f"%{escaped}%"


def _select_sql(level: QueryLevel, where: Sequence[str], *, paginate: bool) -> str:
    where_clause = f"WHERE {' AND '.join(where)}" if where else ""
    limit_clause = "LIMIT %s OFFSET %s" if paginate else ""
    return f"""
        SELECT {level.columns}
        FROM support_tickets AS t
        {level.joins}
        {where_clause}
        ORDER BY {level.order_by}
        {limit_clause}
    """


def _filter_clauses(filters: TicketFilters, level: QueryLevel) -> tuple[list[str], list[Any]]:
    where: list[str] = []
    params: list[Any] = []
    if filters.status:
        where.append("t.status = %s")
        params.append(filters.status)
    if filters.priority:
        where.append("t.priority = %s")
        params.append(filters.priority)
    if filters.tenant_id is not None:
        # Tickets written before tenancy belong to the tenant named after their creator.
        where.append("(t.tenant_id = %s OR (t.tenant_id IS NULL AND t.creator_id = %s))")
        params.extend([filters.tenant_id, filters.tenant_id])
    if filters.creator_id is not None:
        where.append("t.creator_id = %s")
        params.append(filters.creator_id)
    if filters.assigned == "me":
        where.append("t.assigned_user_id = %s")
        params.append(filters.actor_id)
    elif filters.assigned == "unassigned":
        where.append("t.assigned_user_id IS NULL")
    if filters.search:
        where.append(f"t.subject LIKE %s ESCAPE '{_LIKE_ESCAPE}'")
        params.append(_like_contains(filters.search.strip()))
    if level.supports_sla:
        if filters.awaiting == "support":
            where.append("t.last_message_sender = %s")
            params.append("user")
            where.append("t.status NOT IN (%s, %s)")
            params.extend(CLOSED_STATUSES)
        if filters.tag:
            where.append(f"t.tags LIKE %s ESCAPE '{_LIKE_ESCAPE}'")
            params.append(_like_contains(json.dumps(filters.tag.strip(), ensure_ascii=False)))
    return where, params


async def query_tickets(filters: TicketFilters) -> TicketQueryResult:
    levels = [level for level in QUERY_LEVELS if filters.eligible(level)]

    async def run(level: QueryLevel) -> list[dict[str, Any]]:
        where, params = _filter_clauses(filters, level)
        paginate = filters.limit is not None
        if paginate:
            params.extend([filters.limit, filters.offset])
        return await db.fetch_all(_select_sql(level, where, paginate=paginate), tuple(params))

    level, rows = await _cascade("list", levels, run)
    tickets = [_normalise_ticket(row) for row in rows]
    if filters.tag:
        # LIKE only narrows the candidates; membership is decided on the parsed list.
        wanted = filters.tag.strip()
        tickets = [ticket for ticket in tickets if wanted in ticket["tags"]]
    log_debug("Tickets query returned", level=level.name, count=len(tickets))
    return TicketQueryResult(level=level.name, tickets=tickets)


async def list_tickets(filters: TicketFilters) -> list[TicketRecord]:
    return (await query_tickets(filters)).tickets


async def get_ticket(ticket_id: str) -> TicketRecord | None:
    async def run(level: QueryLevel) -> dict[str, Any] | None:
        return await db.fetch_one(_select_sql(level, ["t.id = %s"], paginate=False), (ticket_id,))

    _level, row = await _cascade("read", QUERY_LEVELS, run)
    return _normalise_ticket(row) if row else None


async def list_messages(ticket_id: str) -> list[MessageRecord]:
    try:
        rows = await db.fetch_all(
            """
            SELECT id, ticket_id, sender, message, created_at
            FROM support_ticket_messages
            WHERE ticket_id = %s
            ORDER BY created_at ASC
            """,
            (ticket_id,),
        )
    except Exception as exc:
        raise _classify_write_error("message list", exc) from exc
    return [_normalise_message(row) for row in rows]


def _classify_write_error(operation: str, exc: Exception) -> Exception:
    missing = classify_missing_schema(exc)
    if missing is None:
        log_error(f"Ticket {operation} failed", error=repr(exc))
        return StorageError()
    migration = _migration_for(missing, schema.SUPPORT_TICKETS)
    log_warning(f"Ticket {operation} needs a pending migration", migration=migration)
    return SchemaNotReady(migration)


def _db_value(key: str, value: Any) -> Any:
    if key == "tags":
        return _serialise_tags(value)
    if isinstance(value, datetime):
        return to_db_datetime(value)
    return value


async def _write_with_fallback(
    operation: str,
    values: dict[str, Any],
    optional: Sequence[str],
    statement: Callable[[dict[str, Any]], Awaitable[int]],
) -> int:
    """Run a write, retrying once without ``optional`` columns.

    The retry only happens when the database lacks the migration that
    introduced the optional columns; a missing column that was explicitly
    requested is reported as :class:`SchemaNotReady`.
    """

    try:
        return await statement(values)
    except Exception as exc:
        missing = classify_missing_schema(exc)
        droppable = [key for key in optional if key in values]
        if (
            missing is None
            or not droppable
            or missing.migration != schema.TICKET_SLA_TAGS
            or "tags" in values
        ):
            raise _classify_write_error(operation, exc) from exc
        log_debug(f"Ticket {operation} retrying without SLA columns", missing=missing.name)

    reduced = {key: value for key, value in values.items() if key not in droppable}
    try:
        return await statement(reduced)
    except Exception as exc:
        raise _classify_write_error(operation, exc) from exc


def _reduce_insert(columns: dict[str, Any], missing: MissingSchemaObject | None) -> dict[str, Any] | None:
    """Return the next older insert shape, or ``None`` when there is none."""

    if missing is None:
        return None
    if missing.migration == schema.TICKET_SLA_TAGS and any(key in columns for key in SLA_BOOKKEEPING_FIELDS):
        return {key: value for key, value in columns.items() if key not in SLA_BOOKKEEPING_FIELDS}
    if missing.name == "tenant_id" and "tenant_id" in columns:
        # Without the tenancy migration every ticket belongs to its creator.
        return {key: value for key, value in columns.items() if key != "tenant_id"}
    return None


async def create_ticket(
    *,
    creator_id: str,
    tenant_id: str | None,
    subject: str,
    priority: str,
    now: datetime,
) -> TicketRecord:
    ticket_id = str(uuid4())
    values: dict[str, Any] = {
        "id": ticket_id,
        "creator_id": creator_id,
        "subject": subject,
        "status": "open",
        "priority": priority,
        "created_at": now,
        "updated_at": now,
        "last_message_at": now,
        "last_message_sender": "user",
    }
    if tenant_id is not None:
        values["tenant_id"] = tenant_id

    attempt = values
    while True:
        names = ", ".join(attempt)
        placeholders = ", ".join(["%s"] * len(attempt))
        try:
            await db.execute(
                f"INSERT INTO support_tickets ({names}) VALUES ({placeholders})",
                tuple(_db_value(key, value) for key, value in attempt.items()),
            )
            break
        except Exception as exc:
            reduced = _reduce_insert(attempt, classify_missing_schema(exc))
            if reduced is None:
                raise _classify_write_error("create", exc) from exc
            log_debug("Ticket create retrying with an older shape", columns=",".join(reduced))
            attempt = reduced

    log_info("Ticket created", ticket_id=ticket_id, tenant_id=attempt.get("tenant_id"), creator_id=creator_id)
    created = await get_ticket(ticket_id)
    if created:
        return created
    return _normalise_ticket(attempt)


async def update_ticket(ticket_id: str, patch: dict[str, Any]) -> int:
    """Apply ``patch`` in a single UPDATE. Returns the number of rows changed."""

    if not patch:
        return 0

    async def update(columns: dict[str, Any]) -> int:
        assignments = ", ".join(f"{key} = %s" for key in columns)
        params = [_db_value(key, value) for key, value in columns.items()]
        params.append(ticket_id)
        return await db.execute(
            f"UPDATE support_tickets SET {assignments} WHERE id = %s",
            tuple(params),
        )

    return await _write_with_fallback("update", dict(patch), SLA_BOOKKEEPING_FIELDS, update)


async def add_message(ticket_id: str, *, sender: str, message: str, now: datetime) -> MessageRecord:
    message_id = str(uuid4())
    try:
        await db.execute(
            """
            INSERT INTO support_ticket_messages (id, ticket_id, sender, message, created_at)
            VALUES (%s, %s, %s, %s, %s)
            """,
            (message_id, ticket_id, sender, message, to_db_datetime(now)),
        )
    except Exception as exc:
        raise _classify_write_error("message append", exc) from exc
    return {
        "id": message_id,
        "ticket_id": ticket_id,
        "sender": sender,
        "message": message,
        "created_at": now,
    }
