from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from eventdesk.core.database import db, from_db_datetime, to_db_datetime

VALID_MEMBER_ROLES = {"owner", "admin", "member"}


def _normalise_tenant(row: dict[str, Any]) -> dict[str, Any]:
    record = dict(row)
    record["id"] = str(record["id"])
    record["created_at"] = from_db_datetime(record.get("created_at"))
    return record


async def get_member(tenant_id: str, user_id: str) -> dict[str, Any] | None:
    """Return the membership row for the pair. Storage errors are not caught here."""

    row = await db.fetch_one(
        """
        SELECT tenant_id, user_id, role
        FROM tenant_members
        WHERE tenant_id = %s AND user_id = %s
        """,
        (tenant_id, user_id),
    )
    if not row:
        return None
    return {
        "tenant_id": str(row["tenant_id"]),
        "user_id": str(row["user_id"]),
        "role": str(row.get("role") or "").lower(),
    }


async def create_tenant(tenant_id: str, name: str) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    await db.execute(
        "INSERT INTO tenants (id, name, created_at) VALUES (%s, %s, %s)",
        (tenant_id, name, to_db_datetime(now)),
    )
    return {"id": tenant_id, "name": name, "created_at": now}


async def add_member(tenant_id: str, user_id: str, role: str) -> None:
    if role not in VALID_MEMBER_ROLES:
        raise ValueError("Invalid membership role")
    await db.execute(
        """
        INSERT INTO tenant_members (tenant_id, user_id, role, created_at)
        VALUES (%s, %s, %s, %s)
        """,
        (tenant_id, user_id, role, to_db_datetime(datetime.now(timezone.utc))),
    )


async def list_tenants() -> list[dict[str, Any]]:
    rows = await db.fetch_all("SELECT id, name, created_at FROM tenants ORDER BY created_at DESC")
    return [_normalise_tenant(row) for row in rows]
