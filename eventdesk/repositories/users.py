from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from eventdesk.core.database import db, from_db_datetime, to_db_datetime
from eventdesk.security.passwords import hash_password

UserRecord = dict[str, Any]


def _normalise_user(row: dict[str, Any]) -> UserRecord:
    record = dict(row)
    record["id"] = str(record["id"])
    if record.get("default_tenant_id") is not None:
        record["default_tenant_id"] = str(record["default_tenant_id"])
    record["role"] = str(record.get("role") or "user")
    for key in ("created_at", "updated_at"):
        record[key] = from_db_datetime(record.get(key))
    return record


async def get_user_by_id(user_id: str) -> UserRecord | None:
    row = await db.fetch_one("SELECT * FROM users WHERE id = %s", (user_id,))
    return _normalise_user(row) if row else None


async def get_user_by_email(email: str) -> UserRecord | None:
    row = await db.fetch_one(
        "SELECT * FROM users WHERE LOWER(email) = LOWER(%s)",
        (email.strip(),),
    )
    return _normalise_user(row) if row else None


async def create_user(*, email: str, name: str, password: str, role: str = "user") -> UserRecord:
    user_id = str(uuid4())
    now = to_db_datetime(datetime.now(timezone.utc))
    await db.execute(
        """
        INSERT INTO users (id, email, name, password_hash, role, created_at, updated_at)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        """,
        (user_id, email.strip().lower(), name, hash_password(password), role, now, now),
    )
    row = await db.fetch_one("SELECT * FROM users WHERE id = %s", (user_id,))
    if row:
        return _normalise_user(row)
    return _normalise_user(
        {
            "id": user_id,
            "email": email.strip().lower(),
            "name": name,
            "role": role,
            "default_tenant_id": None,
            "created_at": now,
            "updated_at": now,
        }
    )


async def set_default_tenant(user_id: str, tenant_id: str) -> None:
    await db.execute(
        "UPDATE users SET default_tenant_id = %s, updated_at = %s WHERE id = %s",
        (tenant_id, to_db_datetime(datetime.now(timezone.utc)), user_id),
    )
