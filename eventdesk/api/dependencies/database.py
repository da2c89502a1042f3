from __future__ import annotations

from eventdesk.core.database import db
from eventdesk.core.logging import log_warning


async def require_database() -> None:
    """Reconnect lazily when a request arrives before startup or after a drop."""
    if db.is_connected():
        return None
    log_warning("Database not connected, reconnecting", backend="sqlite" if db.is_sqlite() else "mysql")
    await db.connect()
    return None
