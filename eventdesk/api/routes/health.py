from __future__ import annotations

from fastapi import APIRouter

from eventdesk.core.database import db

router = APIRouter(tags=["Health"])


@router.get("/health", summary="Liveness probe")
async def health() -> dict[str, str]:
    return {"status": "ok", "database": "connected" if db.is_connected() else "disconnected"}
