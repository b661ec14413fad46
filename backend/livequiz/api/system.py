from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Query

from livequiz.database import is_db_configured, load_recent_winners, ping_db
from livequiz.redis_cache import is_redis_configured, ping_redis
from livequiz.runtime import runtime

router = APIRouter(tags=["system"])


@router.get("/api/health")
async def health() -> dict[str, object]:
    db_ok = await ping_db() if is_db_configured() else False
    db_status = "disabled" if not is_db_configured() else ("up" if db_ok else "down")
    redis_ok = await ping_redis() if is_redis_configured() else False
    redis_status = "disabled" if not is_redis_configured() else ("up" if redis_ok else "down")
    session = runtime.session
    return {
        "ok": True,
        "database": db_status,
        "redis": redis_status,
        "displays": runtime.display_count,
        "phase": session.phase if session is not None else None,
    }


@router.get("/api/stats")
async def stats() -> dict[str, object]:
    return runtime.get_stats()


@router.get("/api/winners")
async def winners(limit: int = Query(default=20, ge=1, le=200)) -> dict[str, object]:
    entries = await load_recent_winners(limit)
    return {
        "ok": True,
        "entries": entries,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
    }
