from __future__ import annotations

import json
import logging
from typing import Any

import asyncpg

from .config import settings

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None


def _normalized_database_url() -> str:
    url = settings.database_url.strip()
    if url.startswith("postgresql+asyncpg://"):
        return "postgresql://" + url[len("postgresql+asyncpg://") :]
    return url


def is_db_configured() -> bool:
    return bool(settings.database_url)


async def _get_pool() -> asyncpg.Pool:
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(dsn=_normalized_database_url(), min_size=1, max_size=5)
    return _pool


async def init_db() -> bool:
    if not is_db_configured():
        logger.info("DATABASE_URL is not configured, match results are not persisted")
        return False
    try:
        pool = await _get_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS match_results (
                  id BIGSERIAL PRIMARY KEY,
                  session_id VARCHAR(64) NOT NULL,
                  winner VARCHAR(64) NOT NULL,
                  winner_score INTEGER NOT NULL,
                  questions_asked INTEGER NOT NULL DEFAULT 0,
                  player_count INTEGER NOT NULL DEFAULT 0,
                  podium_json TEXT NOT NULL DEFAULT '[]',
                  started_at_ms BIGINT,
                  ended_at_ms BIGINT,
                  created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
                """
            )
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_match_results_created_at ON match_results (created_at DESC)"
            )
    except Exception:
        logger.exception("Failed to initialize database, match results are not persisted")
        await close_db()
        return False
    logger.info("Database ready")
    return True


async def close_db() -> None:
    global _pool
    if _pool is not None:
        try:
            await _pool.close()
        finally:
            _pool = None


async def ping_db() -> bool:
    if _pool is None:
        return False
    try:
        async with _pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        return True
    except Exception:  # pragma: no cover
        logger.exception("Database ping failed")
        return False


async def save_match_result(
    *,
    session_id: str,
    winner: str,
    winner_score: int,
    questions_asked: int,
    player_count: int,
    podium: list[dict[str, Any]],
    started_at_ms: int | None,
    ended_at_ms: int | None,
) -> bool:
    if _pool is None:
        return False
    payload = json.dumps(podium, ensure_ascii=False)
    async with _pool.acquire() as conn:
        await conn.execute(
            """
            INSERT INTO match_results
              (session_id, winner, winner_score, questions_asked, player_count,
               podium_json, started_at_ms, ended_at_ms)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            """,
            session_id[:64],
            winner[:64],
            int(winner_score),
            int(questions_asked),
            int(player_count),
            payload,
            started_at_ms,
            ended_at_ms,
        )
    return True


async def load_recent_winners(limit: int = 20) -> list[dict[str, Any]]:
    if _pool is None:
        return []
    async with _pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT winner, winner_score, questions_asked, player_count, podium_json, created_at
            FROM match_results
            ORDER BY created_at DESC
            LIMIT $1
            """,
            max(1, min(int(limit), 200)),
        )

    winners: list[dict[str, Any]] = []
    for row in rows:
        try:
            podium = json.loads(row["podium_json"] or "[]")
        except json.JSONDecodeError:
            podium = []
        winners.append(
            {
                "winner": row["winner"],
                "score": int(row["winner_score"]),
                "questionsAsked": int(row["questions_asked"]),
                "playerCount": int(row["player_count"]),
                "podium": podium if isinstance(podium, list) else [],
                "finishedAt": row["created_at"].isoformat() if row["created_at"] else None,
            }
        )
    return winners
