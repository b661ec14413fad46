from __future__ import annotations

import logging

from redis.asyncio import Redis
from redis.asyncio import from_url as redis_from_url

from .config import settings

logger = logging.getLogger(__name__)

_redis: Redis | None = None


def is_redis_configured() -> bool:
    return bool(settings.redis_url)


def is_redis_connected() -> bool:
    return _redis is not None


def _image_key(cache_key: str) -> str:
    return f"lq:image:{cache_key.strip().lower()[:200]}"


async def init_redis() -> bool:
    global _redis
    if _redis is not None:
        return True

    if not settings.redis_url:
        logger.info("Redis URL is not configured, image cache is in-process only")
        return False

    client = redis_from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    try:
        await client.ping()
    except Exception:
        logger.exception("Failed to connect to Redis %s", settings.redis_url)
        try:
            await client.aclose()
        except Exception:
            logger.debug("Redis client close failed after ping error", exc_info=True)
        return False

    _redis = client
    logger.info("Redis cache connected")
    return True


async def close_redis() -> None:
    global _redis
    if _redis is None:
        return
    try:
        await _redis.aclose()
    finally:
        _redis = None


async def ping_redis() -> bool:
    if _redis is None:
        return False
    try:
        await _redis.ping()
        return True
    except Exception:
        logger.exception("Redis ping failed")
        return False


async def get_image_url(cache_key: str) -> str | None:
    if _redis is None:
        return None
    key = _image_key(cache_key)
    try:
        value = await _redis.get(key)
    except Exception:
        logger.exception("Redis get failed for key %s", key)
        return None
    return str(value) if value else None


async def set_image_url(cache_key: str, url: str, ttl_seconds: int) -> None:
    if _redis is None:
        return
    key = _image_key(cache_key)
    try:
        await _redis.set(key, url, ex=max(60, int(ttl_seconds)))
    except Exception:
        logger.exception("Redis set failed for key %s", key)
