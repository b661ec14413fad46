from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib import error, parse, request

from . import redis_cache
from .config import Settings

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW_SECONDS = 3600
MAX_KEY_ERRORS = 3
RATE_LIMIT_STATUSES = {403, 429}

HttpGet = Callable[[str, float], tuple[int, str]]


class ImageFetchError(RuntimeError):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


def _http_get(url: str, timeout: float) -> tuple[int, str]:
    raw_request = request.Request(
        url,
        headers={"Accept": "application/json", "Accept-Version": "v1"},
        method="GET",
    )
    try:
        with request.urlopen(raw_request, timeout=timeout) as response:
            return response.status, response.read().decode("utf-8", errors="replace")
    except error.HTTPError as exc:
        return exc.code, exc.read().decode("utf-8", errors="ignore")


class ImageUrlCache:
    def __init__(self, ttl_seconds: int, max_entries: int) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: OrderedDict[str, tuple[str, float]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def normalize_key(cache_key: str) -> str:
        return cache_key.strip().lower()

    def get(self, cache_key: str, *, now: float | None = None) -> str | None:
        key = self.normalize_key(cache_key)
        timestamp = time.time() if now is None else now
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        url, stored_at = entry
        if timestamp - stored_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return url

    def set(self, cache_key: str, url: str, *, now: float | None = None) -> None:
        key = self.normalize_key(cache_key)
        self._entries[key] = (url, time.time() if now is None else now)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def stats(self) -> dict[str, Any]:
        total = self.hits + self.misses
        return {
            "entries": len(self._entries),
            "maxEntries": self.max_entries,
            "hits": self.hits,
            "misses": self.misses,
            "hitRate": round(self.hits / total, 3) if total else 0.0,
        }


@dataclass
class ApiKeyAccount:
    key: str
    requests_this_window: int = 0
    errors: int = 0
    last_used_at: float | None = None


class UnsplashKeyRotator:
    """Round-robin over API keys, skipping keys that hit their hourly budget or keep failing."""

    def __init__(self, keys: tuple[str, ...], limit_per_hour: int) -> None:
        self.accounts = [ApiKeyAccount(key=key) for key in keys]
        self.limit_per_hour = limit_per_hour
        self._cursor = 0
        self._window_started_at = time.time()

    def _maybe_reset_window(self, now: float) -> None:
        if now - self._window_started_at < RATE_LIMIT_WINDOW_SECONDS:
            return
        self._window_started_at = now
        for account in self.accounts:
            account.requests_this_window = 0
            account.errors = 0
        logger.info("image api key counters reset")

    def next_account(self, *, now: float | None = None) -> ApiKeyAccount | None:
        timestamp = time.time() if now is None else now
        self._maybe_reset_window(timestamp)
        count = len(self.accounts)
        for offset in range(count):
            account = self.accounts[(self._cursor + offset) % count]
            if account.requests_this_window >= self.limit_per_hour or account.errors >= MAX_KEY_ERRORS:
                continue
            self._cursor = (self._cursor + offset + 1) % count
            account.requests_this_window += 1
            account.last_used_at = timestamp
            return account
        return None

    def mark_rate_limited(self, account: ApiKeyAccount) -> None:
        account.requests_this_window = self.limit_per_hour

    def mark_error(self, account: ApiKeyAccount) -> None:
        account.errors += 1


class BackgroundImageService:
    def __init__(self, config: Settings, http_get: HttpGet | None = None) -> None:
        self.config = config
        self.fallback_url = config.fallback_image_url
        self.cache = ImageUrlCache(config.image_cache_ttl_seconds, config.image_cache_max_entries)
        self.rotator = UnsplashKeyRotator(config.unsplash_access_keys, config.unsplash_rate_limit_per_hour)
        self._http_get = http_get or _http_get

    def _build_url(self, query: str, key: str) -> str:
        params = parse.urlencode(
            {
                "query": query,
                "orientation": "landscape",
                "client_id": key,
            }
        )
        return f"{self.config.unsplash_api_url}?{params}"

    def _request_image(self, query: str, account: ApiKeyAccount) -> str:
        status, body = self._http_get(self._build_url(query, account.key), float(self.config.image_timeout_seconds))
        if status in RATE_LIMIT_STATUSES or "Rate Limit Exceeded" in body:
            raise ImageFetchError("rate limit exceeded", status=status or 429)
        if status != 200:
            raise ImageFetchError(f"HTTP {status}: {body[:200]}", status=status)
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as exc:
            raise ImageFetchError("response is not JSON") from exc
        urls = payload.get("urls") if isinstance(payload, dict) else None
        url = urls.get("regular") if isinstance(urls, dict) else None
        if not isinstance(url, str) or not url:
            raise ImageFetchError("response does not contain urls.regular")
        return url

    async def fetch_image(self, query: str, cache_key: str | None = None) -> str:
        """Resolve a background image URL for ``query``; never raises."""
        query = (query or "").strip()
        if not query:
            return self.fallback_url
        key = cache_key or query

        cached = self.cache.get(key)
        if cached:
            return cached
        cached = await redis_cache.get_image_url(key)
        if cached:
            self.cache.set(key, cached)
            return cached

        if not self.rotator.accounts:
            logger.warning("No image API keys configured, using fallback image")
            return self.fallback_url

        # One retry with the next key when the first is rate limited.
        for attempt in range(2):
            account = self.rotator.next_account()
            if account is None:
                logger.warning("All image API keys exhausted, using fallback image")
                return self.fallback_url
            try:
                url = await asyncio.to_thread(self._request_image, query, account)
            except ImageFetchError as exc:
                if exc.status in RATE_LIMIT_STATUSES:
                    self.rotator.mark_rate_limited(account)
                    logger.warning("image api key rate limited attempt=%s query=%r", attempt + 1, query)
                    continue
                self.rotator.mark_error(account)
                logger.warning("image fetch failed query=%r reason=%s", query, exc)
                return self.fallback_url
            except Exception:
                self.rotator.mark_error(account)
                logger.exception("image fetch crashed query=%r", query)
                return self.fallback_url

            self.cache.set(key, url)
            await redis_cache.set_image_url(key, url, self.config.image_cache_ttl_seconds)
            logger.info("image resolved query=%r", query)
            return url

        logger.warning("image fetch rate limited on every attempt, using fallback image")
        return self.fallback_url

    def stats(self) -> dict[str, Any]:
        return {
            "cache": self.cache.stats(),
            "keys": [
                {
                    "index": index + 1,
                    "requests": account.requests_this_window,
                    "errors": account.errors,
                }
                for index, account in enumerate(self.rotator.accounts)
            ],
        }
