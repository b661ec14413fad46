from __future__ import annotations

import json
from urllib import parse

import pytest

from livequiz.background_images import MAX_KEY_ERRORS, BackgroundImageService, ImageUrlCache
from support import make_settings

FALLBACK = "https://images.test/fallback.jpg"


class FakeHttp:
    def __init__(self, responses):
        self.responses = responses
        self.keys: list[str] = []

    def __call__(self, url, timeout):
        query = parse.parse_qs(parse.urlsplit(url).query)
        key = query["client_id"][0]
        self.keys.append(key)
        response = self.responses[key] if isinstance(self.responses, dict) else self.responses
        return response


def ok(url):
    return 200, json.dumps({"urls": {"regular": url}})


def make_service(keys, http):
    config = make_settings()
    config.unsplash_access_keys = tuple(keys)
    config.unsplash_rate_limit_per_hour = 50
    config.fallback_image_url = FALLBACK
    return BackgroundImageService(config, http_get=http)


@pytest.mark.asyncio
async def test_no_keys_returns_fallback():
    http = FakeHttp(ok("https://images.test/x.jpg"))
    service = make_service([], http)

    assert await service.fetch_image("ocean", "question:ocean") == FALLBACK
    assert http.keys == []


@pytest.mark.asyncio
async def test_empty_query_returns_fallback():
    service = make_service(["k1"], FakeHttp(ok("https://images.test/x.jpg")))

    assert await service.fetch_image("   ") == FALLBACK


@pytest.mark.asyncio
async def test_successful_lookup_is_cached():
    http = FakeHttp(ok("https://images.test/ocean.jpg"))
    service = make_service(["k1"], http)

    first = await service.fetch_image("ocean", "question:ocean")
    second = await service.fetch_image("ocean", "QUESTION:Ocean")

    assert first == second == "https://images.test/ocean.jpg"
    assert http.keys == ["k1"]
    assert service.stats()["cache"]["hits"] == 1


@pytest.mark.asyncio
async def test_rate_limited_key_is_retried_with_the_next_key():
    http = FakeHttp({"k1": (429, "Rate Limit Exceeded"), "k2": ok("https://images.test/k2.jpg")})
    service = make_service(["k1", "k2"], http)

    url = await service.fetch_image("mountain", "question:mountain")

    assert url == "https://images.test/k2.jpg"
    assert http.keys == ["k1", "k2"]
    assert service.rotator.accounts[0].requests_this_window == 50


@pytest.mark.asyncio
async def test_all_keys_rate_limited_returns_fallback():
    http = FakeHttp((403, "Forbidden"))
    service = make_service(["k1", "k2"], http)

    assert await service.fetch_image("forest", "question:forest") == FALLBACK
    assert await service.fetch_image("desert", "question:desert") == FALLBACK
    assert http.keys == ["k1", "k2"]


@pytest.mark.asyncio
async def test_failing_key_is_skipped_after_repeated_errors():
    http = FakeHttp({"bad": (500, "oops"), "good": ok("https://images.test/good.jpg")})
    service = make_service(["bad", "good"], http)

    for index in range(MAX_KEY_ERRORS * 2 + 2):
        await service.fetch_image(f"topic {index}", f"question:topic {index}")

    assert http.keys.count("bad") == MAX_KEY_ERRORS
    assert service.rotator.accounts[0].errors == MAX_KEY_ERRORS


@pytest.mark.asyncio
async def test_malformed_response_returns_fallback():
    service = make_service(["k1"], FakeHttp((200, "<html>")))

    assert await service.fetch_image("city", "question:city") == FALLBACK


@pytest.mark.asyncio
async def test_missing_url_field_returns_fallback():
    service = make_service(["k1"], FakeHttp((200, json.dumps({"urls": {}}))))

    assert await service.fetch_image("city", "question:city") == FALLBACK


def test_url_cache_expires_entries():
    cache = ImageUrlCache(ttl_seconds=60, max_entries=10)
    cache.set("ocean", "https://images.test/o.jpg", now=1000.0)

    assert cache.get("ocean", now=1059.0) == "https://images.test/o.jpg"
    assert cache.get("ocean", now=1060.0) is None
    assert cache.stats()["entries"] == 0


def test_url_cache_evicts_oldest_entries():
    cache = ImageUrlCache(ttl_seconds=60, max_entries=2)
    cache.set("a", "1", now=0.0)
    cache.set("b", "2", now=0.0)
    cache.get("a", now=1.0)
    cache.set("c", "3", now=1.0)

    assert cache.get("b", now=2.0) is None
    assert cache.get("a", now=2.0) == "1"
    assert cache.get("c", now=2.0) == "3"
