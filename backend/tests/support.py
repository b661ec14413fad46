"""Shared doubles for the show runtime tests."""
from __future__ import annotations

import asyncio
import random
from typing import Any, Callable

from fastapi import WebSocketDisconnect

from livequiz.config import Settings
from livequiz.runtime import ShowRuntime
from livequiz.runtime_types import Question
from livequiz.show_texts import ShowTexts


class MockWebSocket:
    """Lightweight mock for fastapi.WebSocket."""

    def __init__(self) -> None:
        self.sent_messages: list[dict[str, Any]] = []
        self.accepted = False
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: dict[str, Any]) -> None:
        self.sent_messages.append(data)

    async def receive_text(self) -> str:
        item = await self._incoming.get()
        if item is None:
            raise WebSocketDisconnect(code=1000)
        return item

    def push(self, text: str | None) -> None:
        self._incoming.put_nowait(text)

    def types(self) -> list[str]:
        return [message["type"] for message in self.sent_messages]

    def last(self, msg_type: str) -> dict[str, Any] | None:
        for message in reversed(self.sent_messages):
            if message.get("type") == msg_type:
                return message
        return None

    def all(self, msg_type: str) -> list[dict[str, Any]]:
        return [message for message in self.sent_messages if message.get("type") == msg_type]


class FakeNarrator:
    def __init__(self, delay: float = 0.0, fail: bool = False, raise_error: bool = False) -> None:
        self.delay = delay
        self.fail = fail
        self.raise_error = raise_error
        self.spoken: list[str] = []

    async def speak(self, text: str) -> bool:
        self.spoken.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raise_error:
            raise RuntimeError("speech backend down")
        return not self.fail


class FakeImages:
    def __init__(self, url: str = "https://images.test/background.jpg") -> None:
        self.url = url
        self.queries: list[tuple[str, str | None]] = []

    async def fetch_image(self, query: str, cache_key: str | None = None) -> str:
        self.queries.append((query, cache_key))
        return self.url

    def stats(self) -> dict[str, Any]:
        return {"queries": len(self.queries)}


def make_question(
    text: str = "Capital of France?",
    options: tuple[str, ...] = ("Paris", "Lyon", "Marseille"),
    correct: str = "A",
    letters: str = "ABCD",
    **kwargs: Any,
) -> Question:
    return Question(
        text=text,
        options=options,
        correct_answer=correct,
        correct_index=letters.index(correct),
        **kwargs,
    )


def make_settings() -> Settings:
    config = Settings()
    config.question_timer_ms = 40
    config.grace_period_ms = 20
    config.answer_display_ms = 10
    config.ready_pause_ms = 10
    config.pool_restart_delay_ms = 10
    config.match_restart_delay_ms = 20
    config.winner_announcement_gap_ms = 0
    config.level_thresholds = (1, 4, 10, 15, 21)
    config.question_order = "sequential"
    config.match_restart_mode = "timer"
    config.score_grace_answers = True
    config.answer_announcement_enabled = True
    config.encouragement_position = "after-reveal"
    config.answer_letters = "ABCD"
    config.player_inactivity_ms = 1000
    config.gift_priority_window_ms = 30000
    config.unsplash_access_keys = ()
    config.fallback_image_url = "https://images.test/fallback.jpg"
    return config


def make_runtime(
    config: Settings,
    questions: list[Question] | None = None,
    narrator: FakeNarrator | None = None,
    images: FakeImages | None = None,
) -> ShowRuntime:
    return ShowRuntime(
        config,
        narrator=narrator or FakeNarrator(),
        images=images or FakeImages(),
        questions=questions or [make_question()],
        texts=ShowTexts(rng=random.Random(7)),
        rng=random.Random(7),
    )


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.005) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition was not met in time")
        await asyncio.sleep(interval)


async def stop_runtime(runtime: ShowRuntime) -> None:
    await runtime.shutdown()
    # let cancelled timer tasks unwind before the loop closes
    await asyncio.sleep(0.01)
