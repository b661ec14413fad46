from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from .runtime_players import PlayerRegistry
    from .runtime_question_pool import QuestionPool

Phase = Literal[
    "idle",
    "announcing",
    "waiting-window",
    "open",
    "grace",
    "revealing",
    "cooldown",
]
QuestionOrder = Literal["sequential", "shuffled"]
RestartMode = Literal["timer", "reconnect"]


@dataclass
class Player:
    username: str
    profile_image: str | None = None
    score: int = 0
    level: int = 1
    last_activity_ms: int = 0
    joined_at_ms: int = 0


@dataclass(frozen=True)
class Question:
    text: str
    options: tuple[str, ...]
    correct_answer: str
    correct_index: int
    tts_text: str | None = None
    image: str | None = None
    background_image: str | None = None
    background_keywords: str | None = None
    difficulty: str = "easy"

    @property
    def correct_option(self) -> str:
        return self.options[self.correct_index]

    @property
    def narration_text(self) -> str:
        return self.tts_text or self.text

    def valid_letters(self, answer_letters: str) -> str:
        return answer_letters[: len(self.options)]


@dataclass
class AnswerWindow:
    question_number: int
    waiting_to_open: bool = True
    is_open: bool = False
    in_grace: bool = False
    answered: set[str] = field(default_factory=set)

    @property
    def is_closed(self) -> bool:
        return not (self.waiting_to_open or self.is_open or self.in_grace)

    def accepts_answers(self, score_grace_answers: bool) -> bool:
        if self.is_open:
            return True
        return self.in_grace and score_grace_answers


@dataclass
class MatchState:
    level_thresholds: tuple[int, ...]
    ended: bool = False
    winner: str | None = None
    winner_score: int = 0
    questions_asked: int = 0
    started_at_ms: int = 0
    ended_at_ms: int | None = None
    podium: list[Player] = field(default_factory=list)

    @property
    def max_level(self) -> int:
        return len(self.level_thresholds) + 1


@dataclass
class GiftRecord:
    username: str
    gift_name: str
    count: int
    received_at_ms: int


@dataclass
class ShowSession:
    session_id: str
    players: "PlayerRegistry"
    pool: "QuestionPool"
    match: MatchState
    phase: Phase = "idle"
    current_question: Question | None = None
    question_number: int = 0
    window: AnswerWindow | None = None
    epoch: int = 0
    closed: bool = False
    recent_gifts: list[GiftRecord] = field(default_factory=list)
    timers: dict[str, asyncio.Task[None] | None] = field(default_factory=dict)
