from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, cast

from .runtime_utils import normalize_answer, now_ms

if TYPE_CHECKING:
    from .config import Settings
    from .runtime_types import AnswerWindow, Player, ShowSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnswerVerdict:
    accepted: bool
    correct: bool = False
    letter: str | None = None
    reason: str = ""


@dataclass(frozen=True)
class ScoreOutcome:
    accepted: bool
    correct: bool = False
    letter: str | None = None
    reason: str = ""
    previous_score: int = 0
    score: int = 0
    previous_level: int = 1
    level: int = 1
    won: bool = False

    @property
    def leveled_up(self) -> bool:
        return self.level > self.previous_level


REJECTED_NO_QUESTION = "no-question"
REJECTED_MATCH_ENDED = "match-ended"
REJECTED_WINDOW_CLOSED = "window-closed"
REJECTED_INVALID_LETTER = "invalid-letter"
REJECTED_DUPLICATE = "duplicate"


class ScoringEngine:
    def __init__(self, config: "Settings") -> None:
        self.config = config

    def check_answer(self, session: "ShowSession", username: str, raw_answer: str) -> AnswerVerdict:
        window = session.window
        question = session.current_question
        if window is None or question is None:
            return AnswerVerdict(False, reason=REJECTED_NO_QUESTION)
        if session.match.ended:
            return AnswerVerdict(False, reason=REJECTED_MATCH_ENDED)
        if not window.accepts_answers(self.config.score_grace_answers):
            return AnswerVerdict(False, reason=REJECTED_WINDOW_CLOSED)

        letter = normalize_answer(raw_answer)
        if letter is None or letter not in question.valid_letters(self.config.answer_letters):
            return AnswerVerdict(False, letter=letter, reason=REJECTED_INVALID_LETTER)
        if username in window.answered:
            return AnswerVerdict(False, letter=letter, reason=REJECTED_DUPLICATE)

        return AnswerVerdict(True, correct=letter == question.correct_answer, letter=letter)

    def submit_answer(self, session: "ShowSession", player: "Player", raw_answer: str) -> ScoreOutcome:
        """Score one chat answer; never awaits, so arrival order decides acceptance."""
        verdict = self.check_answer(session, player.username, raw_answer)
        if not verdict.accepted:
            logger.debug(
                "answer rejected username=%s answer=%r reason=%s",
                player.username,
                raw_answer[:16],
                verdict.reason,
            )
            return ScoreOutcome(
                False,
                letter=verdict.letter,
                reason=verdict.reason,
                previous_score=player.score,
                score=player.score,
                previous_level=player.level,
                level=player.level,
            )

        window = cast("AnswerWindow", session.window)
        window.answered.add(player.username)

        registry = session.players
        previous_score = player.score
        previous_level = player.level
        if verdict.correct:
            player.score += 1
            player.level = registry.level_for(player.score)
        else:
            floor = registry.min_score_for_level(player.level)
            player.score = max(floor, player.score - 1)

        won = False
        match = session.match
        if verdict.correct and player.level >= registry.max_level and not match.ended:
            # Ended flag flips before any await so a same-tick answer cannot win too.
            match.ended = True
            match.winner = player.username
            match.winner_score = player.score
            match.ended_at_ms = now_ms()
            won = True
            logger.info("match won username=%s score=%s", player.username, player.score)

        return ScoreOutcome(
            True,
            correct=verdict.correct,
            letter=verdict.letter,
            previous_score=previous_score,
            score=player.score,
            previous_level=previous_level,
            level=player.level,
            won=won,
        )
