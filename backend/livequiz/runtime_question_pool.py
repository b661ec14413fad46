from __future__ import annotations

import json
import logging
import random
from dataclasses import replace
from pathlib import Path
from typing import Any

from .runtime_constants import DEFAULT_QUESTION
from .runtime_types import Question, QuestionOrder
from .runtime_utils import letter_for_index

logger = logging.getLogger(__name__)


def _optional_str(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None


def sanitize_question_entry(raw: Any, answer_letters: str) -> Question | None:
    if not isinstance(raw, dict):
        return None

    text = str(raw.get("question") or raw.get("text") or "").strip()
    options_raw = raw.get("options")
    if not text or not isinstance(options_raw, list):
        return None

    # A blank option would shift the positions an integer correctAnswer refers to.
    options = tuple(str(option if option is not None else "").strip() for option in options_raw)
    if any(not option for option in options):
        return None
    if len(options) < 2 or len(options) > len(answer_letters):
        return None

    letters = answer_letters[: len(options)]
    correct_raw = raw.get("correctAnswer")
    if isinstance(correct_raw, int) and not isinstance(correct_raw, bool):
        if not 0 <= correct_raw < len(options):
            return None
        correct_index = correct_raw
    else:
        letter = str(correct_raw or "").strip().upper()
        if len(letter) != 1 or letter not in letters:
            return None
        correct_index = letters.index(letter)

    return Question(
        text=text[:300],
        options=options,
        correct_answer=letter_for_index(correct_index, answer_letters),
        correct_index=correct_index,
        tts_text=_optional_str(raw.get("questionTTS")),
        image=_optional_str(raw.get("image")),
        background_image=_optional_str(raw.get("backgroundImage")),
        background_keywords=_optional_str(raw.get("backgroundKeyWords")),
        difficulty=str(raw.get("niveau") or raw.get("difficulty") or "easy").strip().lower()[:16] or "easy",
    )


def default_question(answer_letters: str) -> Question:
    return replace(
        DEFAULT_QUESTION,
        options=DEFAULT_QUESTION.options[: len(answer_letters)],
        correct_answer=answer_letters[0],
        correct_index=0,
    )


def load_question_catalog(path: Path, answer_letters: str) -> list[Question]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:
        logger.error("Failed to load questions from %s: %s; using the default question", path, exc)
        return [default_question(answer_letters)]

    entries_raw = payload.get("questions") if isinstance(payload, dict) else payload
    if not isinstance(entries_raw, list):
        logger.error("Questions file %s must contain a list; using the default question", path)
        return [default_question(answer_letters)]

    questions: list[Question] = []
    for index, entry in enumerate(entries_raw):
        question = sanitize_question_entry(entry, answer_letters)
        if question is None:
            logger.warning("Skipping invalid question #%s in %s", index + 1, path)
            continue
        questions.append(question)

    if not questions:
        logger.error("No valid questions in %s; using the default question", path)
        return [default_question(answer_letters)]

    logger.info("Loaded %s questions from %s", len(questions), path)
    return questions


class QuestionPool:
    def __init__(
        self,
        questions: list[Question],
        order: QuestionOrder = "sequential",
        rng: random.Random | None = None,
    ) -> None:
        self._source = list(questions) or [DEFAULT_QUESTION]
        self._order = order
        self._rng = rng or random.Random()
        self._items: list[Question] = []
        self.index = 0
        self.reset()

    def __len__(self) -> int:
        return len(self._items)

    @property
    def exhausted(self) -> bool:
        return self.index >= len(self._items)

    def next_question(self) -> Question | None:
        if self.exhausted:
            return None
        question = self._items[self.index]
        self.index += 1
        return question

    def reset(self) -> None:
        self._items = list(self._source)
        if self._order == "shuffled":
            self._rng.shuffle(self._items)
        self.index = 0
