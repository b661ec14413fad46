from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .narration import format_question_narration
from .runtime_constants import MAX_RECENT_GIFTS, READY_IMAGE
from .runtime_types import AnswerWindow, GiftRecord, Question
from .runtime_utils import now_ms
from .schemas.display import (
    NewQuestionMessage,
    QuestionEndedMessage,
    SetBackgroundMessage,
    ShowCorrectAnswerMessage,
    ShowReadyMessage,
    StartTimerMessage,
)

if TYPE_CHECKING:
    from .runtime import ShowRuntime
    from .runtime_types import ShowSession

logger = logging.getLogger(__name__)


class QuestionLifecycle:
    """Drives one question at a time: announce, open, grace, reveal, cooldown, next.

    Every step that resumes after an await re-checks the session epoch (bumped by a
    match reset) and the closed flag (set on display teardown) before touching state.
    """

    def __init__(self, runtime: "ShowRuntime") -> None:
        self.runtime = runtime

    @property
    def config(self):
        return self.runtime.config

    def _still_current(self, session: "ShowSession", epoch: int, question: Question | None = None) -> bool:
        if not self.runtime._is_live(session, epoch):
            return False
        if question is not None and session.current_question is not question:
            return False
        return True

    async def _set_background(self, session: "ShowSession", epoch: int, theme: str, cache_key: str) -> None:
        if not theme:
            return
        url = await self.runtime._fetch_background(theme, cache_key)
        if url and self._still_current(session, epoch):
            await self.runtime._broadcast(SetBackgroundMessage(backgroundImage=url))

    async def start_cycle(self, session: "ShowSession") -> None:
        epoch = session.epoch
        texts = self.runtime.texts
        logger.info("question cycle starting session=%s", session.session_id)
        theme = texts.default_background_theme
        await self._set_background(session, epoch, theme, f"background:{theme.lower()}")
        if not self._still_current(session, epoch):
            return
        await self.runtime._narrate(texts.welcome)
        if not self._still_current(session, epoch):
            logger.info("question cycle start aborted session=%s", session.session_id)
            return
        await self.ask_next_question(session)

    def can_ask(self, session: "ShowSession") -> bool:
        if not self.runtime._is_live(session):
            return False
        if session.match.ended:
            return False
        if session.window is not None:
            return False
        if session.current_question is not None:
            return False
        return session.phase == "idle"

    async def ask_next_question(self, session: "ShowSession") -> bool:
        if not self.can_ask(session):
            logger.debug(
                "ask refused session=%s phase=%s ended=%s has_question=%s",
                session.session_id,
                session.phase,
                session.match.ended,
                session.current_question is not None,
            )
            return False

        question = session.pool.next_question()
        if question is None:
            await self._on_pool_exhausted(session)
            return False

        # Everything up to here is synchronous, so a second caller sees the new question.
        session.current_question = question
        session.question_number += 1
        session.window = AnswerWindow(question_number=session.question_number)
        session.phase = "announcing"
        session.match.questions_asked += 1
        epoch = session.epoch
        number = session.question_number
        logger.info(
            "question announced session=%s number=%s difficulty=%s",
            session.session_id,
            number,
            question.difficulty,
        )

        background = await self._resolve_background(question)
        if not self._still_current(session, epoch, question):
            logger.info("question %s dropped before broadcast", number)
            return False

        await self.runtime._broadcast(
            NewQuestionMessage(
                question=question.text,
                options=list(question.options),
                image=question.image,
                backgroundImage=background,
                questionNumber=number,
                difficulty=question.difficulty,
            )
        )
        if not self._still_current(session, epoch, question):
            return False

        spoken = await self.runtime._narrate(format_question_narration(number, question.narration_text))
        if not spoken:
            logger.warning("question narration failed, opening the window anyway number=%s", number)
        await self._open_window(session, epoch, question)
        return True

    async def _resolve_background(self, question: Question) -> str | None:
        if question.background_image:
            return question.background_image
        keywords = question.background_keywords
        if not keywords:
            return None
        return await self.runtime._fetch_background(keywords, f"question:{keywords.lower()}")

    async def _open_window(self, session: "ShowSession", epoch: int, question: Question) -> None:
        if not self._still_current(session, epoch, question):
            logger.info("answer window not opened, question is stale session=%s", session.session_id)
            return
        session.phase = "waiting-window"
        window = session.window
        if window is None or session.match.ended:
            logger.info("answer window not opened session=%s", session.session_id)
            return

        window.waiting_to_open = False
        window.is_open = True
        session.phase = "open"
        timer_ms = self.config.question_timer_ms
        self.runtime._schedule_timer(session, "question", timer_ms, self._start_grace)
        await self.runtime._broadcast(StartTimerMessage(timer=timer_ms / 1000))

    async def _start_grace(self, session: "ShowSession") -> None:
        window = session.window
        if window is None or not window.is_open:
            return
        window.is_open = False
        window.in_grace = True
        session.phase = "grace"
        self.runtime._schedule_timer(session, "grace", self.config.grace_period_ms, self.end_question)

    async def end_question(self, session: "ShowSession") -> None:
        window = session.window
        question = session.current_question
        if window is None or question is None or session.match.ended:
            return

        epoch = session.epoch
        window.waiting_to_open = False
        window.is_open = False
        window.in_grace = False
        session.window = None
        session.phase = "revealing"
        logger.info(
            "question closed session=%s number=%s answers=%s",
            session.session_id,
            window.question_number,
            len(window.answered),
        )

        letter = question.correct_answer
        option = question.correct_option
        await self.runtime._broadcast(QuestionEndedMessage(correctAnswer=letter, correctOption=option))
        if not self._still_current(session, epoch, question):
            return

        position = self.config.encouragement_position
        if position == "before-reveal":
            await self._encourage(session)
            if not self._still_current(session, epoch, question):
                return
        if self.config.answer_announcement_enabled:
            await self.runtime._narrate(self.runtime.texts.answer_announcement(letter, option))
            if not self._still_current(session, epoch, question):
                return

        await self.runtime._broadcast(ShowCorrectAnswerMessage(correctAnswer=letter, correctOption=option))
        session.current_question = None
        if position == "after-reveal":
            await self._encourage(session)
        if not self._still_current(session, epoch) or session.match.ended:
            return

        session.phase = "cooldown"
        self.runtime._schedule_timer(session, "ready", self.config.answer_display_ms, self._show_ready)

    async def _show_ready(self, session: "ShowSession") -> None:
        if session.match.ended:
            return
        await self.runtime._broadcast(ShowReadyMessage(image=READY_IMAGE))
        self.runtime._schedule_timer(session, "next", self.config.ready_pause_ms, self._advance)

    async def _advance(self, session: "ShowSession") -> None:
        if session.match.ended:
            return
        session.phase = "idle"
        await self.ask_next_question(session)

    async def _on_pool_exhausted(self, session: "ShowSession") -> None:
        epoch = session.epoch
        texts = self.runtime.texts
        session.phase = "cooldown"
        logger.info("question pool exhausted session=%s, restarting", session.session_id)

        theme = texts.goodbye_background_theme
        await self._set_background(session, epoch, theme, f"background:{theme.lower()}")
        if not self._still_current(session, epoch):
            return
        await self.runtime._narrate(texts.goodbye)
        if not self._still_current(session, epoch):
            return

        session.pool.reset()
        self.runtime._schedule_timer(session, "poolRestart", self.config.pool_restart_delay_ms, self._advance)

    async def _encourage(self, session: "ShowSession") -> None:
        self._prune_gifts(session)
        had_gifts = bool(session.recent_gifts)
        text = self.runtime.texts.encouragement(session.recent_gifts)
        if had_gifts:
            session.recent_gifts.clear()
        if text:
            await self.runtime._narrate(text)

    def _prune_gifts(self, session: "ShowSession", at_ms: int | None = None) -> None:
        timestamp = now_ms() if at_ms is None else at_ms
        window_ms = self.config.gift_priority_window_ms
        session.recent_gifts[:] = [
            gift for gift in session.recent_gifts if timestamp - gift.received_at_ms <= window_ms
        ][-MAX_RECENT_GIFTS:]

    def record_gift(self, session: "ShowSession", username: str, gift_name: str, count: int) -> None:
        timestamp = now_ms()
        session.recent_gifts.append(
            GiftRecord(username=username, gift_name=gift_name, count=count, received_at_ms=timestamp)
        )
        self._prune_gifts(session, timestamp)
        logger.info("gift received username=%s gift=%s count=%s", username, gift_name, count)

    def stop(self, session: "ShowSession") -> None:
        self.runtime._clear_timers(session)
        session.window = None
        session.current_question = None
        session.phase = "idle"
