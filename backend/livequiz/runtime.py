from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, Awaitable, Callable, cast

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from .background_images import BackgroundImageService
from .config import Settings, settings
from .narration import Narrator, build_narrator
from .runtime_constants import TIMER_KEYS
from .runtime_match_flow import MatchController
from .runtime_players import PlayerRegistry
from .runtime_question_flow import QuestionLifecycle
from .runtime_question_pool import QuestionPool, load_question_catalog
from .runtime_scoring import ScoreOutcome, ScoringEngine
from .runtime_types import MatchState, Question, ShowSession
from .runtime_utils import now_ms, random_id
from .schemas.chat import ChatMessageEvent, GiftEvent, JoinEvent, parse_chat_event
from .schemas.display import (
    CorrectAnswerMessage,
    LevelUpMessage,
    NewPlayerMessage,
    PlayerRemovedMessage,
    PlayerUpdateMessage,
    PongMessage,
    WrongAnswerMessage,
    serialize_display_message,
)
from .show_texts import ShowTexts, load_show_texts

logger = logging.getLogger(__name__)

ChatEvent = ChatMessageEvent | JoinEvent | GiftEvent
TimerCallback = Callable[[ShowSession], Awaitable[None]]


class ShowRuntime:
    def __init__(
        self,
        config: Settings | None = None,
        *,
        narrator: Narrator | None = None,
        images: Any | None = None,
        questions: list[Question] | None = None,
        texts: ShowTexts | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or settings
        self._rng = rng or random.Random()
        self.narrator = narrator or build_narrator(self.config)
        self.images = images or BackgroundImageService(self.config)
        if questions is None:
            questions = load_question_catalog(self.config.questions_path, self.config.answer_letters)
        self.questions = questions
        self.texts = texts or load_show_texts(self.config.show_texts_path)

        self.scoring = ScoringEngine(self.config)
        self.lifecycle = QuestionLifecycle(self)
        self.match = MatchController(self)

        self.session: ShowSession | None = None
        self._displays: list[WebSocket] = []
        self._sweep_task: asyncio.Task[None] | None = None
        self._ws_stats: dict[str, int] = {
            "displayConnects": 0,
            "displayDisconnects": 0,
            "chatConnects": 0,
            "chatEvents": 0,
            "chatRejected": 0,
            "sendFailures": 0,
            "pingReceived": 0,
            "sessionsStarted": 0,
        }

    @property
    def display_count(self) -> int:
        return len(self._displays)

    def _increment_stat(self, key: str, amount: int = 1) -> None:
        self._ws_stats[key] = int(self._ws_stats.get(key, 0)) + amount

    def _log_ws_event(self, event: str, level: int = logging.INFO, **fields: object) -> None:
        logger.log(
            level,
            "ws.%s %s",
            event,
            json.dumps(fields, ensure_ascii=False, separators=(",", ":")),
        )

    def _is_live(self, session: ShowSession, epoch: int | None = None) -> bool:
        if session.closed or session is not self.session:
            return False
        return epoch is None or session.epoch == epoch

    # Session lifecycle

    def _new_session(self) -> ShowSession:
        thresholds = self.config.level_thresholds
        return ShowSession(
            session_id=random_id(),
            players=PlayerRegistry(thresholds),
            pool=QuestionPool(self.questions, self.config.question_order, self._rng),
            match=MatchState(level_thresholds=thresholds, started_at_ms=now_ms()),
        )

    async def open_session(self) -> ShowSession:
        if self.session is not None and not self.session.closed:
            return self.session
        session = self._new_session()
        self.session = session
        self.texts.reset_session()
        self._increment_stat("sessionsStarted")
        logger.info("show session opened session=%s", session.session_id)
        await self._broadcast(self.match.match_started_message(session))
        if self._is_live(session):
            self._schedule_timer(session, "cycle", 0, self.lifecycle.start_cycle)
        return session

    def close_session(self) -> None:
        session = self.session
        if session is None:
            return
        session.closed = True
        self.lifecycle.stop(session)
        self.session = None
        logger.info("show session closed session=%s", session.session_id)

    # Timers

    def _cancel_timer(self, session: ShowSession, key: str) -> None:
        task = session.timers.get(key)
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
        session.timers[key] = None

    def _clear_timers(self, session: ShowSession, keys: tuple[str, ...] = TIMER_KEYS) -> None:
        for key in keys:
            self._cancel_timer(session, key)

    def _schedule_timer(
        self,
        session: ShowSession,
        key: str,
        delay_ms: int,
        callback: TimerCallback,
    ) -> None:
        self._cancel_timer(session, key)
        delay_s = max(0, delay_ms or 0) / 1000

        async def runner() -> None:
            try:
                if delay_s > 0:
                    await asyncio.sleep(delay_s)
            except asyncio.CancelledError:
                return
            if session.closed:
                return
            try:
                await callback(session)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Timer %s failed for session %s", key, session.session_id)

        session.timers[key] = asyncio.create_task(runner(), name=f"{session.session_id}:{key}")

    # Outbound

    async def _send_safe(self, websocket: WebSocket, data: dict[str, Any]) -> None:
        try:
            await websocket.send_json(data)
        except Exception as exc:
            # Connection may already be closed.
            self._increment_stat("sendFailures")
            logger.debug(
                "[SEND_FAIL] type=%s reason=%s ws_client_state=%s",
                data.get("type"),
                repr(exc),
                getattr(websocket, "client_state", None),
            )

    async def _send_message(self, websocket: WebSocket, message: BaseModel) -> None:
        await self._send_safe(websocket, serialize_display_message(message))

    async def _broadcast(self, message: BaseModel) -> None:
        data = serialize_display_message(message)
        logger.debug("broadcast type=%s displays=%s", data.get("type"), len(self._displays))
        for websocket in list(self._displays):
            await self._send_safe(websocket, data)

    # Collaborators

    async def _narrate(self, text: str | None) -> bool:
        if not text:
            return True
        try:
            return bool(await self.narrator.speak(text))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Narrator raised for text=%r", text[:60])
            return False

    async def _fetch_background(self, query: str, cache_key: str) -> str | None:
        try:
            return await self.images.fetch_image(query, cache_key)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Background image lookup raised for query=%r", query)
            return self.config.fallback_image_url

    # Display sink

    async def connect_display(self, websocket: WebSocket) -> None:
        self._displays.append(websocket)
        self._increment_stat("displayConnects")
        self._log_ws_event("display_connected", displays=len(self._displays))

        session = self.session
        if session is None:
            await self.open_session()
        elif session.match.ended and self.config.match_restart_mode == "reconnect":
            await self.match.reset(session)
        else:
            await self.match.send_snapshot(session, websocket)

    def disconnect_display(self, websocket: WebSocket) -> None:
        if websocket in self._displays:
            self._displays.remove(websocket)
        self._increment_stat("displayDisconnects")
        self._log_ws_event("display_disconnected", displays=len(self._displays))
        if not self._displays:
            self.close_session()

    async def handle_display_websocket(self, websocket: WebSocket) -> None:
        await websocket.accept()
        try:
            await self.connect_display(websocket)
            while True:
                raw = await websocket.receive_text()
                try:
                    payload = json.loads(raw)
                except json.JSONDecodeError:
                    logger.debug("display sent invalid JSON")
                    continue
                if isinstance(payload, dict) and payload.get("type") == "ping":
                    self._increment_stat("pingReceived")
                    await self._send_message(websocket, PongMessage(serverTime=now_ms()))
        except WebSocketDisconnect:
            pass
        finally:
            self.disconnect_display(websocket)

    # Chat source

    async def handle_chat_websocket(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._increment_stat("chatConnects")
        self._log_ws_event("chat_connected")
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    payload = json.loads(raw)
                except json.JSONDecodeError:
                    self._increment_stat("chatRejected")
                    logger.debug("chat source sent invalid JSON")
                    continue
                event = parse_chat_event(payload)
                if event is None:
                    self._increment_stat("chatRejected")
                    logger.debug("chat event rejected payload=%r", str(payload)[:200])
                    continue
                await self.handle_chat_event(event)
        except WebSocketDisconnect:
            self._log_ws_event("chat_disconnected")

    async def handle_chat_event(self, event: ChatEvent) -> ScoreOutcome | None:
        self._increment_stat("chatEvents")
        session = self.session
        if session is None or session.closed:
            logger.debug("chat event ignored, no active show type=%s", event.type)
            return None

        # Scoring decides before the first await so arrival order is answer order.
        player, created = session.players.upsert(event.username, event.profileImage)
        session.players.touch(player.username)
        outcome: ScoreOutcome | None = None
        if isinstance(event, ChatMessageEvent):
            outcome = self.scoring.submit_answer(session, player, event.text)
        elif isinstance(event, GiftEvent):
            self.lifecycle.record_gift(session, player.username, event.giftName, event.repeatCount)

        try:
            if created:
                await self._broadcast(
                    NewPlayerMessage(
                        username=player.username,
                        profileImage=player.profile_image,
                        score=player.score,
                        level=player.level,
                        playSound=True,
                    )
                )
            if outcome is not None and outcome.accepted:
                await self._broadcast_outcome(player.username, player.profile_image, outcome)
        finally:
            if outcome is not None and outcome.won and self._is_live(session):
                self._schedule_timer(session, "winner", 0, self.match.on_win)
        return outcome

    async def _broadcast_outcome(self, username: str, profile_image: str | None, outcome: ScoreOutcome) -> None:
        letter = cast(str, outcome.letter)
        cue_type = CorrectAnswerMessage if outcome.correct else WrongAnswerMessage
        await self._broadcast(
            cue_type(username=username, answer=letter, score=outcome.score, level=outcome.level)
        )
        await self._broadcast(
            PlayerUpdateMessage(
                username=username,
                profileImage=profile_image,
                score=outcome.score,
                level=outcome.level,
            )
        )
        if outcome.leveled_up:
            await self._broadcast(
                LevelUpMessage(username=username, previousLevel=outcome.previous_level, level=outcome.level)
            )

    async def handle_raw_chat_payload(self, payload: Any) -> ScoreOutcome | None:
        event = parse_chat_event(payload)
        if event is None:
            self._increment_stat("chatRejected")
            logger.debug("chat event rejected payload=%r", str(payload)[:200])
            return None
        return await self.handle_chat_event(event)

    # Inactivity sweep

    async def sweep_inactive_players(self, *, at_ms: int | None = None) -> list[str]:
        session = self.session
        if session is None or session.closed:
            return []
        removed = session.players.sweep_inactive(self.config.player_inactivity_ms, at_ms=at_ms)
        for username in removed:
            await self._broadcast(PlayerRemovedMessage(username=username))
        return removed

    async def _sweep_loop(self) -> None:
        interval_s = self.config.inactivity_sweep_interval_ms / 1000
        while True:
            await asyncio.sleep(interval_s)
            try:
                await self.sweep_inactive_players()
            except Exception:
                logger.exception("Inactivity sweep failed")

    def start(self) -> None:
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop(), name="livequiz:sweep")

    async def shutdown(self) -> None:
        task = self._sweep_task
        self._sweep_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.close_session()
        self._displays.clear()

    def get_stats(self) -> dict[str, Any]:
        session = self.session
        session_summary: dict[str, Any] | None = None
        if session is not None:
            session_summary = {
                "sessionId": session.session_id,
                "phase": session.phase,
                "questionNumber": session.question_number,
                "questionsAsked": session.match.questions_asked,
                "players": len(session.players),
                "ended": session.match.ended,
                "winner": session.match.winner,
                "poolIndex": session.pool.index,
                "poolSize": len(session.pool),
            }
        images_stats = self.images.stats() if hasattr(self.images, "stats") else None
        return {
            "displays": len(self._displays),
            "session": session_summary,
            "images": images_stats,
            "stats": dict(self._ws_stats),
        }


runtime = ShowRuntime()
