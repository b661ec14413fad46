from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from . import database
from .runtime_constants import QUESTION_TIMER_KEYS
from .runtime_results import build_match_result_payload, build_podium, podium_payload
from .runtime_types import MatchState, Player
from .runtime_utils import now_ms
from .schemas.display import (
    MatchEndedMessage,
    MatchStartedMessage,
    NewPlayerMessage,
    PodiumEntry,
)

if TYPE_CHECKING:
    from fastapi import WebSocket

    from .runtime import ShowRuntime
    from .runtime_types import ShowSession

logger = logging.getLogger(__name__)


class MatchController:
    def __init__(self, runtime: "ShowRuntime") -> None:
        self.runtime = runtime

    def podium(self, session: "ShowSession") -> list[Player]:
        # Frozen at the win so later removals cannot change the result.
        if session.match.podium:
            return session.match.podium
        return build_podium(session)

    def match_started_message(self, session: "ShowSession") -> MatchStartedMessage:
        thresholds = session.players.level_thresholds
        return MatchStartedMessage(
            sessionId=session.session_id,
            levelThresholds=list(thresholds),
            maxLevel=session.players.max_level,
        )

    def match_ended_message(self, session: "ShowSession", podium: list[Player]) -> MatchEndedMessage:
        return MatchEndedMessage(
            winner=session.match.winner or "",
            score=session.match.winner_score,
            podium=[PodiumEntry(**entry) for entry in podium_payload(podium)],
        )

    async def on_win(self, session: "ShowSession") -> None:
        match = session.match
        if not match.ended or match.winner is None:
            return

        epoch = session.epoch
        self.runtime._clear_timers(session, QUESTION_TIMER_KEYS)
        session.window = None
        session.current_question = None
        session.phase = "idle"

        podium = [replace(player) for player in build_podium(session)]
        match.podium = podium
        logger.info(
            "match ended session=%s winner=%s score=%s questions=%s",
            session.session_id,
            match.winner,
            match.winner_score,
            match.questions_asked,
        )
        await self.runtime._broadcast(self.match_ended_message(session, podium))
        await self._persist_result(session, podium)
        if not self.runtime._is_live(session, epoch):
            return

        gap_s = self.runtime.config.winner_announcement_gap_ms / 1000
        for index, line in enumerate(self.runtime.texts.winner_lines(podium)):
            if index and gap_s > 0:
                await asyncio.sleep(gap_s)
            if not self.runtime._is_live(session, epoch):
                return
            await self.runtime._narrate(line)
        if not self.runtime._is_live(session, epoch):
            return

        if self.runtime.config.match_restart_mode == "timer":
            self.runtime._schedule_timer(
                session,
                "restart",
                self.runtime.config.match_restart_delay_ms,
                self.reset,
            )
        else:
            logger.info("match restart waits for a display reconnect session=%s", session.session_id)

    async def _persist_result(self, session: "ShowSession", podium: list[Player]) -> None:
        payload = build_match_result_payload(session, podium)
        try:
            await database.save_match_result(**payload)
        except Exception:
            logger.exception("Failed to persist match result for session %s", session.session_id)

    async def reset(self, session: "ShowSession") -> None:
        if session.closed:
            return
        self.runtime._clear_timers(session)
        session.players.reset()
        session.match = MatchState(
            level_thresholds=session.players.level_thresholds,
            started_at_ms=now_ms(),
        )
        session.pool.reset()
        self.runtime.texts.reset_session()
        session.window = None
        session.current_question = None
        session.question_number = 0
        session.recent_gifts.clear()
        session.epoch += 1
        session.phase = "idle"
        logger.info("match reset session=%s epoch=%s", session.session_id, session.epoch)

        await self.runtime._broadcast(self.match_started_message(session))
        if self.runtime._is_live(session):
            self.runtime._schedule_timer(session, "cycle", 0, self.runtime.lifecycle.start_cycle)

    async def send_snapshot(self, session: "ShowSession", websocket: "WebSocket") -> None:
        """Bring a late display up to date; a finished match is replayed as its result."""
        messages: list[Any] = []
        if session.match.ended:
            messages.append(self.match_ended_message(session, self.podium(session)))
        else:
            messages.append(self.match_started_message(session))
            for player in session.players:
                messages.append(
                    NewPlayerMessage(
                        username=player.username,
                        profileImage=player.profile_image,
                        score=player.score,
                        level=player.level,
                        playSound=False,
                    )
                )
        for message in messages:
            await self.runtime._send_message(websocket, message)
