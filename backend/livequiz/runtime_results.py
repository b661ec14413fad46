from __future__ import annotations

from typing import Any

from .runtime_constants import PODIUM_SIZE
from .runtime_types import Player, ShowSession


def build_podium(session: ShowSession, size: int = PODIUM_SIZE) -> list[Player]:
    """Winner first, then the next best players by score in stable registry order."""
    ranked = session.players.ranked()
    winner_name = session.match.winner
    winner = session.players.get(winner_name) if winner_name else None
    if winner is None:
        return ranked[:size]
    others = [player for player in ranked if player.username != winner.username]
    return [winner, *others[: size - 1]]


def podium_payload(podium: list[Player]) -> list[dict[str, Any]]:
    return [
        {
            "place": index + 1,
            "username": player.username,
            "profileImage": player.profile_image,
            "score": player.score,
            "level": player.level,
        }
        for index, player in enumerate(podium)
    ]


def build_match_result_payload(session: ShowSession, podium: list[Player]) -> dict[str, Any]:
    match = session.match
    return {
        "session_id": session.session_id,
        "winner": match.winner or "",
        "winner_score": match.winner_score,
        "questions_asked": match.questions_asked,
        "player_count": len(session.players),
        "podium": podium_payload(podium),
        "started_at_ms": match.started_at_ms or None,
        "ended_at_ms": match.ended_at_ms,
    }
