from __future__ import annotations

import logging
from bisect import bisect_right
from collections.abc import Iterator

from .runtime_types import Player
from .runtime_utils import now_ms

logger = logging.getLogger(__name__)


class PlayerRegistry:
    """Players seen during one match, keyed by chat username.

    Level thresholds are the ascending minimum scores for levels 2..n+1, so a player
    reaches the maximum level ``len(thresholds) + 1`` once the last threshold is met.
    """

    def __init__(self, level_thresholds: tuple[int, ...]) -> None:
        self.level_thresholds = tuple(sorted(level_thresholds))
        self._players: dict[str, Player] = {}

    def __len__(self) -> int:
        return len(self._players)

    def __contains__(self, username: object) -> bool:
        return username in self._players

    def __iter__(self) -> Iterator[Player]:
        return iter(list(self._players.values()))

    @property
    def max_level(self) -> int:
        return len(self.level_thresholds) + 1

    def get(self, username: str) -> Player | None:
        return self._players.get(username)

    def upsert(
        self,
        username: str,
        profile_image: str | None = None,
        *,
        at_ms: int | None = None,
    ) -> tuple[Player, bool]:
        """Return ``(player, created)``; ``created`` is true once per username per match."""
        timestamp = now_ms() if at_ms is None else at_ms
        existing = self._players.get(username)
        if existing is not None:
            if profile_image and not existing.profile_image:
                existing.profile_image = profile_image
            return existing, False

        player = Player(
            username=username,
            profile_image=profile_image,
            last_activity_ms=timestamp,
            joined_at_ms=timestamp,
        )
        self._players[username] = player
        logger.info("player joined username=%s players=%s", username, len(self._players))
        return player, True

    def touch(self, username: str, *, at_ms: int | None = None) -> None:
        player = self._players.get(username)
        if player is None:
            return
        player.last_activity_ms = now_ms() if at_ms is None else at_ms

    def level_for(self, score: int) -> int:
        return 1 + bisect_right(self.level_thresholds, score)

    def min_score_for_level(self, level: int) -> int:
        if level <= 1 or not self.level_thresholds:
            return 0
        index = min(level - 2, len(self.level_thresholds) - 1)
        return self.level_thresholds[index]

    def sweep_inactive(self, max_idle_ms: int, *, at_ms: int | None = None) -> list[str]:
        timestamp = now_ms() if at_ms is None else at_ms
        removed = [
            username
            for username, player in self._players.items()
            if timestamp - player.last_activity_ms > max_idle_ms
        ]
        for username in removed:
            self._players.pop(username, None)
        if removed:
            logger.info("inactive players removed count=%s remaining=%s", len(removed), len(self._players))
        return removed

    def ranked(self) -> list[Player]:
        # sorted() is stable, so equal scores keep join order
        return sorted(self._players.values(), key=lambda player: player.score, reverse=True)

    def reset(self) -> None:
        self._players.clear()
