from __future__ import annotations

import copy
import json
import logging
import random
from pathlib import Path
from typing import Any, cast

from .runtime_constants import ANNOUNCEMENT_REUSE_RATIO, DEFAULT_SHOW_TEXTS
from .runtime_types import GiftRecord, Player
from .runtime_utils import format_message

logger = logging.getLogger(__name__)


def _text_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    texts: list[str] = []
    for item in value:
        # Entries may be plain strings or {"id": ..., "text": ...} objects.
        raw = item.get("text") if isinstance(item, dict) else item
        text = str(raw or "").strip()
        if text:
            texts.append(text)
    return texts


def _nested_text(payload: dict[str, Any], key: str, field: str = "text") -> str:
    value = payload.get(key)
    if isinstance(value, dict):
        return str(value.get(field) or "").strip()
    if isinstance(value, str) and field == "text":
        return value.strip()
    return ""


class RotatingPicker:
    """Random choice that avoids repeats until most entries have been used."""

    def __init__(self, items: list[str], rng: random.Random | None = None) -> None:
        self.items = list(items)
        self._rng = rng or random.Random()
        self._used: set[int] = set()

    def pick(self) -> str | None:
        if not self.items:
            return None
        if len(self._used) >= len(self.items) * ANNOUNCEMENT_REUSE_RATIO:
            self._used.clear()
        available = [index for index in range(len(self.items)) if index not in self._used]
        if not available:
            self._used.clear()
            available = list(range(len(self.items)))
        index = self._rng.choice(available)
        self._used.add(index)
        return self.items[index]

    def reset(self) -> None:
        self._used.clear()


class ShowTexts:
    def __init__(self, payload: dict[str, Any] | None = None, rng: random.Random | None = None) -> None:
        merged: dict[str, Any] = copy.deepcopy(DEFAULT_SHOW_TEXTS)
        for key, value in (payload or {}).items():
            if value is not None:
                merged[key] = value
        self._rng = rng or random.Random()

        self.welcome = _nested_text(merged, "welcome")
        self.goodbye = _nested_text(merged, "goodbye")
        self.default_background_theme = _nested_text(merged, "defaultBackground", "theme")
        self.goodbye_background_theme = _nested_text(merged, "goodbye", "backgroundTheme")

        self.answer_announcements = RotatingPicker(_text_list(merged.get("answerAnnouncements")), self._rng)
        self.encouragements = RotatingPicker(_text_list(merged.get("encouragements")), self._rng)

        gift_thanks = merged.get("giftThanks") if isinstance(merged.get("giftThanks"), dict) else {}
        self.gift_single = _text_list(gift_thanks.get("single"))
        self.gift_multiple_gifts = _text_list(gift_thanks.get("multipleGifts"))
        self.gift_multiple_users = _text_list(gift_thanks.get("multipleUsers"))

        winner = merged.get("winner") if isinstance(merged.get("winner"), dict) else {}
        default_winner = cast(dict[str, str], DEFAULT_SHOW_TEXTS["winner"])
        self.winner_templates = {
            key: str(winner.get(key, default_winner.get(key, "")) or "").strip()
            for key in ("champion", "second", "third", "follow", "thanks")
        }

    def answer_announcement(self, letter: str, option: str) -> str:
        template = self.answer_announcements.pick() or "The correct answer is {letter}: {answer}"
        return format_message(template, letter=letter, answer=option)

    def encouragement(self, recent_gifts: list[GiftRecord]) -> str | None:
        if recent_gifts:
            gift_phrase = self.gift_thanks(recent_gifts)
            if gift_phrase:
                return gift_phrase
        return self.encouragements.pick()

    def gift_thanks(self, gifts: list[GiftRecord]) -> str | None:
        users = list(dict.fromkeys(gift.username for gift in gifts))
        gift_names = list(dict.fromkeys(gift.gift_name for gift in gifts))
        if not users:
            return None
        if len(users) > 1:
            templates = self.gift_multiple_users
        elif len(gift_names) > 1:
            templates = self.gift_multiple_gifts
        else:
            templates = self.gift_single
        if not templates:
            return None
        return format_message(
            self._rng.choice(templates),
            user=users[0],
            users=", ".join(users),
            gift=gift_names[0],
        )

    def winner_lines(self, podium: list[Player]) -> list[str]:
        if not podium:
            return []
        winner = podium[0]
        announcement = format_message(
            self.winner_templates["champion"],
            winner=winner.username,
            points=winner.score,
        )
        for player, key in zip(podium[1:3], ("second", "third")):
            template = self.winner_templates[key]
            if template:
                announcement += " " + format_message(template, user=player.username, points=player.score)

        lines = [announcement.strip()]
        follow = format_message(self.winner_templates["follow"], winner=winner.username)
        if follow:
            lines.append(follow)
        if self.winner_templates["thanks"]:
            lines.append(self.winner_templates["thanks"])
        return lines

    def reset_session(self) -> None:
        self.answer_announcements.reset()
        self.encouragements.reset()


def load_show_texts(path: Path) -> ShowTexts:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.info("Show texts file %s not found, using built-in texts", path)
        return ShowTexts()
    except Exception as exc:
        logger.error("Failed to load show texts from %s: %s; using built-in texts", path, exc)
        return ShowTexts()

    if not isinstance(payload, dict):
        logger.error("Show texts file %s must contain an object; using built-in texts", path)
        return ShowTexts()
    return ShowTexts(payload)
