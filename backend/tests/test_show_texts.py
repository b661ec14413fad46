from __future__ import annotations

import random

from livequiz.runtime_constants import DEFAULT_SHOW_TEXTS
from livequiz.runtime_types import GiftRecord, Player
from livequiz.show_texts import RotatingPicker, ShowTexts, load_show_texts


def test_picker_does_not_repeat_before_most_items_are_used():
    picker = RotatingPicker(["a", "b", "c", "d", "e"], random.Random(11))

    picks = [picker.pick() for _ in range(4)]

    assert len(set(picks)) == 4


def test_picker_on_empty_list_returns_none():
    assert RotatingPicker([]).pick() is None


def test_answer_announcement_fills_placeholders():
    texts = ShowTexts({"answerAnnouncements": [{"id": 1, "text": "It was {letter}: {answer}"}]})

    assert texts.answer_announcement("B", "Lyon") == "It was B: Lyon"


def test_gift_thanks_take_priority_over_encouragements():
    texts = ShowTexts(
        {
            "encouragements": ["Keep going!"],
            "giftThanks": {
                "single": ["Thanks {user} for the {gift}"],
                "multipleGifts": ["Thanks {user} for all the gifts"],
                "multipleUsers": ["Thanks {users}"],
            },
        },
        random.Random(1),
    )
    one = [GiftRecord("ann", "Rose", 1, 0)]
    many_gifts = [GiftRecord("ann", "Rose", 1, 0), GiftRecord("ann", "Lion", 1, 0)]
    many_users = [GiftRecord("ann", "Rose", 1, 0), GiftRecord("ben", "Rose", 1, 0)]

    assert texts.encouragement(one) == "Thanks ann for the Rose"
    assert texts.encouragement(many_gifts) == "Thanks ann for all the gifts"
    assert texts.encouragement(many_users) == "Thanks ann, ben"
    assert texts.encouragement([]) == "Keep going!"


def test_winner_lines_cover_the_podium():
    texts = ShowTexts(
        {
            "winner": {
                "champion": "{winner} wins with {points}.",
                "second": "{user} second with {points}.",
                "third": "{user} third with {points}.",
                "follow": "Follow {winner}!",
                "thanks": "Thanks all!",
            }
        }
    )
    podium = [Player("ann", score=21, level=6), Player("ben", score=9, level=3), Player("cid", score=4, level=3)]

    assert texts.winner_lines(podium) == [
        "ann wins with 21. ben second with 9. cid third with 4.",
        "Follow ann!",
        "Thanks all!",
    ]
    assert texts.winner_lines([]) == []


def test_missing_texts_file_uses_defaults(tmp_path):
    texts = load_show_texts(tmp_path / "nope.json")

    assert texts.welcome
    assert texts.goodbye
    assert texts.answer_announcements.items


def test_partial_winner_texts_fall_back_per_key():
    texts = ShowTexts({"winner": {"champion": "{winner} takes it."}})

    assert texts.winner_templates["champion"] == "{winner} takes it."
    for key in ("second", "third", "follow", "thanks"):
        assert texts.winner_templates[key] == DEFAULT_SHOW_TEXTS["winner"][key].strip()
