from __future__ import annotations

import pytest
from pydantic import ValidationError

from livequiz.schemas.chat import ChatMessageEvent, GiftEvent, JoinEvent, parse_chat_event
from livequiz.schemas.display import (
    MatchEndedMessage,
    PodiumEntry,
    StartTimerMessage,
    serialize_display_message,
)


def test_chat_events_are_parsed_by_type():
    chat = parse_chat_event({"type": "chat", "username": "alice", "text": "b", "profileImage": "p.png"})
    join = parse_chat_event({"type": "join", "username": "bob"})
    gift = parse_chat_event({"type": "gift", "username": "carol", "giftName": "Rose", "repeatCount": 5})

    assert isinstance(chat, ChatMessageEvent)
    assert chat.text == "b"
    assert chat.profileImage == "p.png"
    assert isinstance(join, JoinEvent)
    assert isinstance(gift, GiftEvent)
    assert gift.repeatCount == 5


def test_usernames_are_normalized():
    event = parse_chat_event({"type": "join", "username": "  Big   Fan \n"})

    assert event.username == "Big Fan"


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "chat", "username": "   ", "text": "A"},
        {"type": "dance", "username": "alice"},
        {"username": "alice", "text": "A"},
        {"type": "gift", "username": "alice", "repeatCount": 0},
        "A",
    ],
)
def test_invalid_chat_events_are_rejected(payload):
    assert parse_chat_event(payload) is None


def test_display_messages_serialize_with_type_tag():
    assert serialize_display_message(StartTimerMessage(timer=7)) == {"type": "start_timer", "timer": 7.0}


def test_start_timer_requires_positive_duration():
    with pytest.raises(ValidationError):
        StartTimerMessage(timer=0)


def test_match_ended_carries_podium_entries():
    message = MatchEndedMessage(
        winner="alice",
        score=21,
        podium=[PodiumEntry(place=1, username="alice", score=21, level=6)],
    )

    data = serialize_display_message(message)

    assert data["type"] == "match_ended"
    assert data["podium"][0] == {
        "place": 1,
        "username": "alice",
        "profileImage": None,
        "score": 21,
        "level": 6,
    }
