from __future__ import annotations

from .runtime_types import Question

TIMER_KEYS: tuple[str, ...] = (
    "cycle",
    "question",
    "grace",
    "ready",
    "next",
    "poolRestart",
    "winner",
    "restart",
)
# Timers that drive a question; cancelled when a match is won.
QUESTION_TIMER_KEYS: tuple[str, ...] = ("cycle", "question", "grace", "ready", "next", "poolRestart")

READY_IMAGE = "ready_image.png"
PODIUM_SIZE = 3
MAX_RECENT_GIFTS = 20
MAX_USERNAME_LENGTH = 64
MIN_CACHED_AUDIO_BYTES = 2048
ANNOUNCEMENT_REUSE_RATIO = 0.8

DEFAULT_QUESTION = Question(
    text="Quelle est la capitale de la France?",
    options=("Paris", "Lyon", "Marseille", "Bordeaux"),
    correct_answer="A",
    correct_index=0,
    difficulty="easy",
)

DEFAULT_SHOW_TEXTS: dict[str, object] = {
    "welcome": {"text": "Bonjour à tous ! Bienvenue dans notre quiz."},
    "goodbye": {"text": "Merci à tous d'avoir participé à notre quiz !"},
    "defaultBackground": {"theme": ""},
    "answerAnnouncements": [
        "The correct answer is {letter}: {answer}",
        "And the right answer was {letter}, {answer}!",
        "It was {letter}: {answer}. Well done if you got it!",
    ],
    "encouragements": [
        "Keep your answers coming in the chat!",
        "Type A, B, C or D in the chat to play!",
    ],
    "giftThanks": {
        "single": [
            "Thank you for the {gift} {user}, glad you enjoy the stream!",
            "Thanks {user} for the {gift}, really appreciate it!",
        ],
        "multipleGifts": [
            "Thank you for the gifts {user}, you're amazing!",
            "Thanks {user} for all the gifts, really appreciate it!",
        ],
        "multipleUsers": [
            "Thank you {users} for the gifts, keep them coming!",
            "Thanks {users} for all the gifts, you're all amazing!",
        ],
    },
    "winner": {
        "champion": "Congratulations! {winner} is our champion with {points} points!",
        "second": "In second place, we have {user} with {points} points.",
        "third": "And in third place, {user} with {points} points.",
        "follow": "Don't forget to follow the winner!",
        "thanks": "Let's keep going!",
    },
}
