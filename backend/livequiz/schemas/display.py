from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class NewQuestionMessage(BaseModel):
    type: Literal["new_question"] = "new_question"
    question: str
    options: list[str]
    image: str | None = None
    backgroundImage: str | None = None
    questionNumber: int = Field(ge=1)
    difficulty: str = "easy"


class StartTimerMessage(BaseModel):
    type: Literal["start_timer"] = "start_timer"
    timer: float = Field(gt=0)


class QuestionEndedMessage(BaseModel):
    type: Literal["question_ended"] = "question_ended"
    correctAnswer: str
    correctOption: str


class ShowCorrectAnswerMessage(BaseModel):
    type: Literal["show_correct_answer"] = "show_correct_answer"
    correctAnswer: str
    correctOption: str


class ShowReadyMessage(BaseModel):
    type: Literal["show_ready"] = "show_ready"
    image: str | None = None


class NewPlayerMessage(BaseModel):
    type: Literal["new_player"] = "new_player"
    username: str
    profileImage: str | None = None
    score: int = 0
    level: int = 1
    playSound: bool = True


class PlayerUpdateMessage(BaseModel):
    type: Literal["player_update"] = "player_update"
    username: str
    profileImage: str | None = None
    score: int
    level: int


class PlayerRemovedMessage(BaseModel):
    type: Literal["player_removed"] = "player_removed"
    username: str


class CorrectAnswerMessage(BaseModel):
    type: Literal["correct_answer"] = "correct_answer"
    username: str
    answer: str
    score: int
    level: int


class WrongAnswerMessage(BaseModel):
    type: Literal["wrong_answer"] = "wrong_answer"
    username: str
    answer: str
    score: int
    level: int


class LevelUpMessage(BaseModel):
    type: Literal["level_up"] = "level_up"
    username: str
    previousLevel: int
    level: int


class PodiumEntry(BaseModel):
    place: int = Field(ge=1)
    username: str
    profileImage: str | None = None
    score: int
    level: int


class MatchStartedMessage(BaseModel):
    type: Literal["match_started"] = "match_started"
    sessionId: str
    levelThresholds: list[int]
    maxLevel: int


class MatchEndedMessage(BaseModel):
    type: Literal["match_ended"] = "match_ended"
    winner: str
    score: int
    podium: list[PodiumEntry]


class SetBackgroundMessage(BaseModel):
    type: Literal["set_background"] = "set_background"
    backgroundImage: str


class PongMessage(BaseModel):
    type: Literal["pong"] = "pong"
    serverTime: int


DisplayMessage = Annotated[
    Union[
        NewQuestionMessage,
        StartTimerMessage,
        QuestionEndedMessage,
        ShowCorrectAnswerMessage,
        ShowReadyMessage,
        NewPlayerMessage,
        PlayerUpdateMessage,
        PlayerRemovedMessage,
        CorrectAnswerMessage,
        WrongAnswerMessage,
        LevelUpMessage,
        MatchStartedMessage,
        MatchEndedMessage,
        SetBackgroundMessage,
        PongMessage,
    ],
    Field(discriminator="type"),
]

display_message_adapter: TypeAdapter[DisplayMessage] = TypeAdapter(DisplayMessage)


def serialize_display_message(message: BaseModel) -> dict[str, object]:
    # Round-trip through the union so only declared message kinds reach the socket.
    validated = display_message_adapter.validate_python(message.model_dump())
    return validated.model_dump(mode="json")
