from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from ..runtime_utils import sanitize_username


class _ChatSourceEventBase(BaseModel):
    username: str = Field(min_length=1, max_length=128)
    profileImage: str | None = Field(default=None, max_length=2048)

    @field_validator("username")
    @classmethod
    def normalize_username(cls, value: str) -> str:
        cleaned = sanitize_username(value)
        if not cleaned:
            raise ValueError("username must not be blank")
        return cleaned


class ChatMessageEvent(_ChatSourceEventBase):
    type: Literal["chat"]
    text: str = Field(default="", max_length=500)


class JoinEvent(_ChatSourceEventBase):
    type: Literal["join"]


class GiftEvent(_ChatSourceEventBase):
    type: Literal["gift"]
    giftName: str = Field(default="gift", max_length=80)
    repeatCount: int = Field(default=1, ge=1, le=10_000)


ChatSourceEvent = Annotated[
    Union[ChatMessageEvent, JoinEvent, GiftEvent],
    Field(discriminator="type"),
]

chat_event_adapter: TypeAdapter[ChatSourceEvent] = TypeAdapter(ChatSourceEvent)


def parse_chat_event(data: Any) -> ChatMessageEvent | JoinEvent | GiftEvent | None:
    try:
        return chat_event_adapter.validate_python(data)
    except ValidationError:
        return None
