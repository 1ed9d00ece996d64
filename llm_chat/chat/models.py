"""Chat data models."""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

Role = Literal["system", "user", "assistant"]


class Message(BaseModel):
    """Chat message model."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class Conversation(BaseModel):
    """A named, ordered list of messages."""

    name: str
    messages: list[Message] = Field(default_factory=list)


UserChats = dict[str, Conversation]
"""All conversations of one user, keyed by chat id."""


class MessagePayload(BaseModel):
    """Object form of an incoming message; the role defaults to ``user``."""

    role: Role = "user"
    content: str = ""

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, v: Any) -> str:
        if isinstance(v, str):
            return v
        if v is None:
            return ""
        return json.dumps(v, ensure_ascii=False)


IncomingMessage = StrictStr | MessagePayload
"""A client message: either bare text or a ``{role, content}`` object."""


def normalize_message(item: IncomingMessage) -> Message:
    """Turn one incoming message into a stored ``Message``."""
    if isinstance(item, str):
        return Message(role="user", content=item)
    return Message(role=item.role, content=item.content)


def normalize_messages(items: list[IncomingMessage]) -> list[Message]:
    return [normalize_message(item) for item in items]


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: StrictStr = Field(alias="userId", min_length=1)
    chat_id: StrictStr = Field(alias="chatId", min_length=1)
    messages: list[IncomingMessage] = Field(default_factory=list)

    @field_validator("messages", mode="before")
    @classmethod
    def _null_messages(cls, v: Any) -> Any:
        return [] if v is None else v


class CreateConversationRequest(BaseModel):
    """Body of ``POST /api/conversations``."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: StrictStr = Field(alias="userId", min_length=1)
    chat_id: StrictStr | None = Field(default=None, alias="chatId", min_length=1)
    name: StrictStr | None = Field(default=None, min_length=1, max_length=200)


class ChatSummary(BaseModel):
    """Entry of the conversation list."""

    model_config = ConfigDict(populate_by_name=True)

    chat_id: str = Field(alias="chatId")
    name: str


class HistoryResponse(BaseModel):
    history: list[Message]


class ConversationsResponse(BaseModel):
    chats: list[ChatSummary]
