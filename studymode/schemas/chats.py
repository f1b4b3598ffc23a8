"""Pydantic schemas for study chats and their messages."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import Field

from studymode.schemas.base import BaseSchema, IDMixin, TimestampMixin


class ChatCreate(BaseSchema):
    project_id: UUID
    title: str = Field(default="New Chat", min_length=1, max_length=200)


class ChatUpdate(BaseSchema):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    status: Literal["active", "archived"] | None = None


class ChatRead(BaseSchema, IDMixin, TimestampMixin):
    project_id: UUID
    title: str
    status: str
    message_count: int
    last_activity_at: datetime


class ChatListResponse(BaseSchema):
    chats: list[ChatRead]


class MessageCreate(BaseSchema):
    """JSON body for sending a message; multipart requests carry the same field as a form part."""

    content: str = Field(default="", max_length=20000)


class MessageRead(BaseSchema, IDMixin):
    chat_id: UUID
    role: str
    content: str
    attachments: list[dict[str, Any]]
    tool_calls: list[dict[str, Any]]
    artifact_actions: list[dict[str, Any]]
    inline_question: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="meta")
    created_at: datetime


class MessagePage(BaseSchema):
    messages: list[MessageRead]
    has_more: bool
    next_cursor: UUID | None = None


class ChatWithMessages(ChatRead):
    messages: list[MessageRead]
    has_more: bool
    next_cursor: UUID | None = None


class AnswerRequest(BaseSchema):
    # str, list[str] or bool depending on the question type
    answer: Any


class AnswerResult(BaseSchema):
    is_correct: bool
    correct_answer: Any = None
    explanation: str = ""
