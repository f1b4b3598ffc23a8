"""Pydantic schemas for study artifacts."""

from typing import Any, Literal
from uuid import UUID

from pydantic import Field

from studymode.schemas.base import BaseSchema, IDMixin, TimestampMixin


class ArtifactRead(BaseSchema, IDMixin, TimestampMixin):
    project_id: UUID
    chat_id: UUID | None = None
    type: str
    title: str
    description: str
    content: dict[str, Any]
    status: str
    version: int
    last_edited_by: str
    source_message_id: UUID | None = None


class ArtifactListResponse(BaseSchema):
    artifacts: list[ArtifactRead]


class ArtifactUpdate(BaseSchema):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    status: Literal["active", "archived"] | None = None
    edited_by: Literal["user", "assistant"] = "user"
    # addSections/removeSection/updateSection, addItems/removeItem/updateItem, addCards/removeCard/updateCard
    updates: dict[str, Any] | None = None


class ArtifactProgressUpdate(BaseSchema):
    """study_plan: item_id (+ child_id) and completed. flashcards: card_id and studied."""

    item_id: str | None = None
    child_id: str | None = None
    completed: bool | None = None
    card_id: str | None = None
    studied: bool | None = None


class LessonAnswerRequest(BaseSchema):
    section_id: str = Field(min_length=1)
    answer: Any
