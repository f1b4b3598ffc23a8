"""Pydantic schemas for tutor memories."""

from uuid import UUID

from pydantic import Field

from studymode.db.models import MemoryCategory
from studymode.schemas.base import BaseSchema, IDMixin, TimestampMixin


class MemoryRead(BaseSchema, IDMixin, TimestampMixin):
    content: str
    category: str
    importance: int
    is_active: bool
    source_chat_id: UUID | None = None


class MemoryListResponse(BaseSchema):
    memories: list[MemoryRead]


class MemoryUpdate(BaseSchema):
    content: str | None = Field(default=None, min_length=1, max_length=500)
    category: MemoryCategory | None = None
    importance: int | None = None
    is_active: bool | None = None
