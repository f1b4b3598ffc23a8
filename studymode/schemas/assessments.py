"""Pydantic schemas for assessments and attempts."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import Field

from studymode.db.models import QuestionType
from studymode.schemas.base import BaseSchema, IDMixin, TimestampMixin

Difficulty = Literal["easy", "medium", "hard", "mixed"]


class AssessmentSettings(BaseSchema):
    """Generation settings as sent by the client."""

    question_count: int = Field(default=10, ge=5, le=30)
    question_types: list[QuestionType] = Field(
        default_factory=lambda: [QuestionType.MULTIPLE_CHOICE], min_length=1
    )
    difficulty: Difficulty = "medium"
    focus_topics: list[str] = Field(default_factory=list)
    custom_instructions: str = ""
    material_ids: list[UUID] = Field(default_factory=list)
    title: str | None = None


class AssessmentGenerateRequest(BaseSchema):
    project_id: UUID
    settings: AssessmentSettings = Field(default_factory=AssessmentSettings)


class AssessmentRead(BaseSchema, IDMixin, TimestampMixin):
    project_id: UUID
    title: str
    description: str
    questions: list[dict[str, Any]]
    settings: dict[str, Any]
    total_points: float
    status: str
    stats: dict[str, Any]


class AssessmentSummary(BaseSchema, IDMixin, TimestampMixin):
    """List view without the question bodies."""

    project_id: UUID
    title: str
    description: str
    total_points: float
    status: str
    stats: dict[str, Any]


class AssessmentListResponse(BaseSchema):
    assessments: list[AssessmentSummary]


class AttemptRead(BaseSchema, IDMixin, TimestampMixin):
    assessment_id: UUID
    status: str
    answers: list[dict[str, Any]]
    score_earned: float
    score_total: float
    score_percentage: int
    started_at: datetime
    submitted_at: datetime | None = None
    graded_at: datetime | None = None
    time_taken: int | None = None


class AttemptAnswerRequest(BaseSchema):
    question_index: int = Field(ge=0)
    # str, list[str] or bool depending on the question type
    answer: Any = Field(default=None)


class AttemptStartResponse(BaseSchema):
    attempt: AttemptRead
    resumed: bool
