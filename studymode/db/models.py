"""
SQLAlchemy 2.0 Models for Study Mode.

Uses modern declarative syntax with Mapped[] type annotations.
All models use UUID primary keys. Nested, schema-flexible content
(artifact bodies, questions, tool-call records) lives in JSON columns
that map to JSONB on PostgreSQL.
"""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text, Uuid, func, true
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studymode.db.base import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================


class ProjectStatus(str, PyEnum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class MaterialType(str, PyEnum):
    """Kind of study resource."""

    PDF = "pdf"
    IMAGE = "image"
    VIDEO = "video"
    YOUTUBE = "youtube"
    AUDIO = "audio"
    TEXT = "text"
    LINK = "link"


class MaterialStatus(str, PyEnum):
    """Processing state of a material. Only READY materials feed generation."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class ChatStatus(str, PyEnum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class ChatRole(str, PyEnum):
    """Role in chat conversation."""

    USER = "user"
    ASSISTANT = "assistant"


class MemoryCategory(str, PyEnum):
    """What a saved observation about the student is about."""

    PREFERENCE = "preference"
    UNDERSTANDING = "understanding"
    WEAKNESS = "weakness"
    STRENGTH = "strength"
    GOAL = "goal"
    CONTEXT = "context"
    OTHER = "other"


class ArtifactType(str, PyEnum):
    LESSON = "lesson"
    STUDY_PLAN = "study_plan"
    FLASHCARDS = "flashcards"


class ArtifactStatus(str, PyEnum):
    GENERATING = "generating"
    ACTIVE = "active"
    ARCHIVED = "archived"


class EditedBy(str, PyEnum):
    USER = "user"
    ASSISTANT = "assistant"


class QuestionType(str, PyEnum):
    """Question types shared by assessments, lesson sections and inline questions."""

    MULTIPLE_CHOICE = "multiple_choice"
    MULTIPLE_SELECT = "multiple_select"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    LONG_ANSWER = "long_answer"
    FILL_BLANK = "fill_blank"


class AssessmentStatus(str, PyEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class AttemptStatus(str, PyEnum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    GRADED = "graded"


# =============================================================================
# MODELS
# =============================================================================


class User(Base):
    """
    Core user account.

    Accounts are provisioned by the auth service; this table only anchors
    ownership of everything else.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, index=True, nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    projects: Mapped[list["Project"]] = relationship(
        "Project", back_populates="user", cascade="all, delete-orphan"
    )


class Project(Base):
    """
    A course or subject the student is studying.

    Owns materials, chats, memories, artifacts and assessments.
    """

    __tablename__ = "projects"
    __table_args__ = (Index("idx_projects_user_id", "user_id"),)

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProjectStatus.ACTIVE.value, server_default="active"
    )
    # materialCount, assessmentCount
    stats: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="projects")


class Material(Base):
    """
    A processed study resource.

    Either carries extracted text / summary, a YouTube URL, or a reference to a
    file hosted on the generation provider (gemini_uri). The original blob is
    kept in S3 (storage_key) so the provider copy can be refreshed after it
    expires.
    """

    __tablename__ = "materials"
    __table_args__ = (
        Index("idx_materials_project_status", "project_id", "status"),
        Index("idx_materials_user_id", "user_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    project_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MaterialStatus.PENDING.value, server_default="pending"
    )

    # Extracted content
    text_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    youtube_url: Mapped[Optional[str]] = mapped_column(String(), nullable=True)

    # File blob + provider handle
    file_name: Mapped[Optional[str]] = mapped_column(String(), nullable=True)
    file_mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    storage_key: Mapped[Optional[str]] = mapped_column(String(), nullable=True)
    gemini_uri: Mapped[Optional[str]] = mapped_column(String(), nullable=True)
    gemini_file_name: Mapped[Optional[str]] = mapped_column(String(), nullable=True)
    gemini_uploaded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )


class StudyChat(Base):
    """A tutoring conversation inside a project."""

    __tablename__ = "study_chats"
    __table_args__ = (
        Index("idx_study_chats_project_user", "project_id", "user_id"),
        Index("idx_study_chats_last_activity", "last_activity_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    project_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(
        String(200), nullable=False, default="New Chat", server_default="New Chat"
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ChatStatus.ACTIVE.value, server_default="active"
    )
    message_count: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    messages: Mapped[list["StudyMessage"]] = relationship(
        "StudyMessage", back_populates="chat", cascade="all, delete-orphan"
    )


class StudyMessage(Base):
    """
    One message in a study chat.

    Assistant messages are written twice: an empty placeholder when generation
    starts, then the final content plus tool-call records when it completes.
    """

    __tablename__ = "study_messages"
    __table_args__ = (Index("idx_study_messages_chat_created", "chat_id", "created_at", "id"),)

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    chat_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("study_chats.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")

    # [{name, mimeType, size, geminiUri, geminiFileName}]
    attachments: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    # [{tool, data, result}]
    tool_calls: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    # [{artifactId, actionType, artifact: {type, title, description}}]
    artifact_actions: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    inline_question: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    # Microsecond precision orders messages written within the same second
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    chat: Mapped["StudyChat"] = relationship("StudyChat", back_populates="messages")


class StudyMemory(Base):
    """
    Something the tutor learned about the student.

    Written only by tool calls during a chat turn; deactivated rather than
    deleted when the tutor retracts it.
    """

    __tablename__ = "study_memories"
    __table_args__ = (Index("idx_study_memories_project_user_active", "project_id", "user_id", "is_active"),)

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    project_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(String(500), nullable=False)
    category: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MemoryCategory.OTHER.value, server_default="other"
    )
    importance: Mapped[int] = mapped_column(nullable=False, default=3, server_default="3")
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True, server_default=true())
    source_chat_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(), ForeignKey("study_chats.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )


class Artifact(Base):
    """
    A rich study object created by the tutor: lesson, study plan or flashcard set.

    Content shape depends on type:
    - lesson: {"sections": [{id, type: content|question, content? | question?}]}
    - study_plan: {"items": [{id, text, completed?, completedAt?, children: [...]}]}
    - flashcards: {"cards": [{id, front, back, studied?, lastStudiedAt?}]}
    """

    __tablename__ = "artifacts"
    __table_args__ = (
        Index("idx_artifacts_project_user_status", "project_id", "user_id", "status"),
        Index("idx_artifacts_chat_id", "chat_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    project_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    chat_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(), ForeignKey("study_chats.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    content: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ArtifactStatus.ACTIVE.value, server_default="active"
    )
    version: Mapped[int] = mapped_column(nullable=False, default=1, server_default="1")
    last_edited_by: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EditedBy.ASSISTANT.value, server_default="assistant"
    )
    source_message_id: Mapped[Optional[UUID]] = mapped_column(Uuid(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )


class Assessment(Base):
    """A generated quiz: a list of typed questions plus generation settings and attempt stats."""

    __tablename__ = "assessments"
    __table_args__ = (Index("idx_assessments_project_user", "project_id", "user_id"),)

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    project_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    questions: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    settings: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    total_points: Mapped[float] = mapped_column(nullable=False, default=0, server_default="0")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AssessmentStatus.DRAFT.value, server_default="draft"
    )
    # attemptCount, averageScore, highestScore
    stats: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    attempts: Mapped[list["AssessmentAttempt"]] = relationship(
        "AssessmentAttempt", back_populates="assessment", cascade="all, delete-orphan"
    )


class AssessmentAttempt(Base):
    """One sitting of an assessment, graded per answer."""

    __tablename__ = "assessment_attempts"
    __table_args__ = (Index("idx_assessment_attempts_assessment_user", "assessment_id", "user_id"),)

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    assessment_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False
    )
    project_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AttemptStatus.IN_PROGRESS.value, server_default="in_progress"
    )
    # [{questionIndex, answer, isCorrect?, pointsEarned?, aiFeedback?, aiConfidence?}]
    answers: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)

    score_earned: Mapped[float] = mapped_column(nullable=False, default=0, server_default="0")
    score_total: Mapped[float] = mapped_column(nullable=False, default=0, server_default="0")
    score_percentage: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    graded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    time_taken: Mapped[Optional[int]] = mapped_column(nullable=True)  # seconds

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    assessment: Mapped["Assessment"] = relationship("Assessment", back_populates="attempts")
