"""Pydantic schemas for API request/response validation."""

from studymode.schemas.artifacts import (
    ArtifactListResponse,
    ArtifactProgressUpdate,
    ArtifactRead,
    ArtifactUpdate,
    LessonAnswerRequest,
)
from studymode.schemas.assessments import (
    AssessmentGenerateRequest,
    AssessmentListResponse,
    AssessmentRead,
    AssessmentSettings,
    AssessmentSummary,
    AttemptAnswerRequest,
    AttemptRead,
    AttemptStartResponse,
)
from studymode.schemas.chats import (
    AnswerRequest,
    AnswerResult,
    ChatCreate,
    ChatListResponse,
    ChatRead,
    ChatUpdate,
    ChatWithMessages,
    MessageCreate,
    MessagePage,
    MessageRead,
)
from studymode.schemas.memories import MemoryListResponse, MemoryRead, MemoryUpdate

__all__ = [
    # Chats
    "ChatCreate",
    "ChatRead",
    "ChatUpdate",
    "ChatListResponse",
    "ChatWithMessages",
    # Messages
    "MessageCreate",
    "MessageRead",
    "MessagePage",
    "AnswerRequest",
    "AnswerResult",
    # Memories
    "MemoryRead",
    "MemoryUpdate",
    "MemoryListResponse",
    # Artifacts
    "ArtifactRead",
    "ArtifactUpdate",
    "ArtifactListResponse",
    "ArtifactProgressUpdate",
    "LessonAnswerRequest",
    # Assessments
    "AssessmentSettings",
    "AssessmentGenerateRequest",
    "AssessmentRead",
    "AssessmentSummary",
    "AssessmentListResponse",
    "AttemptRead",
    "AttemptAnswerRequest",
    "AttemptStartResponse",
]
