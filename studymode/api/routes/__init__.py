"""API routes package."""

from studymode.api.routes import (
    artifacts,
    assessments,
    chats,
    memories,
    messages,
)

__all__ = [
    "artifacts",
    "assessments",
    "chats",
    "memories",
    "messages",
]
