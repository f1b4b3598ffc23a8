"""
Apply parsed tool calls for one assistant message.

Each command maps to exactly one handler. A handler performs its write,
scoped to the turn's user and project, and returns a ToolStep describing what
happened: the record stored on the message, the event streamed to the
client, and optionally an artifact action or inline question. Steps are
folded into a TurnOutcome in the order the model issued the calls.
"""

import logging
from dataclasses import dataclass
from typing import Any, assert_never
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from studymode.db.models import Artifact, ArtifactStatus, EditedBy, StudyMemory
from studymode.services.artifact_content import apply_artifact_updates, normalize_artifact_content
from studymode.services.tool_calls import (
    ArtifactCreate,
    ArtifactDelete,
    ArtifactUpdate,
    MemoryCreate,
    MemoryDelete,
    MemoryUpdate,
    QuestionCreate,
    ToolCall,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnScope:
    """Who and where a turn's writes belong to."""

    user_id: UUID
    project_id: UUID
    chat_id: UUID
    message_id: UUID


@dataclass(frozen=True)
class ToolStep:
    record: dict[str, Any]
    event: dict[str, Any]
    artifact_action: dict[str, Any] | None = None
    inline_question: dict[str, Any] | None = None


@dataclass(frozen=True)
class TurnOutcome:
    tool_calls: tuple[dict[str, Any], ...] = ()
    artifact_actions: tuple[dict[str, Any], ...] = ()
    inline_question: dict[str, Any] | None = None

    def merge(self, step: ToolStep) -> "TurnOutcome":
        actions = self.artifact_actions
        if step.artifact_action is not None:
            actions = actions + (step.artifact_action,)
        return TurnOutcome(
            tool_calls=self.tool_calls + (step.record,),
            artifact_actions=actions,
            # Last question in the response wins
            inline_question=step.inline_question or self.inline_question,
        )


def serialize_artifact(artifact: Artifact) -> dict[str, Any]:
    return {
        "id": str(artifact.id),
        "type": artifact.type,
        "title": artifact.title,
        "description": artifact.description,
        "content": artifact.content,
        "status": artifact.status,
    }


def _artifact_action(artifact: Artifact, action_type: str) -> dict[str, Any]:
    return {
        "artifactId": str(artifact.id),
        "actionType": action_type,
        "artifact": {
            "type": artifact.type,
            "title": artifact.title,
            "description": artifact.description,
        },
    }


def _record(call: ToolCall, result: dict[str, Any]) -> dict[str, Any]:
    return {"tool": call.source_name or call.tool, "data": call.raw_args, "result": result}


class ToolDispatcher:
    """Runs tool commands against the database for a single assistant message."""

    def __init__(self, db: AsyncSession, scope: TurnScope):
        self.db = db
        self.scope = scope

    async def apply(self, call: ToolCall) -> ToolStep | None:
        """Apply one command. Returns None when the target does not exist for this user and project."""
        if isinstance(call, MemoryCreate):
            return await self._memory_create(call)
        elif isinstance(call, MemoryUpdate):
            return await self._memory_update(call)
        elif isinstance(call, MemoryDelete):
            return await self._memory_delete(call)
        elif isinstance(call, QuestionCreate):
            return self._question_create(call)
        elif isinstance(call, ArtifactCreate):
            return await self._artifact_create(call)
        elif isinstance(call, ArtifactUpdate):
            return await self._artifact_update(call)
        elif isinstance(call, ArtifactDelete):
            return await self._artifact_delete(call)
        else:
            assert_never(call)

    # -------------------------------------------------------------------------
    # Memories
    # -------------------------------------------------------------------------

    async def _memory_create(self, call: MemoryCreate) -> ToolStep:
        memory = StudyMemory(
            project_id=self.scope.project_id,
            user_id=self.scope.user_id,
            content=call.content,
            category=call.category.value,
            importance=call.importance,
            source_chat_id=self.scope.chat_id,
        )
        self.db.add(memory)
        await self.db.commit()

        result = {"memoryId": str(memory.id)}
        record = _record(call, result)
        return ToolStep(record=record, event={"type": "tool_call", **record})

    async def _set_memory(self, memory_id: str, **values: Any) -> None:
        await self.db.execute(
            update(StudyMemory)
            .where(
                StudyMemory.id == UUID(memory_id),
                StudyMemory.user_id == self.scope.user_id,
                StudyMemory.project_id == self.scope.project_id,
            )
            .values(**values)
        )
        await self.db.commit()

    async def _memory_update(self, call: MemoryUpdate) -> ToolStep:
        await self._set_memory(call.memory_id, content=call.content)
        record = _record(call, {"success": True})
        return ToolStep(record=record, event={"type": "tool_call", "tool": record["tool"], "data": record["data"]})

    async def _memory_delete(self, call: MemoryDelete) -> ToolStep:
        await self._set_memory(call.memory_id, is_active=False)
        record = _record(call, {"success": True})
        return ToolStep(record=record, event={"type": "tool_call", "tool": record["tool"], "data": record["data"]})

    # -------------------------------------------------------------------------
    # Inline questions
    # -------------------------------------------------------------------------

    def _question_create(self, call: QuestionCreate) -> ToolStep:
        question = {
            "id": str(uuid4()),
            "type": call.type.value,
            "question": call.question,
            "options": call.options,
            "correctAnswer": call.correct_answer,
            "explanation": call.explanation,
            "hint": call.hint,
        }
        return ToolStep(
            record=_record(call, {"questionId": question["id"]}),
            event={"type": "question", "data": question},
            inline_question=question,
        )

    # -------------------------------------------------------------------------
    # Artifacts
    # -------------------------------------------------------------------------

    async def _get_owned_artifact(self, artifact_id: str) -> Artifact | None:
        result = await self.db.execute(
            select(Artifact).where(
                Artifact.id == UUID(artifact_id),
                Artifact.user_id == self.scope.user_id,
                Artifact.project_id == self.scope.project_id,
            )
        )
        return result.scalar_one_or_none()

    async def _artifact_create(self, call: ArtifactCreate) -> ToolStep:
        artifact_type = call.artifact_type.value
        artifact = Artifact(
            project_id=self.scope.project_id,
            chat_id=self.scope.chat_id,
            user_id=self.scope.user_id,
            type=artifact_type,
            title=call.title,
            description=call.description,
            content=normalize_artifact_content(artifact_type, call.content),
            status=ArtifactStatus.ACTIVE.value,
            version=1,
            last_edited_by=EditedBy.ASSISTANT.value,
            source_message_id=self.scope.message_id,
        )
        self.db.add(artifact)
        await self.db.commit()
        logger.info("Created %s artifact %s for chat %s", artifact_type, artifact.id, self.scope.chat_id)

        return ToolStep(
            record=_record(call, {"artifactId": str(artifact.id)}),
            event={"type": "artifact_created", "artifactId": str(artifact.id), "artifact": serialize_artifact(artifact)},
            artifact_action=_artifact_action(artifact, "created"),
        )

    async def _artifact_update(self, call: ArtifactUpdate) -> ToolStep | None:
        artifact = await self._get_owned_artifact(call.artifact_id)
        if artifact is None:
            logger.warning("artifact_update target %s not found for user %s", call.artifact_id, self.scope.user_id)
            return None

        updates = call.updates
        if isinstance(updates.get("title"), str) and updates["title"]:
            artifact.title = updates["title"]
        if isinstance(updates.get("description"), str):
            artifact.description = updates["description"]
        artifact.content = apply_artifact_updates(artifact.type, artifact.content, updates)
        artifact.version = artifact.version + 1
        artifact.last_edited_by = EditedBy.ASSISTANT.value
        await self.db.commit()

        return ToolStep(
            record=_record(call, {"success": True}),
            event={"type": "artifact_updated", "artifactId": call.artifact_id, "artifact": serialize_artifact(artifact)},
            artifact_action=_artifact_action(artifact, "updated"),
        )

    async def _artifact_delete(self, call: ArtifactDelete) -> ToolStep | None:
        artifact = await self._get_owned_artifact(call.artifact_id)
        if artifact is None:
            logger.warning("artifact_delete target %s not found for user %s", call.artifact_id, self.scope.user_id)
            return None

        artifact.status = ArtifactStatus.ARCHIVED.value
        await self.db.commit()

        return ToolStep(
            record=_record(call, {"success": True}),
            event={"type": "artifact_deleted", "artifactId": call.artifact_id},
            artifact_action=_artifact_action(artifact, "deleted"),
        )
