"""
One study-chat turn, from the student's message to the finished assistant reply.

ChatOrchestrator.run is an async generator of event payloads (dicts with a
"type" key) that the route serializes as server-sent events. It owns its own
database session because it outlives the request that started it.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studymode.config import get_settings, sanitize_error
from studymode.db.models import (
    Artifact,
    ArtifactStatus,
    ChatRole,
    Material,
    MaterialStatus,
    StudyChat,
    StudyMemory,
    StudyMessage,
    utcnow,
)
from studymode.services.gemini import FileRef, GeminiClient
from studymode.services.material_files import ensure_material_files, material_file_refs
from studymode.services.prompt_builder import (
    ArtifactView,
    HistoryEntry,
    MemoryView,
    build_chat_prompt,
    build_study_system_prompt,
)
from studymode.services.s3 import S3Service
from studymode.services.tool_calls import ArtifactCreate, parse_tool_calls
from studymode.services.tool_catalog import CatalogVariant, build_function_declarations
from studymode.services.tool_dispatch import ToolDispatcher, TurnOutcome, TurnScope

logger = logging.getLogger(__name__)
settings = get_settings()

DEFAULT_CHAT_TITLE = "New Chat"


@dataclass(frozen=True)
class IncomingFile:
    """A file attached to the student's message, already read into memory."""

    name: str
    mime_type: str
    data: bytes


@dataclass(frozen=True)
class ChatTurn:
    user_id: UUID
    project_id: UUID
    project_name: str
    chat_id: UUID
    chat_title: str
    content: str
    is_new_chat: bool = False
    files: list[IncomingFile] = field(default_factory=list)


@dataclass(frozen=True)
class TurnContext:
    history: list[StudyMessage]
    materials: list[Material]
    memories: list[StudyMemory]
    artifacts: list[Artifact]


def derive_chat_title(text: str, max_chars: int | None = None) -> str:
    max_chars = max_chars or settings.chat_title_max_chars
    text = text.strip()
    if len(text) > max_chars:
        return text[:max_chars] + "..."
    return text


def _event(kind: str, **payload: Any) -> dict[str, Any]:
    return {"type": kind, **payload}


class ChatOrchestrator:
    """Runs a chat turn: persists messages, streams generation and applies tool calls."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: GeminiClient,
        storage: S3Service | None = None,
        catalogue: CatalogVariant = "split",
    ):
        self.session_factory = session_factory
        self.client = client
        self.storage = storage
        self.catalogue = catalogue

    async def _fetch_all(self, stmt) -> list:
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def _load_context(self, turn: ChatTurn) -> TurnContext:
        """Fetch history, materials, memories and artifacts concurrently, one session each."""
        history_stmt = (
            select(StudyMessage)
            .where(
                StudyMessage.chat_id == turn.chat_id,
                StudyMessage.user_id == turn.user_id,
                # Placeholders left behind by failed turns
                or_(StudyMessage.role != ChatRole.ASSISTANT.value, StudyMessage.content != ""),
            )
            .order_by(StudyMessage.created_at.desc(), StudyMessage.id.desc())
            .limit(settings.chat_history_limit)
        )
        materials_stmt = (
            select(Material)
            .where(
                Material.project_id == turn.project_id,
                Material.user_id == turn.user_id,
                Material.status == MaterialStatus.READY.value,
            )
            .order_by(Material.created_at)
        )
        memories_stmt = (
            select(StudyMemory)
            .where(
                StudyMemory.project_id == turn.project_id,
                StudyMemory.user_id == turn.user_id,
                StudyMemory.is_active.is_(True),
            )
            .order_by(StudyMemory.created_at)
        )
        artifacts_stmt = (
            select(Artifact)
            .where(
                Artifact.project_id == turn.project_id,
                Artifact.user_id == turn.user_id,
                Artifact.status == ArtifactStatus.ACTIVE.value,
            )
            .order_by(Artifact.created_at)
        )

        history, materials, memories, artifacts = await asyncio.gather(
            self._fetch_all(history_stmt),
            self._fetch_all(materials_stmt),
            self._fetch_all(memories_stmt),
            self._fetch_all(artifacts_stmt),
        )
        history.reverse()
        return TurnContext(history=history, materials=materials, memories=memories, artifacts=artifacts)

    async def _upload_files(self, files: list[IncomingFile]) -> list[dict[str, Any]]:
        uploaded = []
        for incoming in files:
            logger.info("Uploading chat file %s (%s)", incoming.name, incoming.mime_type)
            result = await self.client.upload_file(incoming.data, incoming.mime_type, incoming.name)
            if incoming.mime_type.startswith(("video/", "audio/")):
                result = await self.client.wait_for_processing(result.name)
            uploaded.append(
                {
                    "name": incoming.name,
                    "mimeType": incoming.mime_type,
                    "size": len(incoming.data),
                    "geminiUri": result.uri,
                    "geminiFileName": result.name,
                }
            )
        return uploaded

    def _build_prompt(self, turn: ChatTurn, context: TurnContext) -> str:
        system_prompt = build_study_system_prompt(
            turn.project_name,
            memories=[MemoryView(category=m.category, content=m.content, id=str(m.id)) for m in context.memories],
            material_names=[m.name for m in context.materials],
            artifacts=[
                ArtifactView(
                    id=str(a.id), type=a.type, title=a.title, description=a.description, content=a.content
                )
                for a in context.artifacts
            ],
            catalogue=self.catalogue,
        )
        history = [
            HistoryEntry(
                role=m.role,
                content=m.content,
                attachments=m.attachments or [],
                inline_question=m.inline_question,
            )
            for m in context.history
        ]
        return build_chat_prompt(system_prompt, history)

    async def run(self, turn: ChatTurn) -> AsyncIterator[dict[str, Any]]:
        """
        Yield the events of one turn in order:
        chat_created?, uploading_files?, files_uploaded?, message_saved, start,
        content*, artifacts_creating?, tool events*, chat_title_updated?,
        message_complete, complete. Any failure ends the stream with an error event.
        """
        async with self.session_factory() as db:
            try:
                if turn.is_new_chat:
                    yield _event("chat_created", chatId=str(turn.chat_id))

                uploaded: list[dict[str, Any]] = []
                if turn.files:
                    yield _event("uploading_files", count=len(turn.files))
                    uploaded = await self._upload_files(turn.files)
                    yield _event("files_uploaded", files=[{"name": f["name"], "mimeType": f["mimeType"]} for f in uploaded])

                user_message = StudyMessage(
                    chat_id=turn.chat_id,
                    user_id=turn.user_id,
                    role=ChatRole.USER.value,
                    content=turn.content.strip() or f"[Attached {len(turn.files)} file(s)]",
                    attachments=uploaded,
                )
                db.add(user_message)
                await db.commit()
                yield _event("message_saved", messageId=str(user_message.id), attachments=uploaded)

                context = await self._load_context(turn)

                assistant_message = StudyMessage(
                    chat_id=turn.chat_id,
                    user_id=turn.user_id,
                    role=ChatRole.ASSISTANT.value,
                    content="",
                )
                db.add(assistant_message)
                await db.commit()
                yield _event("start", messageId=str(assistant_message.id))

                started = time.monotonic()
                fresh = await ensure_material_files(db, context.materials, self.client, self.storage)
                files = material_file_refs(context.materials, fresh)
                files.extend(FileRef(uri=f["geminiUri"], mime_type=f["mimeType"]) for f in uploaded if f["geminiUri"])

                text_parts: list[str] = []
                raw_calls: list[tuple[str, dict[str, Any]]] = []
                async for chunk in self.client.stream(
                    self._build_prompt(turn, context),
                    files,
                    tools=build_function_declarations(self.catalogue),
                ):
                    if chunk.kind == "text":
                        text_parts.append(chunk.text)
                        yield _event("content", content=chunk.text)
                    elif chunk.kind == "function_call":
                        raw_calls.append((chunk.name, chunk.args))
                generation_time_ms = int((time.monotonic() - started) * 1000)

                calls = parse_tool_calls(raw_calls)
                creating = sum(1 for c in calls if isinstance(c, ArtifactCreate))
                if creating:
                    yield _event("artifacts_creating", count=creating)

                dispatcher = ToolDispatcher(
                    db,
                    TurnScope(
                        user_id=turn.user_id,
                        project_id=turn.project_id,
                        chat_id=turn.chat_id,
                        message_id=assistant_message.id,
                    ),
                )
                outcome = TurnOutcome()
                for call in calls:
                    step = await dispatcher.apply(call)
                    if step is None:
                        continue
                    outcome = outcome.merge(step)
                    yield step.event

                assistant_message.content = "".join(text_parts)
                assistant_message.tool_calls = list(outcome.tool_calls)
                assistant_message.artifact_actions = list(outcome.artifact_actions)
                assistant_message.inline_question = outcome.inline_question
                assistant_message.meta = {"generationTimeMs": generation_time_ms}

                chat_values: dict[str, Any] = {
                    "message_count": StudyChat.message_count + 2,
                    "last_activity_at": utcnow(),
                }
                new_title = None
                if turn.chat_title == DEFAULT_CHAT_TITLE:
                    new_title = derive_chat_title(user_message.content)
                    chat_values["title"] = new_title

                await db.execute(
                    update(StudyChat)
                    .where(StudyChat.id == turn.chat_id, StudyChat.user_id == turn.user_id)
                    .values(**chat_values)
                )
                await db.commit()

                if new_title is not None:
                    yield _event("chat_title_updated", chatId=str(turn.chat_id), title=new_title)

                yield _event("message_complete", messageId=str(assistant_message.id))
                yield _event("complete", metadata={"generationTimeMs": generation_time_ms})
                logger.info(
                    "Chat turn complete for chat %s: %d chars, %d tool calls, %dms",
                    turn.chat_id, len(assistant_message.content), len(outcome.tool_calls), generation_time_ms,
                )
            except Exception as e:
                logger.exception("Chat turn failed for chat %s", turn.chat_id)
                await db.rollback()
                yield _event("error", message=sanitize_error(e, generic_message="Failed to generate a response."))
