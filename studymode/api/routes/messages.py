"""API routes for chat messages: paging, sending (streamed) and answering inline questions."""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import ValidationError
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sse_starlette.sse import EventSourceResponse
from starlette.datastructures import UploadFile

from studymode.api.deps import (
    CurrentUser,
    DbSession,
    GenerationClient,
    SessionFactory,
    get_project_or_404,
    get_user_resource_or_404,
    parse_id_or_404,
)
from studymode.config import get_settings
from studymode.db.models import Project, StudyChat, StudyMessage, utcnow
from studymode.schemas.chats import AnswerRequest, AnswerResult, MessageCreate, MessagePage, MessageRead
from studymode.services.chat_orchestrator import (
    DEFAULT_CHAT_TITLE,
    ChatOrchestrator,
    ChatTurn,
    IncomingFile,
)
from studymode.services.grading import check_answer

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/study", tags=["study-messages"])


# =============================================================================
# HELPERS
# =============================================================================


async def fetch_message_page(
    db: AsyncSession,
    chat_id: UUID,
    user_id: UUID,
    limit: int | None = None,
    before: UUID | None = None,
) -> MessagePage:
    """
    Return up to `limit` messages older than `before`, in chronological order.

    Messages are ordered by (created_at, id) so the cursor is exact even when
    two messages share a timestamp. One extra row is fetched to know whether
    an older page exists.
    """
    limit = limit or settings.message_page_default

    stmt = select(StudyMessage).where(StudyMessage.chat_id == chat_id, StudyMessage.user_id == user_id)

    if before is not None:
        cursor_result = await db.execute(
            select(StudyMessage.created_at, StudyMessage.id).where(
                StudyMessage.id == before,
                StudyMessage.chat_id == chat_id,
                StudyMessage.user_id == user_id,
            )
        )
        cursor = cursor_result.one_or_none()
        if cursor is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid cursor")
        stmt = stmt.where(
            or_(
                StudyMessage.created_at < cursor.created_at,
                and_(StudyMessage.created_at == cursor.created_at, StudyMessage.id < cursor.id),
            )
        )

    result = await db.execute(
        stmt.order_by(StudyMessage.created_at.desc(), StudyMessage.id.desc()).limit(limit + 1)
    )
    rows = list(result.scalars().all())

    has_more = len(rows) > limit
    rows = rows[:limit]
    rows.reverse()

    return MessagePage(
        messages=[MessageRead.model_validate(m) for m in rows],
        has_more=has_more,
        next_cursor=rows[0].id if has_more and rows else None,
    )


async def _read_message_body(request: Request) -> tuple[str, list[IncomingFile]]:
    """Accept either a JSON body or multipart form data with `content` and `file_*` parts."""
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        content = form.get("content")
        files = []
        for key, value in form.multi_items():
            if key.startswith("file_") and isinstance(value, UploadFile):
                data = await value.read()
                if len(data) > settings.max_upload_bytes:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail=f"File {value.filename} is too large",
                    )
                files.append(
                    IncomingFile(
                        name=value.filename or key,
                        mime_type=value.content_type or "application/octet-stream",
                        data=data,
                    )
                )
        return (content if isinstance(content, str) else ""), files

    try:
        body = MessageCreate.model_validate(await request.json())
    except (json.JSONDecodeError, ValidationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid message body")
    return body.content, []


async def _sse_events(events: AsyncIterator[dict[str, Any]]) -> AsyncIterator[dict[str, str]]:
    try:
        async for event in events:
            yield {"data": json.dumps(event, default=str)}
    finally:
        logger.debug("Chat event stream closed")


# =============================================================================
# MESSAGES
# =============================================================================


@router.get("/chats/{chat_id}/messages", response_model=MessagePage)
async def list_messages(
    chat_id: str,
    db: DbSession,
    user: CurrentUser,
    limit: int | None = Query(default=None, ge=1),
    before: str | None = None,
):
    """Page backwards through a chat's messages. Pass `nextCursor` as `before` for older pages."""
    chat_uuid = parse_id_or_404(chat_id, "Chat not found")
    chat = await get_user_resource_or_404(db, StudyChat, chat_uuid, user.id, "Chat not found")

    limit = min(limit or settings.message_page_default, settings.message_page_max)
    before_id = None
    if before:
        try:
            before_id = UUID(before)
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid cursor")

    return await fetch_message_page(db, chat.id, user.id, limit=limit, before=before_id)


@router.post("/chats/{chat_id}/messages")
async def send_message(
    chat_id: str,
    request: Request,
    db: DbSession,
    user: CurrentUser,
    session_factory: SessionFactory,
    client: GenerationClient,
    project_id: str | None = Query(default=None, alias="projectId"),
):
    """
    Send a message and stream the tutor's reply as Server-Sent Events.

    `chat_id` may be "new" (with a `projectId` query parameter) to start a chat.
    Each event is a JSON object with a `type`: chat_created, uploading_files,
    files_uploaded, message_saved, start, content, artifacts_creating,
    tool_call, question, artifact_created, artifact_updated, artifact_deleted,
    chat_title_updated, message_complete, complete or error.
    """
    content, files = await _read_message_body(request)
    if not content.strip() and not files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Message content or files required",
        )

    is_new_chat = chat_id == "new"
    if is_new_chat:
        if not project_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="projectId is required for new chats",
            )
        project = await get_project_or_404(db, project_id, user.id)
        chat = StudyChat(project_id=project.id, user_id=user.id, title=DEFAULT_CHAT_TITLE)
        db.add(chat)
        # Committed before streaming: the stream writes messages on its own session
        await db.commit()
    else:
        chat_uuid = parse_id_or_404(chat_id, "Chat not found")
        chat = await get_user_resource_or_404(db, StudyChat, chat_uuid, user.id, "Chat not found")
        project = await get_user_resource_or_404(db, Project, chat.project_id, user.id, "Project not found")

    turn = ChatTurn(
        user_id=user.id,
        project_id=project.id,
        project_name=project.name,
        chat_id=chat.id,
        chat_title=chat.title,
        content=content,
        is_new_chat=is_new_chat,
        files=files,
    )
    orchestrator = ChatOrchestrator(session_factory, client)

    return EventSourceResponse(_sse_events(orchestrator.run(turn)), sep="\n")


@router.post("/messages/{message_id}/answer", response_model=AnswerResult)
async def answer_inline_question(
    message_id: str,
    request: AnswerRequest,
    db: DbSession,
    user: CurrentUser,
):
    """Grade the student's answer to a message's inline question and record it."""
    message_uuid = parse_id_or_404(message_id, "Message not found")
    message = await get_user_resource_or_404(db, StudyMessage, message_uuid, user.id, "Message not found")

    question = message.inline_question
    if not question:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No question in this message")
    if question.get("userAnswer") is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Question already answered")

    is_correct = check_answer(question.get("type", ""), request.answer, question.get("correctAnswer"))

    message.inline_question = {
        **question,
        "userAnswer": request.answer,
        "answeredAt": utcnow().isoformat(),
        "isCorrect": is_correct,
    }
    await db.commit()

    return AnswerResult(
        is_correct=is_correct,
        correct_answer=question.get("correctAnswer"),
        explanation=question.get("explanation") or "",
    )
