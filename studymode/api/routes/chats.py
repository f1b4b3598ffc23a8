"""API routes for study chat management."""

from fastapi import APIRouter, Query, status
from sqlalchemy import select

from studymode.api.deps import (
    CurrentUser,
    DbSession,
    get_project_or_404,
    get_user_resource_or_404,
    parse_id_or_404,
)
from studymode.api.routes.messages import fetch_message_page
from studymode.db.models import ChatStatus, StudyChat
from studymode.schemas.chats import (
    ChatCreate,
    ChatListResponse,
    ChatRead,
    ChatUpdate,
    ChatWithMessages,
)

router = APIRouter(prefix="/study/chats", tags=["study-chats"])


async def _get_chat_or_404(db, chat_id: str, user_id) -> StudyChat:
    chat_uuid = parse_id_or_404(chat_id, "Chat not found")
    return await get_user_resource_or_404(db, StudyChat, chat_uuid, user_id, "Chat not found")


@router.get("", response_model=ChatListResponse)
async def list_chats(
    db: DbSession,
    user: CurrentUser,
    project_id: str = Query(alias="projectId"),
):
    """List active chats in a project, most recently active first."""
    project = await get_project_or_404(db, project_id, user.id)

    result = await db.execute(
        select(StudyChat)
        .where(
            StudyChat.project_id == project.id,
            StudyChat.user_id == user.id,
            StudyChat.status == ChatStatus.ACTIVE.value,
        )
        .order_by(StudyChat.last_activity_at.desc())
    )
    chats = result.scalars().all()

    return ChatListResponse(chats=[ChatRead.model_validate(c) for c in chats])


@router.post("", response_model=ChatRead, status_code=status.HTTP_201_CREATED)
async def create_chat(
    request: ChatCreate,
    db: DbSession,
    user: CurrentUser,
):
    """Create an empty chat in a project."""
    project = await get_project_or_404(db, request.project_id, user.id)

    chat = StudyChat(project_id=project.id, user_id=user.id, title=request.title)
    db.add(chat)
    await db.commit()
    await db.refresh(chat)

    return ChatRead.model_validate(chat)


@router.get("/{chat_id}", response_model=ChatWithMessages)
async def get_chat(
    chat_id: str,
    db: DbSession,
    user: CurrentUser,
):
    """Get a chat with its most recent page of messages."""
    chat = await _get_chat_or_404(db, chat_id, user.id)
    page = await fetch_message_page(db, chat.id, user.id)

    return ChatWithMessages(
        **ChatRead.model_validate(chat).model_dump(),
        messages=page.messages,
        has_more=page.has_more,
        next_cursor=page.next_cursor,
    )


@router.patch("/{chat_id}", response_model=ChatRead)
async def update_chat(
    chat_id: str,
    request: ChatUpdate,
    db: DbSession,
    user: CurrentUser,
):
    """Rename or archive a chat."""
    chat = await _get_chat_or_404(db, chat_id, user.id)

    if request.title is not None:
        chat.title = request.title
    if request.status is not None:
        chat.status = request.status

    await db.commit()
    await db.refresh(chat)

    return ChatRead.model_validate(chat)


@router.delete("/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_chat(
    chat_id: str,
    db: DbSession,
    user: CurrentUser,
):
    """Delete a chat and all of its messages."""
    chat = await _get_chat_or_404(db, chat_id, user.id)

    await db.delete(chat)
    await db.commit()

    return None
