"""API routes for reviewing and editing what the tutor remembers."""

from fastapi import APIRouter, Query, status
from sqlalchemy import select

from studymode.api.deps import (
    CurrentUser,
    DbSession,
    get_project_or_404,
    get_user_resource_or_404,
    parse_id_or_404,
)
from studymode.db.models import StudyMemory
from studymode.schemas.memories import MemoryListResponse, MemoryRead, MemoryUpdate

router = APIRouter(prefix="/study/memories", tags=["study-memories"])


async def _get_memory_or_404(db, memory_id: str, user_id) -> StudyMemory:
    memory_uuid = parse_id_or_404(memory_id, "Memory not found")
    return await get_user_resource_or_404(db, StudyMemory, memory_uuid, user_id, "Memory not found")


@router.get("", response_model=MemoryListResponse)
async def list_memories(
    db: DbSession,
    user: CurrentUser,
    project_id: str = Query(alias="projectId"),
):
    """List active memories for a project, newest first."""
    project = await get_project_or_404(db, project_id, user.id)

    result = await db.execute(
        select(StudyMemory)
        .where(
            StudyMemory.project_id == project.id,
            StudyMemory.user_id == user.id,
            StudyMemory.is_active.is_(True),
        )
        .order_by(StudyMemory.created_at.desc())
    )
    memories = result.scalars().all()

    return MemoryListResponse(memories=[MemoryRead.model_validate(m) for m in memories])


@router.patch("/{memory_id}", response_model=MemoryRead)
async def update_memory(
    memory_id: str,
    request: MemoryUpdate,
    db: DbSession,
    user: CurrentUser,
):
    """Edit a memory. Importance is clamped to 1-5."""
    memory = await _get_memory_or_404(db, memory_id, user.id)

    if request.content is not None:
        memory.content = request.content
    if request.category is not None:
        memory.category = request.category.value
    if request.importance is not None:
        memory.importance = max(1, min(5, request.importance))
    if request.is_active is not None:
        memory.is_active = request.is_active

    await db.commit()
    await db.refresh(memory)

    return MemoryRead.model_validate(memory)


@router.delete("/{memory_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_memory(
    memory_id: str,
    db: DbSession,
    user: CurrentUser,
):
    """Permanently delete a memory."""
    memory = await _get_memory_or_404(db, memory_id, user.id)

    await db.delete(memory)
    await db.commit()

    return None
