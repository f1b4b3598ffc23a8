"""API routes for study artifacts: lessons, study plans and flashcard sets."""

import copy

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import select

from studymode.api.deps import (
    CurrentUser,
    DbSession,
    get_project_or_404,
    get_user_resource_or_404,
    parse_id_or_404,
)
from studymode.db.models import Artifact, ArtifactStatus, ArtifactType, EditedBy, utcnow
from studymode.schemas.artifacts import (
    ArtifactListResponse,
    ArtifactProgressUpdate,
    ArtifactRead,
    ArtifactUpdate,
    LessonAnswerRequest,
)
from studymode.schemas.chats import AnswerResult
from studymode.services.artifact_content import apply_artifact_updates
from studymode.services.grading import check_answer

router = APIRouter(prefix="/study/artifacts", tags=["study-artifacts"])


async def _get_artifact_or_404(db, artifact_id: str, user_id) -> Artifact:
    artifact_uuid = parse_id_or_404(artifact_id, "Artifact not found")
    return await get_user_resource_or_404(db, Artifact, artifact_uuid, user_id, "Artifact not found")


def _find_by_id(elements, element_id: str) -> dict | None:
    for element in elements or []:
        if isinstance(element, dict) and element.get("id") == element_id:
            return element
    return None


@router.get("", response_model=ArtifactListResponse)
async def list_artifacts(
    db: DbSession,
    user: CurrentUser,
    project_id: str = Query(alias="projectId"),
    artifact_status: ArtifactStatus = Query(default=ArtifactStatus.ACTIVE, alias="status"),
):
    """List a project's artifacts with the given status, newest first."""
    project = await get_project_or_404(db, project_id, user.id)

    result = await db.execute(
        select(Artifact)
        .where(
            Artifact.project_id == project.id,
            Artifact.user_id == user.id,
            Artifact.status == artifact_status.value,
        )
        .order_by(Artifact.created_at.desc())
    )
    artifacts = result.scalars().all()

    return ArtifactListResponse(artifacts=[ArtifactRead.model_validate(a) for a in artifacts])


@router.get("/{artifact_id}", response_model=ArtifactRead)
async def get_artifact(
    artifact_id: str,
    db: DbSession,
    user: CurrentUser,
):
    """Get a single artifact."""
    artifact = await _get_artifact_or_404(db, artifact_id, user.id)
    return ArtifactRead.model_validate(artifact)


@router.patch("/{artifact_id}", response_model=ArtifactRead)
async def update_artifact(
    artifact_id: str,
    request: ArtifactUpdate,
    db: DbSession,
    user: CurrentUser,
):
    """
    Edit an artifact's metadata and/or content.

    Content operations in `updates` apply only when they match the artifact's
    type; the result is re-normalized and the version bumped.
    """
    artifact = await _get_artifact_or_404(db, artifact_id, user.id)

    if request.title is not None:
        artifact.title = request.title
    if request.description is not None:
        artifact.description = request.description
    if request.status is not None:
        artifact.status = request.status
    if request.updates:
        artifact.content = apply_artifact_updates(artifact.type, artifact.content, request.updates)

    artifact.version = artifact.version + 1
    artifact.last_edited_by = request.edited_by

    await db.commit()
    await db.refresh(artifact)

    return ArtifactRead.model_validate(artifact)


@router.delete("/{artifact_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_artifact(
    artifact_id: str,
    db: DbSession,
    user: CurrentUser,
):
    """Archive an artifact."""
    artifact = await _get_artifact_or_404(db, artifact_id, user.id)

    artifact.status = ArtifactStatus.ARCHIVED.value
    await db.commit()

    return None


@router.patch("/{artifact_id}/progress", response_model=ArtifactRead)
async def update_progress(
    artifact_id: str,
    request: ArtifactProgressUpdate,
    db: DbSession,
    user: CurrentUser,
):
    """Tick study-plan items (or their children) and mark flashcards as studied."""
    artifact = await _get_artifact_or_404(db, artifact_id, user.id)
    content = copy.deepcopy(artifact.content or {})
    now = utcnow().isoformat()

    if artifact.type == ArtifactType.STUDY_PLAN.value:
        if not request.item_id or request.completed is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="itemId and completed are required",
            )
        target = _find_by_id(content.get("items"), request.item_id)
        if target is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
        if request.child_id:
            target = _find_by_id(target.get("children"), request.child_id)
            if target is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Child item not found")

        target["completed"] = request.completed
        if request.completed:
            target["completedAt"] = now
        else:
            target.pop("completedAt", None)

    elif artifact.type == ArtifactType.FLASHCARDS.value:
        if not request.card_id or request.studied is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="cardId and studied are required",
            )
        card = _find_by_id(content.get("cards"), request.card_id)
        if card is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Card not found")

        card["studied"] = request.studied
        if request.studied:
            card["lastStudiedAt"] = now

    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Progress updates only supported for study_plan and flashcards",
        )

    artifact.content = content
    artifact.last_edited_by = EditedBy.USER.value
    await db.commit()
    await db.refresh(artifact)

    return ArtifactRead.model_validate(artifact)


@router.post("/{artifact_id}/answer", response_model=AnswerResult)
async def answer_lesson_question(
    artifact_id: str,
    request: LessonAnswerRequest,
    db: DbSession,
    user: CurrentUser,
):
    """Grade and record an answer to a question section of a lesson."""
    artifact = await _get_artifact_or_404(db, artifact_id, user.id)
    if artifact.type != ArtifactType.LESSON.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only lesson artifacts have questions",
        )

    content = copy.deepcopy(artifact.content or {})
    section = _find_by_id(content.get("sections"), request.section_id)
    if section is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Section not found")

    question = section.get("question")
    if section.get("type") != "question" or not isinstance(question, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Section is not a question")
    if question.get("userAnswer") is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Question already answered")

    is_correct = check_answer(question.get("type", ""), request.answer, question.get("correctAnswer"))
    question.update(
        {
            "userAnswer": request.answer,
            "answeredAt": utcnow().isoformat(),
            "isCorrect": is_correct,
        }
    )

    artifact.content = content
    await db.commit()

    return AnswerResult(
        is_correct=is_correct,
        correct_answer=question.get("correctAnswer"),
        explanation=question.get("explanation") or "",
    )
