"""
API routes for assessments: streamed generation, attempts and streamed grading.

Generation and grading run inside the SSE generator with their own database
session; the request session is only used for the up-front 4xx checks.
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sse_starlette.sse import EventSourceResponse

from studymode.api.deps import (
    CurrentUser,
    DbSession,
    GenerationClient,
    SessionFactory,
    get_project_or_404,
    get_user_resource_or_404,
    parse_id_or_404,
)
from studymode.config import sanitize_error
from studymode.db.models import (
    Assessment,
    AssessmentAttempt,
    AssessmentStatus,
    AttemptStatus,
    Material,
    MaterialStatus,
    Project,
    QuestionType,
    utcnow,
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
from studymode.services.assessment_generator import generate_assessment, grade_answer_with_ai
from studymode.services.gemini import GeminiClient
from studymode.services.grading import score_objective_answer, score_percentage
from studymode.services.material_files import as_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assessments", tags=["assessments"])

AI_GRADED_TYPES = {QuestionType.SHORT_ANSWER.value, QuestionType.LONG_ANSWER.value}


# =============================================================================
# HELPERS
# =============================================================================


def _ready_materials_stmt(project_id: UUID, user_id: UUID, material_ids: list[UUID]):
    stmt = select(Material).where(
        Material.project_id == project_id,
        Material.user_id == user_id,
        Material.status == MaterialStatus.READY.value,
    )
    if material_ids:
        stmt = stmt.where(Material.id.in_(material_ids))
    return stmt


async def _get_assessment_or_404(db: AsyncSession, assessment_id: str, user_id: UUID) -> Assessment:
    assessment_uuid = parse_id_or_404(assessment_id, "Assessment not found")
    return await get_user_resource_or_404(db, Assessment, assessment_uuid, user_id, "Assessment not found")


async def _get_attempt_or_404(
    db: AsyncSession, assessment: Assessment, attempt_id: str, user_id: UUID
) -> AssessmentAttempt:
    attempt_uuid = parse_id_or_404(attempt_id, "Attempt not found")
    attempt = await get_user_resource_or_404(db, AssessmentAttempt, attempt_uuid, user_id, "Attempt not found")
    if attempt.assessment_id != assessment.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attempt not found")
    return attempt


def _sse(event: dict[str, Any]) -> dict[str, str]:
    return {"data": json.dumps(event, default=str)}


async def _recompute_stats(db: AsyncSession, assessment: Assessment) -> None:
    result = await db.execute(
        select(
            func.count(AssessmentAttempt.id),
            func.avg(AssessmentAttempt.score_percentage),
            func.max(AssessmentAttempt.score_percentage),
        ).where(
            AssessmentAttempt.assessment_id == assessment.id,
            AssessmentAttempt.status == AttemptStatus.GRADED.value,
        )
    )
    count, average, highest = result.one()
    assessment.stats = {
        **(assessment.stats or {}),
        "attemptCount": count or 0,
        "averageScore": round(average or 0),
        "highestScore": highest or 0,
    }


# =============================================================================
# GENERATION
# =============================================================================


async def _generation_events(
    session_factory,
    client: GeminiClient,
    user_id: UUID,
    project_id: UUID,
    options: AssessmentSettings,
) -> AsyncIterator[dict[str, str]]:
    async with session_factory() as db:
        try:
            result = await db.execute(_ready_materials_stmt(project_id, user_id, options.material_ids))
            materials = list(result.scalars().all())

            async for event in generate_assessment(db, materials, options, client):
                if event["type"] != "generated":
                    yield _sse(event)
                    continue

                generated = event["assessment"]
                assessment = Assessment(
                    project_id=project_id,
                    user_id=user_id,
                    title=options.title or generated.title,
                    description=generated.description,
                    questions=generated.questions,
                    settings={
                        **options.model_dump(mode="json", by_alias=True),
                        "materialIds": [str(m.id) for m in materials],
                    },
                    total_points=generated.total_points,
                    status=AssessmentStatus.DRAFT.value,
                )
                db.add(assessment)

                project = await db.get(Project, project_id)
                if project is not None:
                    stats = dict(project.stats or {})
                    stats["assessmentCount"] = stats.get("assessmentCount", 0) + 1
                    project.stats = stats

                await db.commit()
                logger.info("Saved assessment %s with %d questions", assessment.id, len(generated.questions))

                yield _sse(
                    {
                        "type": "complete",
                        "data": {
                            "id": str(assessment.id),
                            "title": assessment.title,
                            "description": assessment.description,
                            "questionCount": len(assessment.questions),
                            "totalPoints": assessment.total_points,
                            "status": assessment.status,
                        },
                    }
                )
        except Exception as e:
            logger.exception("Assessment generation failed for project %s", project_id)
            await db.rollback()
            yield _sse({"type": "error", "error": sanitize_error(e)})


@router.post("/generate")
async def generate(
    request: AssessmentGenerateRequest,
    db: DbSession,
    user: CurrentUser,
    session_factory: SessionFactory,
    client: GenerationClient,
):
    """
    Generate an assessment from the project's ready materials, streamed as SSE.

    Events: metadata, thinking*, content*, then complete {data} or error {error}.
    """
    project = await get_project_or_404(db, request.project_id, user.id)

    result = await db.execute(
        _ready_materials_stmt(project.id, user.id, request.settings.material_ids).limit(1)
    )
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No ready materials found")

    return EventSourceResponse(
        _generation_events(session_factory, client, user.id, project.id, request.settings),
        sep="\n",
    )


# =============================================================================
# ASSESSMENTS
# =============================================================================


@router.get("", response_model=AssessmentListResponse)
async def list_assessments(
    db: DbSession,
    user: CurrentUser,
    project_id: str = Query(alias="projectId"),
):
    """List a project's assessments, newest first."""
    project = await get_project_or_404(db, project_id, user.id)

    result = await db.execute(
        select(Assessment)
        .where(Assessment.project_id == project.id, Assessment.user_id == user.id)
        .order_by(Assessment.created_at.desc())
    )
    assessments = result.scalars().all()

    return AssessmentListResponse(assessments=[AssessmentSummary.model_validate(a) for a in assessments])


@router.get("/{assessment_id}", response_model=AssessmentRead)
async def get_assessment(
    assessment_id: str,
    db: DbSession,
    user: CurrentUser,
):
    assessment = await _get_assessment_or_404(db, assessment_id, user.id)
    return AssessmentRead.model_validate(assessment)


@router.delete("/{assessment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_assessment(
    assessment_id: str,
    db: DbSession,
    user: CurrentUser,
):
    """Delete an assessment and its attempts."""
    assessment = await _get_assessment_or_404(db, assessment_id, user.id)

    project = await db.get(Project, assessment.project_id)
    if project is not None:
        stats = dict(project.stats or {})
        stats["assessmentCount"] = max(0, stats.get("assessmentCount", 0) - 1)
        project.stats = stats

    await db.delete(assessment)
    await db.commit()

    return None


# =============================================================================
# ATTEMPTS
# =============================================================================


@router.post("/{assessment_id}/attempts", response_model=AttemptStartResponse)
async def start_attempt(
    assessment_id: str,
    db: DbSession,
    user: CurrentUser,
):
    """Start an attempt, or resume the one already in progress."""
    assessment = await _get_assessment_or_404(db, assessment_id, user.id)

    result = await db.execute(
        select(AssessmentAttempt)
        .where(
            AssessmentAttempt.assessment_id == assessment.id,
            AssessmentAttempt.user_id == user.id,
            AssessmentAttempt.status == AttemptStatus.IN_PROGRESS.value,
        )
        .order_by(AssessmentAttempt.started_at.desc())
        .limit(1)
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        return AttemptStartResponse(attempt=AttemptRead.model_validate(existing), resumed=True)

    attempt = AssessmentAttempt(
        assessment_id=assessment.id,
        project_id=assessment.project_id,
        user_id=user.id,
        score_total=assessment.total_points,
    )
    db.add(attempt)
    await db.commit()
    await db.refresh(attempt)

    return AttemptStartResponse(attempt=AttemptRead.model_validate(attempt), resumed=False)


@router.put("/{assessment_id}/attempts/{attempt_id}/answers", response_model=AttemptRead)
async def save_answer(
    assessment_id: str,
    attempt_id: str,
    request: AttemptAnswerRequest,
    db: DbSession,
    user: CurrentUser,
):
    """Save (or replace) the answer to one question of an in-progress attempt."""
    assessment = await _get_assessment_or_404(db, assessment_id, user.id)
    attempt = await _get_attempt_or_404(db, assessment, attempt_id, user.id)

    if attempt.status != AttemptStatus.IN_PROGRESS.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Attempt already submitted")
    if request.question_index >= len(assessment.questions):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid question index")

    answers = [a for a in attempt.answers or [] if a.get("questionIndex") != request.question_index]
    answers.append({"questionIndex": request.question_index, "answer": request.answer})
    answers.sort(key=lambda a: a["questionIndex"])
    attempt.answers = answers

    await db.commit()
    await db.refresh(attempt)

    return AttemptRead.model_validate(attempt)


async def _grading_events(
    session_factory,
    client: GeminiClient,
    assessment_id: UUID,
    attempt_id: UUID,
) -> AsyncIterator[dict[str, str]]:
    async with session_factory() as db:
        try:
            assessment = await db.get(Assessment, assessment_id)
            attempt = await db.get(AssessmentAttempt, attempt_id)
            questions = assessment.questions
            answers_by_index = {a.get("questionIndex"): a for a in attempt.answers or []}

            # Nothing is written until every question is graded, so a failed run leaves the attempt in progress
            submitted_at = utcnow()

            total = len(questions)
            graded = []
            earned = 0.0
            yield _sse({"type": "progress", "current": 0, "total": total})

            for index, question in enumerate(questions):
                yield _sse({"type": "grading", "questionIndex": index, "questionText": question.get("question", "")})

                entry = dict(answers_by_index.get(index) or {"questionIndex": index, "answer": None})
                answer = entry.get("answer")
                points = float(question.get("points") or 1)

                if answer is None or answer == "" or answer == []:
                    entry.update({"isCorrect": False, "pointsEarned": 0})
                elif question.get("type") in AI_GRADED_TYPES:
                    result = await grade_answer_with_ai(
                        client, question.get("question", ""), question.get("correctAnswer"), answer, points
                    )
                    entry.update(
                        {
                            "isCorrect": result["isCorrect"],
                            "pointsEarned": result["pointsEarned"],
                            "aiFeedback": result["feedback"],
                            "aiConfidence": result["confidence"],
                        }
                    )
                else:
                    is_correct, points_earned = score_objective_answer(question, answer)
                    entry.update({"isCorrect": is_correct, "pointsEarned": points_earned})

                earned += entry["pointsEarned"]
                graded.append(entry)

                yield _sse(
                    {
                        "type": "graded",
                        "questionIndex": index,
                        "isCorrect": entry["isCorrect"],
                        "pointsEarned": entry["pointsEarned"],
                    }
                )
                yield _sse({"type": "progress", "current": index + 1, "total": total})

            now = utcnow()
            score_total = assessment.total_points or sum(float(q.get("points") or 1) for q in questions)
            attempt.answers = graded
            attempt.score_earned = earned
            attempt.score_total = score_total
            attempt.score_percentage = score_percentage(earned, score_total)
            attempt.status = AttemptStatus.GRADED.value
            attempt.submitted_at = submitted_at
            attempt.graded_at = now
            attempt.time_taken = int((now - as_utc(attempt.started_at)).total_seconds())
            await db.flush()

            await _recompute_stats(db, assessment)
            await db.commit()
            logger.info("Graded attempt %s: %s/%s", attempt.id, earned, score_total)

            yield _sse(
                {
                    "type": "complete",
                    "attemptId": str(attempt.id),
                    "score": {
                        "earned": earned,
                        "total": score_total,
                        "percentage": attempt.score_percentage,
                    },
                }
            )
        except Exception as e:
            logger.exception("Grading failed for attempt %s", attempt_id)
            await db.rollback()
            yield _sse({"type": "error", "error": sanitize_error(e)})


@router.post("/{assessment_id}/attempts/{attempt_id}/grade")
async def grade_attempt(
    assessment_id: str,
    attempt_id: str,
    db: DbSession,
    user: CurrentUser,
    session_factory: SessionFactory,
    client: GenerationClient,
):
    """
    Submit and grade an attempt, streamed as SSE.

    Events: progress {current, total}, then per question grading and graded,
    then complete {attemptId, score} or error {error}.
    """
    assessment = await _get_assessment_or_404(db, assessment_id, user.id)
    attempt = await _get_attempt_or_404(db, assessment, attempt_id, user.id)
    if attempt.status != AttemptStatus.IN_PROGRESS.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Attempt already submitted")

    return EventSourceResponse(
        _grading_events(session_factory, client, assessment.id, attempt.id),
        sep="\n",
    )
