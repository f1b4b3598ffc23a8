"""
Assessment generation and AI grading.

generate_assessment streams progress events while the model writes a
structured quiz, then validates the questions it produced. Grading of
free-text answers goes through grade_answer_with_ai, which never raises.
"""

import json
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from studymode.config import get_settings
from studymode.db.models import Material, MaterialType, QuestionType
from studymode.schemas.assessments import AssessmentSettings
from studymode.services.gemini import GeminiClient, GenerationError
from studymode.services.material_files import ensure_material_files, material_file_refs
from studymode.services.s3 import S3Service

logger = logging.getLogger(__name__)
settings = get_settings()

TYPE_DESC = {
    QuestionType.MULTIPLE_CHOICE.value: "single correct answer from 4 options (a,b,c,d)",
    QuestionType.MULTIPLE_SELECT.value: "multiple correct answers from options",
    QuestionType.TRUE_FALSE.value: "true or false statement",
    QuestionType.SHORT_ANSWER.value: "brief 1-3 sentence response",
    QuestionType.LONG_ANSWER.value: "detailed paragraph response",
    QuestionType.FILL_BLANK.value: "sentence with ___ for blanks",
}

OPTION_TYPES = {
    QuestionType.MULTIPLE_CHOICE.value,
    QuestionType.MULTIPLE_SELECT.value,
    QuestionType.TRUE_FALSE.value,
}
LIST_ANSWER_TYPES = {QuestionType.MULTIPLE_SELECT.value, QuestionType.FILL_BLANK.value}

GRADING_FALLBACK_FEEDBACK = "Unable to grade automatically. Please review manually."


class NoUsableMaterialsError(GenerationError):
    def __init__(self):
        super().__init__("No usable materials available. Add text, YouTube videos, or upload files.")


class NoValidQuestionsError(GenerationError):
    def __init__(self):
        super().__init__("No valid questions generated")


# =============================================================================
# STRUCTURED OUTPUT SCHEMAS
# =============================================================================


class QuestionOption(BaseModel):
    id: str = Field(description='Option identifier ("a".."d" for multiple choice, "true"/"false" for true/false)')
    text: str = Field(description="The text content of this option")
    isCorrect: bool = Field(description="Whether this option is correct")


class GeneratedQuestion(BaseModel):
    type: QuestionType = Field(description="Type of question")
    question: str = Field(description="The question text")
    options: list[QuestionOption] | None = Field(
        default=None,
        description=(
            "REQUIRED for multiple_choice (4 options), multiple_select (2-6 options) and true_false "
            '(exactly 2 options with ids "true" and "false"). Not used for short_answer, long_answer or fill_blank.'
        ),
    )
    correctAnswer: str | list[str] | bool = Field(
        description=(
            "Option id for multiple_choice/true_false, expected text for short_answer/long_answer, "
            "list of option ids for multiple_select, list of blank answers for fill_blank"
        )
    )
    explanation: str = Field(description="Why this is the correct answer")
    points: float = Field(default=1, description="Points awarded for a correct answer")
    difficulty: Literal["easy", "medium", "hard"] = Field(description="Difficulty of this question")
    topic: str | None = Field(default=None, description="Topic this question covers")
    hint: str | None = Field(default=None, description="Optional hint")


class GeneratedAssessmentSchema(BaseModel):
    title: str = Field(description="Title of the assessment")
    description: str = Field(description="Brief description of what this assessment covers")
    questions: list[GeneratedQuestion] = Field(description="Array of assessment questions")


class GradingSchema(BaseModel):
    pointsEarned: float
    isCorrect: bool
    feedback: str
    confidence: float


@dataclass(frozen=True)
class GeneratedAssessment:
    title: str
    description: str
    questions: list[dict[str, Any]]
    thinking: str

    @property
    def total_points(self) -> float:
        return sum(q["points"] for q in self.questions)


# =============================================================================
# PROMPT + VALIDATION
# =============================================================================


def _material_text(material: Material) -> str | None:
    return material.text_content or material.summary or None


def is_usable_material(material: Material) -> bool:
    return bool(
        _material_text(material)
        or (material.type == MaterialType.YOUTUBE.value and material.youtube_url)
        or (material.gemini_uri and material.file_mime_type)
    )


def build_assessment_prompt(materials: Sequence[Material], options: AssessmentSettings) -> str:
    types = ", ".join(f"{t.value} ({TYPE_DESC[t.value]})" for t in options.question_types)

    text_materials = []
    video_materials = []
    for material in materials:
        text = _material_text(material)
        if text:
            text_materials.append(f"--- {material.name} ---\n{text}")
        if material.type == MaterialType.YOUTUBE.value and material.youtube_url:
            video_materials.append(f"- YouTube video: {material.name}")
        elif material.type == MaterialType.VIDEO.value and material.gemini_uri:
            video_materials.append(f"- Video file: {material.name}")

    prompt = (
        f"Create {options.question_count} assessment questions based on the provided materials.\n"
        f"Types: {types}\n"
        f"Difficulty: {options.difficulty}"
    )
    if options.focus_topics:
        prompt += f"\nTopics: {', '.join(options.focus_topics)}"
    if options.custom_instructions:
        prompt += f"\nNotes: {options.custom_instructions}"
    if video_materials:
        prompt += "\n\nVideo materials attached:\n" + "\n".join(video_materials)
    if text_materials:
        prompt += "\n\nText Materials:\n" + "\n\n".join(text_materials)
    return prompt


def validate_questions(questions: Any) -> list[dict[str, Any]]:
    """Drop malformed questions and fill defaults on the rest."""
    if not isinstance(questions, list):
        return []

    valid = []
    for q in questions:
        if not isinstance(q, dict) or not q.get("question") or not q.get("type"):
            continue
        question_type = q["type"]
        options = q.get("options")

        if question_type in OPTION_TYPES:
            if not isinstance(options, list) or len(options) < 2:
                logger.warning("Skipping %s question without valid options", question_type)
                continue
            if question_type == QuestionType.TRUE_FALSE.value and len(options) != 2:
                logger.warning("Skipping true_false question without exactly 2 options")
                continue

        if question_type in LIST_ANSWER_TYPES and not isinstance(q.get("correctAnswer"), list):
            logger.warning("Skipping %s question with non-list correctAnswer", question_type)
            continue

        valid.append(
            {
                "type": question_type,
                "question": q["question"],
                "options": options if isinstance(options, list) else [],
                "correctAnswer": q["correctAnswer"] if q.get("correctAnswer") is not None else "",
                "explanation": q.get("explanation") or "",
                "points": q.get("points") if isinstance(q.get("points"), (int, float)) else 1,
                "difficulty": q.get("difficulty") or "medium",
                "topic": q.get("topic") or "",
                "hint": q.get("hint") or "",
            }
        )
    return valid


# =============================================================================
# GENERATION
# =============================================================================


async def generate_assessment(
    db: AsyncSession,
    materials: list[Material],
    options: AssessmentSettings,
    client: GeminiClient,
    storage: S3Service | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Stream generation progress, ending with a "generated" event carrying a GeneratedAssessment.

    Events: metadata {analyzing}, thinking {content}*, content {content}*,
    generated {assessment}. Raises NoUsableMaterialsError, NoValidQuestionsError
    or GenerationError.
    """
    fresh = await ensure_material_files(db, materials, client, storage)
    usable = [m for m in materials if m.id in fresh or is_usable_material(m)]
    if not usable:
        raise NoUsableMaterialsError()

    files = material_file_refs(usable, fresh)
    yield {
        "type": "metadata",
        "analyzing": {
            "hasVideos": any(f.mime_type is None or f.mime_type.startswith("video/") for f in files),
            "hasFiles": any(f.mime_type is not None and not f.mime_type.startswith("video/") for f in files),
            "hasText": any(_material_text(m) for m in usable),
            "materialCount": len(usable),
        },
    }

    json_parts: list[str] = []
    thinking_parts: list[str] = []
    async for chunk in client.stream(
        build_assessment_prompt(usable, options),
        files,
        response_schema=GeneratedAssessmentSchema.model_json_schema(),
        include_thoughts=True,
    ):
        if chunk.kind == "thought":
            thinking_parts.append(chunk.text)
            yield {"type": "thinking", "content": chunk.text}
        elif chunk.kind == "text":
            json_parts.append(chunk.text)
            yield {"type": "content", "content": chunk.text}

    try:
        parsed = json.loads("".join(json_parts))
    except json.JSONDecodeError as e:
        raise GenerationError(f"Model returned invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise GenerationError("Model returned an unexpected response shape")

    questions = validate_questions(parsed.get("questions"))
    if not questions:
        raise NoValidQuestionsError()

    logger.info("Generated %d valid questions from %d materials", len(questions), len(usable))
    yield {
        "type": "generated",
        "assessment": GeneratedAssessment(
            title=parsed.get("title") or "Generated Assessment",
            description=parsed.get("description") or "",
            questions=questions,
            thinking="".join(thinking_parts),
        ),
    }


# =============================================================================
# AI GRADING
# =============================================================================


def _grading_prompt(question: str, expected_answer: Any, user_answer: Any, max_points: float) -> str:
    return f"""You are an expert teacher grading a student's answer.

Question: {question}

Expected Answer/Key Points: {expected_answer}

Student's Answer: {user_answer}

Maximum Points: {max_points:g}

Grade the answer by:
1. Comparing it to the expected answer/key points
2. Assigning points (0 to {max_points:g})
3. Determining if it's correct (>=70% of points = correct)
4. Providing constructive feedback
5. Rating your confidence in this grading (0-1)"""


async def grade_answer_with_ai(
    client: GeminiClient,
    question: str,
    expected_answer: Any,
    user_answer: Any,
    max_points: float = 1,
) -> dict[str, Any]:
    """
    Grade a free-text answer.

    Points are clamped to [0, max_points] and confidence to [0, 1]; the answer
    counts as correct at 70% of the available points. Any failure returns
    zero points with a fallback message asking for manual review.
    """
    try:
        raw = await client.generate_json(
            _grading_prompt(question, expected_answer, user_answer, max_points),
            GradingSchema.model_json_schema(),
            model=settings.gemini_grading_model,
        )
        result = GradingSchema.model_validate_json(raw)
    except (GenerationError, ValidationError) as e:
        logger.warning("AI grading failed, falling back to manual review: %s", e)
        return _grading_fallback()
    except Exception:
        logger.exception("AI grading failed unexpectedly")
        return _grading_fallback()

    points = min(max(0.0, result.pointsEarned), float(max_points))
    return {
        "pointsEarned": points,
        "isCorrect": points >= 0.7 * max_points,
        "feedback": result.feedback or "No feedback provided.",
        "confidence": min(max(0.0, result.confidence), 1.0),
    }


def _grading_fallback() -> dict[str, Any]:
    return {
        "pointsEarned": 0,
        "isCorrect": False,
        "feedback": GRADING_FALLBACK_FEEDBACK,
        "confidence": 0,
    }
