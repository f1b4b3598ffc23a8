"""Function declarations offered to the tutor model during a chat turn."""

from typing import Any, Literal

from studymode.services.gemini import FunctionDeclaration

CatalogVariant = Literal["split", "unified"]

MEMORY_CATEGORIES = ["preference", "understanding", "weakness", "strength", "goal", "context", "other"]
INLINE_QUESTION_TYPES = ["multiple_choice", "true_false", "short_answer", "fill_blank"]
LESSON_QUESTION_TYPES = ["multiple_choice", "true_false", "short_answer", "long_answer", "fill_blank"]

_OPTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "description": "Option identifier (a, b, c, d or true, false)"},
        "text": {"type": "string", "description": "Option text"},
        "isCorrect": {"type": "boolean", "description": "Whether this option is correct"},
    },
    "required": ["id", "text", "isCorrect"],
}

_CORRECT_ANSWER_SCHEMA: dict[str, Any] = {
    "anyOf": [{"type": "string"}, {"type": "array", "items": {"type": "string"}}],
}

_LESSON_SECTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "type": {"type": "string", "enum": ["content", "question"]},
        "content": {"type": "string", "description": "Markdown body for content sections"},
        "question": {
            "type": "object",
            "properties": {
                "type": {"type": "string", "enum": LESSON_QUESTION_TYPES},
                "question": {"type": "string"},
                "options": {"type": "array", "items": _OPTION_SCHEMA},
                "correctAnswer": _CORRECT_ANSWER_SCHEMA,
                "explanation": {"type": "string"},
                "hint": {"type": "string"},
            },
            "required": ["type", "question"],
        },
    },
    "required": ["type"],
}

_PLAN_ITEM_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "text": {"type": "string"},
        "children": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"id": {"type": "string"}, "text": {"type": "string"}},
                "required": ["text"],
            },
        },
    },
    "required": ["text"],
}

_CARD_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "front": {"type": "string"},
        "back": {"type": "string"},
    },
    "required": ["front", "back"],
}


def _object(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


MEMORY_TOOLS = [
    FunctionDeclaration(
        name="memory_create",
        description=(
            "Save an important observation about the student for future sessions. Use SPARINGLY - "
            "only for significant discoveries about the student (not every interaction). Do not "
            "create memories just because the student asks a question."
        ),
        parameters=_object(
            {
                "content": {
                    "type": "string",
                    "maxLength": 500,
                    "description": "The memory content to save - be concise but specific",
                },
                "category": {"type": "string", "enum": MEMORY_CATEGORIES, "description": "Category of the memory"},
                "importance": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 5,
                    "default": 3,
                    "description": "Importance level (1=low, 5=critical)",
                },
            },
            ["content", "category"],
        ),
    ),
    FunctionDeclaration(
        name="memory_update",
        description=(
            "Update an existing memory with new or refined information. Use when you learn "
            "something that changes a previous observation."
        ),
        parameters=_object(
            {
                "memoryId": {"type": "string", "description": "ID of the memory to update"},
                "content": {"type": "string", "maxLength": 500, "description": "Updated content for the memory"},
            },
            ["memoryId", "content"],
        ),
    ),
    FunctionDeclaration(
        name="memory_delete",
        description="Delete a memory that is no longer relevant or accurate. Use sparingly.",
        parameters=_object(
            {"memoryId": {"type": "string", "description": "ID of the memory to delete"}},
            ["memoryId"],
        ),
    ),
]

QUESTION_TOOL = FunctionDeclaration(
    name="question_create",
    description=(
        'ONLY use this tool when the student EXPLICITLY asks to be quizzed or tested (e.g., "quiz me", '
        '"test me", "ask me a question"). Do NOT use this tool automatically after explanations. If you '
        "think a quiz would help, ASK the student first in your text response instead of creating a question."
    ),
    parameters=_object(
        {
            "type": {"type": "string", "enum": INLINE_QUESTION_TYPES, "description": "Type of question"},
            "question": {"type": "string", "description": "The question text"},
            "options": {
                "type": "array",
                "items": _OPTION_SCHEMA,
                "description": (
                    "Required for multiple_choice (4 options) and true_false (2 options). "
                    "Not used for short_answer or fill_blank."
                ),
            },
            "correctAnswer": {
                **_CORRECT_ANSWER_SCHEMA,
                "description": (
                    "The correct answer. String for multiple_choice/true_false/short_answer, "
                    "array of strings for fill_blank (one per blank)"
                ),
            },
            "explanation": {
                "type": "string",
                "description": "Explanation shown after the student answers - explain why the answer is correct",
            },
            "hint": {"type": "string", "description": "Optional hint the student can reveal"},
        },
        ["type", "question", "correctAnswer", "explanation"],
    ),
)

SPLIT_ARTIFACT_CREATE_TOOLS = [
    FunctionDeclaration(
        name="artifact_create_study_plan",
        description='Create a structured study plan with checkable items. Use when the student asks to "plan", "create a roadmap", or "organize my study".',
        parameters=_object(
            {
                "title": {"type": "string"},
                "description": {"type": "string"},
                "items": {"type": "array", "items": _PLAN_ITEM_SCHEMA},
            },
            ["title", "items"],
        ),
    ),
    FunctionDeclaration(
        name="artifact_create_lesson",
        description="Create a lesson mixing markdown content sections and embedded quiz questions. Use for practice problems, scenarios and application questions.",
        parameters=_object(
            {
                "title": {"type": "string"},
                "description": {"type": "string"},
                "sections": {"type": "array", "items": _LESSON_SECTION_SCHEMA},
            },
            ["title", "sections"],
        ),
    ),
    FunctionDeclaration(
        name="artifact_create_flashcards",
        description="Create a flashcard set for memorizing terms, definitions, or facts.",
        parameters=_object(
            {
                "title": {"type": "string"},
                "description": {"type": "string"},
                "cards": {"type": "array", "items": _CARD_SCHEMA},
            },
            ["title", "cards"],
        ),
    ),
]

UNIFIED_ARTIFACT_CREATE_TOOL = FunctionDeclaration(
    name="artifact_create",
    description="Create a study artifact: a lesson, a study plan, or a flashcard set.",
    parameters=_object(
        {
            "type": {"type": "string", "enum": ["lesson", "study_plan", "flashcards"]},
            "title": {"type": "string"},
            "description": {"type": "string"},
            "content": {
                "type": "object",
                "properties": {
                    "sections": {"type": "array", "items": _LESSON_SECTION_SCHEMA},
                    "items": {"type": "array", "items": _PLAN_ITEM_SCHEMA},
                    "cards": {"type": "array", "items": _CARD_SCHEMA},
                },
            },
        },
        ["type", "title", "content"],
    ),
)

ARTIFACT_EDIT_TOOLS = [
    FunctionDeclaration(
        name="artifact_update",
        description="Update an existing artifact: change its title or description, or add/remove sections, items or cards. Reference the artifact by its ID.",
        parameters=_object(
            {
                "artifactId": {"type": "string", "description": "ID of the artifact to update"},
                "updates": {
                    "type": "object",
                    "properties": {
                        "title": {"type": "string"},
                        "description": {"type": "string"},
                        "addSections": {"type": "array", "items": _LESSON_SECTION_SCHEMA},
                        "removeSection": {"type": "string", "description": "Section ID to remove"},
                        "addItems": {"type": "array", "items": _PLAN_ITEM_SCHEMA},
                        "removeItem": {"type": "string", "description": "Item ID to remove"},
                        "addCards": {"type": "array", "items": _CARD_SCHEMA},
                        "removeCard": {"type": "string", "description": "Card ID to remove"},
                    },
                },
            },
            ["artifactId", "updates"],
        ),
    ),
    FunctionDeclaration(
        name="artifact_delete",
        description="Archive an artifact that is no longer needed.",
        parameters=_object(
            {"artifactId": {"type": "string", "description": "ID of the artifact to archive"}},
            ["artifactId"],
        ),
    ),
]


def build_function_declarations(variant: CatalogVariant = "split") -> list[FunctionDeclaration]:
    """Full tool catalogue for a chat turn, in the order the system prompt lists it."""
    creators = SPLIT_ARTIFACT_CREATE_TOOLS if variant == "split" else [UNIFIED_ARTIFACT_CREATE_TOOL]
    return [*MEMORY_TOOLS, QUESTION_TOOL, *creators, *ARTIFACT_EDIT_TOOLS]
