"""
Parsing of raw provider function calls into typed commands.

The model sends ``{name, args}`` pairs with loosely shaped arguments. Each is
validated here, once, into one of the ToolCall variants; anything that does
not fit is logged and dropped so the dispatcher only ever sees well-formed
commands. Both artifact-creation catalogues (the single ``artifact_create``
and the per-type ``artifact_create_<type>`` tools) become ArtifactCreate.
"""

import logging
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictStr,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from studymode.db.models import ArtifactType, MemoryCategory, QuestionType

logger = logging.getLogger(__name__)

MEMORY_CONTENT_MAX = 500

SPLIT_ARTIFACT_LIST_KEYS = {
    "artifact_create_lesson": (ArtifactType.LESSON.value, "sections"),
    "artifact_create_study_plan": (ArtifactType.STUDY_PLAN.value, "items"),
    "artifact_create_flashcards": (ArtifactType.FLASHCARDS.value, "cards"),
}
ARTIFACT_CREATE_TOOLS = frozenset({"artifact_create", *SPLIT_ARTIFACT_LIST_KEYS})
_CONTENT_LIST_KEYS = ("sections", "items", "cards")


def is_canonical_id(value: Any) -> bool:
    """True for lower-case hyphenated UUID strings, exactly as the server writes them."""
    if not isinstance(value, str):
        return False
    try:
        return str(UUID(value)) == value
    except ValueError:
        return False


def _canonical_id(value: str) -> str:
    if not is_canonical_id(value):
        raise ValueError("not a canonical id")
    return value


CanonicalId = Annotated[StrictStr, AfterValidator(_canonical_id)]


class _Command(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    # Name and arguments as the model sent them, kept for the message record
    source_name: str = Field(default="", exclude=True)
    raw_args: dict[str, Any] = Field(default_factory=dict, exclude=True)


class MemoryCreate(_Command):
    tool: Literal["memory_create"] = "memory_create"
    content: StrictStr = Field(min_length=1)
    category: MemoryCategory = MemoryCategory.OTHER
    importance: int = 3

    @field_validator("content")
    @classmethod
    def _truncate(cls, v: str) -> str:
        return v[:MEMORY_CONTENT_MAX]

    @field_validator("category", mode="before")
    @classmethod
    def _known_category(cls, v: Any) -> Any:
        if v in {c.value for c in MemoryCategory}:
            return v
        return MemoryCategory.OTHER

    @field_validator("importance", mode="before")
    @classmethod
    def _clamp_importance(cls, v: Any) -> int:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return 3
        return max(1, min(5, int(v)))


class MemoryUpdate(_Command):
    tool: Literal["memory_update"] = "memory_update"
    memory_id: CanonicalId = Field(alias="memoryId")
    content: StrictStr = Field(min_length=1)

    @field_validator("content")
    @classmethod
    def _truncate(cls, v: str) -> str:
        return v[:MEMORY_CONTENT_MAX]


class MemoryDelete(_Command):
    tool: Literal["memory_delete"] = "memory_delete"
    memory_id: CanonicalId = Field(alias="memoryId")


class QuestionCreate(_Command):
    tool: Literal["question_create"] = "question_create"
    type: QuestionType
    question: StrictStr = Field(min_length=1)
    options: list[dict[str, Any]] = Field(default_factory=list)
    correct_answer: str | list[str] | bool | None = Field(default=None, alias="correctAnswer")
    explanation: str = ""
    hint: str = ""

    @field_validator("options", mode="before")
    @classmethod
    def _options_list(cls, v: Any) -> list:
        if not isinstance(v, list):
            return []
        return [o for o in v if isinstance(o, dict)]

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _numeric_answer(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("explanation", "hint", mode="before")
    @classmethod
    def _optional_text(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""


class ArtifactCreate(_Command):
    tool: Literal["artifact_create"] = "artifact_create"
    artifact_type: ArtifactType = Field(alias="artifactType")
    title: StrictStr = Field(min_length=1)
    description: str = ""
    content: dict[str, Any] = Field(default_factory=dict)

    @field_validator("description", mode="before")
    @classmethod
    def _description_text(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @field_validator("content", mode="before")
    @classmethod
    def _content_object(cls, v: Any) -> dict:
        return v if isinstance(v, dict) else {}


class ArtifactUpdate(_Command):
    tool: Literal["artifact_update"] = "artifact_update"
    artifact_id: CanonicalId = Field(alias="artifactId")
    updates: dict[str, Any] = Field(default_factory=dict)

    @field_validator("updates", mode="before")
    @classmethod
    def _updates_object(cls, v: Any) -> dict:
        return v if isinstance(v, dict) else {}


class ArtifactDelete(_Command):
    tool: Literal["artifact_delete"] = "artifact_delete"
    artifact_id: CanonicalId = Field(alias="artifactId")


ToolCall = Union[
    MemoryCreate,
    MemoryUpdate,
    MemoryDelete,
    QuestionCreate,
    ArtifactCreate,
    ArtifactUpdate,
    ArtifactDelete,
]

_tool_call_adapter: TypeAdapter[ToolCall] = TypeAdapter(Annotated[ToolCall, Field(discriminator="tool")])


def _artifact_create_fields(name: str, args: dict[str, Any]) -> dict[str, Any]:
    """Bring both artifact-creation shapes to {artifactType, title, description, content}."""
    if name in SPLIT_ARTIFACT_LIST_KEYS:
        artifact_type, list_key = SPLIT_ARTIFACT_LIST_KEYS[name]
        return {
            "artifactType": artifact_type,
            "title": args.get("title"),
            "description": args.get("description"),
            "content": {list_key: args.get(list_key) or []},
        }

    content = args.get("content")
    content = content if isinstance(content, dict) else {}
    artifact_type = args.get("type")
    title = args.get("title")
    description = args.get("description")

    # Models sometimes nest the whole artifact inside content
    if not artifact_type and content.get("type"):
        artifact_type = content.get("type")
        title = title or content.get("title")
        description = description or content.get("description")
        content = {key: content[key] for key in _CONTENT_LIST_KEYS if key in content}

    return {
        "artifactType": artifact_type,
        "title": title,
        "description": description,
        "content": content,
    }


def parse_tool_call(name: str, args: dict[str, Any] | None) -> ToolCall | None:
    """
    Validate one raw function call.

    Returns None (and logs a warning) for unknown tools and for calls whose
    arguments are missing, ill-typed or reference malformed ids.
    """
    args = args if isinstance(args, dict) else {}

    if name in ARTIFACT_CREATE_TOOLS:
        payload = {**_artifact_create_fields(name, args), "tool": "artifact_create"}
    else:
        payload = {**args, "tool": name}

    try:
        return _tool_call_adapter.validate_python({**payload, "source_name": name, "raw_args": args})
    except ValidationError as e:
        logger.warning("Dropping tool call %s: %d validation error(s)", name, e.error_count())
        logger.debug("Rejected arguments for %s: %s", name, e)
        return None


def parse_tool_calls(raw_calls: list[tuple[str, dict[str, Any]]]) -> list[ToolCall]:
    """Parse calls in provider order, skipping the ones that fail."""
    parsed = (parse_tool_call(name, args) for name, args in raw_calls)
    return [call for call in parsed if call is not None]
