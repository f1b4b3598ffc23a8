"""
Artifact content normalization and partial updates.

Model output for artifacts is not reliably shaped, so every write goes through
normalize_artifact_content. It only ever adds missing structure (ids, section
types, nested question objects); it never rejects input and never raises.
Running it on its own output returns an equal value.
"""

import copy
from typing import Any
from uuid import uuid4

from studymode.db.models import ArtifactType, QuestionType

QUESTION_SUBTYPES = frozenset(t.value for t in QuestionType)


def _short_id() -> str:
    return uuid4().hex[:8]


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _existing_id(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip():
        return value
    if isinstance(value, int):
        return str(value)
    return None


def _text(*candidates: Any) -> str:
    for candidate in candidates:
        if isinstance(candidate, str) and candidate:
            return candidate
    return ""


def _build_question(base: dict[str, Any], section_id: str, **fields: Any) -> dict[str, Any]:
    question = {
        **base,
        "id": _existing_id(base.get("id")) or f"q-{section_id}",
        "type": fields["type"],
        "question": fields["question"],
        "options": _as_list(fields["options"]),
        "correctAnswer": fields["correct_answer"],
        "explanation": _text(fields["explanation"]),
    }
    if fields["hint"] is not None:
        question["hint"] = fields["hint"]
    return question


def _normalize_section(section: dict[str, Any], idx: int) -> dict[str, Any]:
    section_id = _existing_id(section.get("id")) or f"section-{idx}-{_short_id()}"
    section_type = section.get("type") if isinstance(section.get("type"), str) else None

    if section_type in QUESTION_SUBTYPES:
        # Question fields were flattened onto the section; nest them
        return {
            "id": section_id,
            "type": "question",
            "question": _build_question(
                {},
                section_id,
                type=section_type,
                question=_text(section.get("question"), section.get("content")),
                options=section.get("options"),
                correct_answer=section.get("correctAnswer"),
                explanation=section.get("explanation"),
                hint=section.get("hint"),
            ),
        }

    if section_type == "question":
        raw = section.get("question")
        nested = raw if isinstance(raw, dict) else {}
        nested_type = nested.get("type") if isinstance(nested.get("type"), str) else None
        return {
            **section,
            "id": section_id,
            "type": "question",
            "question": _build_question(
                nested,
                section_id,
                type=nested_type if nested_type in QUESTION_SUBTYPES else QuestionType.SHORT_ANSWER.value,
                question=_text(nested.get("question"), raw, section.get("content")),
                options=nested.get("options"),
                correct_answer=nested.get("correctAnswer"),
                explanation=nested.get("explanation"),
                hint=nested.get("hint"),
            ),
        }

    normalized = {**section, "id": section_id, "type": "content", "content": _text(section.get("content"))}
    normalized.pop("question", None)
    return normalized


def _normalize_item(item: Any, idx: int) -> dict[str, Any] | None:
    if isinstance(item, str):
        item = {"text": item}
    if not isinstance(item, dict):
        return None

    children = []
    for cidx, child in enumerate(_as_list(item.get("children"))):
        if isinstance(child, str):
            child = {"text": child}
        if not isinstance(child, dict):
            continue
        children.append({**child, "id": _existing_id(child.get("id")) or f"child-{idx}-{cidx}-{_short_id()}"})

    return {
        **item,
        "id": _existing_id(item.get("id")) or f"item-{idx}-{_short_id()}",
        "children": children,
    }


def normalize_artifact_content(artifact_type: str, content: Any) -> dict[str, Any]:
    """
    Coerce artifact content into its canonical shape for the given type.

    - lesson: every section gets an id and a type of "content" or "question";
      question subtypes placed at section level are nested under "question".
    - study_plan: every item and child gets an id; children is always a list.
    - flashcards: every card gets an id.
    """
    if not isinstance(content, dict):
        return {}

    if artifact_type == ArtifactType.LESSON.value:
        sections = [
            _normalize_section(section, idx)
            for idx, section in enumerate(_as_list(content.get("sections")))
            if isinstance(section, dict)
        ]
        return {**content, "sections": sections}

    if artifact_type == ArtifactType.STUDY_PLAN.value:
        items = [_normalize_item(item, idx) for idx, item in enumerate(_as_list(content.get("items")))]
        return {**content, "items": [item for item in items if item is not None]}

    if artifact_type == ArtifactType.FLASHCARDS.value:
        cards = [
            {**card, "id": _existing_id(card.get("id")) or f"card-{idx}-{_short_id()}"}
            for idx, card in enumerate(_as_list(content.get("cards")))
            if isinstance(card, dict)
        ]
        return {**content, "cards": cards}

    return dict(content)


# (list key, add key, remove key, update key, update id key, updatable fields) per type
_LIST_OPERATIONS: dict[str, tuple[str, str, str, str, str, tuple[str, ...]]] = {
    ArtifactType.LESSON.value: ("sections", "addSections", "removeSection", "updateSection", "sectionId", ("content",)),
    ArtifactType.STUDY_PLAN.value: ("items", "addItems", "removeItem", "updateItem", "itemId", ("text",)),
    ArtifactType.FLASHCARDS.value: ("cards", "addCards", "removeCard", "updateCard", "cardId", ("front", "back")),
}


def apply_artifact_updates(artifact_type: str, content: Any, updates: dict[str, Any]) -> dict[str, Any]:
    """
    Apply list operations from an update payload and return new normalized content.

    Only the operations that match the artifact's type are honoured
    (addSections/removeSection/updateSection for lessons, addItems/removeItem/
    updateItem for study plans, addCards/removeCard/updateCard for flashcards).
    The input content is not mutated.
    """
    new_content = copy.deepcopy(content) if isinstance(content, dict) else {}
    operations = _LIST_OPERATIONS.get(artifact_type)
    if operations is None:
        return normalize_artifact_content(artifact_type, new_content)

    list_key, add_key, remove_key, update_key, update_id_key, fields = operations
    elements = _as_list(new_content.get(list_key))

    remove_id = _existing_id(updates.get(remove_key))
    if remove_id is not None:
        elements = [e for e in elements if not (isinstance(e, dict) and e.get("id") == remove_id)]

    change = updates.get(update_key)
    if isinstance(change, dict):
        target_id = _existing_id(change.get(update_id_key))
        for element in elements:
            if isinstance(element, dict) and element.get("id") == target_id:
                for name in fields:
                    if change.get(name) is not None:
                        element[name] = change[name]

    elements.extend(copy.deepcopy(_as_list(updates.get(add_key))))
    new_content[list_key] = elements
    return normalize_artifact_content(artifact_type, new_content)
