"""Tests for artifact content normalization and partial updates."""

from studymode.services.artifact_content import apply_artifact_updates, normalize_artifact_content


def test_flattened_question_section_is_nested():
    """A section typed as a question subtype becomes a question section."""
    content = {
        "sections": [
            {
                "type": "multiple_choice",
                "question": "Which phase aligns chromosomes at the equator?",
                "options": [{"id": "a", "text": "Metaphase"}, {"id": "b", "text": "Anaphase"}],
                "correctAnswer": "a",
            }
        ]
    }

    result = normalize_artifact_content("lesson", content)
    section = result["sections"][0]

    assert section["type"] == "question"
    assert section["id"]
    question = section["question"]
    assert question["type"] == "multiple_choice"
    assert question["question"] == "Which phase aligns chromosomes at the equator?"
    assert question["correctAnswer"] == "a"
    assert question["explanation"] == ""
    assert question["id"] == f"q-{section['id']}"
    assert len(question["options"]) == 2


def test_flattened_question_falls_back_to_content_text():
    content = {"sections": [{"id": "s1", "type": "true_false", "content": "Cells divide.", "correctAnswer": "true"}]}

    question = normalize_artifact_content("lesson", content)["sections"][0]["question"]

    assert question["question"] == "Cells divide."
    assert question["options"] == []


def test_question_section_with_string_question():
    """A plain-string question becomes a short answer question."""
    content = {"sections": [{"id": "s1", "type": "question", "question": "Name the first phase."}]}

    section = normalize_artifact_content("lesson", content)["sections"][0]

    assert section["question"]["type"] == "short_answer"
    assert section["question"]["question"] == "Name the first phase."


def test_untyped_section_becomes_content():
    content = {"sections": [{"content": "Mitosis has four phases."}, {"type": "weird"}, "not a section"]}

    sections = normalize_artifact_content("lesson", content)["sections"]

    assert [s["type"] for s in sections] == ["content", "content"]
    assert sections[0]["content"] == "Mitosis has four phases."
    assert sections[1]["content"] == ""
    assert sections[0]["id"] != sections[1]["id"]


def test_existing_ids_are_kept():
    content = {"sections": [{"id": "intro", "type": "content", "content": "Hi"}]}

    assert normalize_artifact_content("lesson", content)["sections"][0]["id"] == "intro"


def test_normalize_is_idempotent():
    content = {
        "sections": [
            {"content": "Intro"},
            {"type": "fill_blank", "question": "DNA is copied in ___ phase.", "correctAnswer": ["S"]},
            {"type": "question", "question": {"type": "true_false", "question": "Q?", "hint": "think"}},
        ]
    }

    once = normalize_artifact_content("lesson", content)
    twice = normalize_artifact_content("lesson", once)

    assert once == twice


def test_study_plan_items_and_children_get_ids():
    content = {"items": ["Read chapter 1", {"text": "Practice", "children": ["Set A", {"text": "Set B"}, 3]}, 7]}

    items = normalize_artifact_content("study_plan", content)["items"]

    assert len(items) == 2
    assert items[0]["text"] == "Read chapter 1"
    assert items[0]["children"] == []
    assert [c["text"] for c in items[1]["children"]] == ["Set A", "Set B"]
    assert all(c["id"] for c in items[1]["children"])


def test_flashcards_get_ids():
    content = {"cards": [{"front": "ATP", "back": "Energy currency"}, {"id": "c2", "front": "DNA", "back": "Genes"}]}

    cards = normalize_artifact_content("flashcards", content)["cards"]

    assert cards[0]["id"].startswith("card-0-")
    assert cards[1]["id"] == "c2"


def test_non_dict_content_becomes_empty():
    assert normalize_artifact_content("lesson", ["not", "a", "dict"]) == {}
    assert normalize_artifact_content("flashcards", None) == {}


def test_updates_apply_remove_update_then_add():
    content = {
        "cards": [
            {"id": "c1", "front": "Old", "back": "Old back"},
            {"id": "c2", "front": "Gone", "back": "Gone"},
        ]
    }
    updates = {
        "removeCard": "c2",
        "updateCard": {"cardId": "c1", "front": "New"},
        "addCards": [{"front": "Added", "back": "Card"}],
    }

    result = apply_artifact_updates("flashcards", content, updates)

    assert [c["front"] for c in result["cards"]] == ["New", "Added"]
    assert result["cards"][0]["back"] == "Old back"
    assert result["cards"][1]["id"]
    # input is untouched
    assert content["cards"][0]["front"] == "Old"


def test_updates_for_other_types_are_ignored():
    content = {"sections": [{"id": "s1", "type": "content", "content": "Keep"}]}

    result = apply_artifact_updates("lesson", content, {"addCards": [{"front": "x"}], "removeItem": "s1"})

    assert result["sections"] == content["sections"]


def test_added_lesson_sections_are_normalized():
    content = {"sections": []}
    updates = {"addSections": [{"type": "multiple_choice", "question": "Pick one", "options": []}]}

    result = apply_artifact_updates("lesson", content, updates)

    assert result["sections"][0]["type"] == "question"
    assert result["sections"][0]["question"]["type"] == "multiple_choice"


def test_study_plan_update_item_text():
    content = {"items": [{"id": "i1", "text": "Old", "children": []}]}

    result = apply_artifact_updates("study_plan", content, {"updateItem": {"itemId": "i1", "text": "New"}})

    assert result["items"][0]["text"] == "New"
