"""Tests for system prompt and conversation assembly."""

from studymode.services.prompt_builder import (
    ArtifactView,
    HistoryEntry,
    MemoryView,
    build_chat_prompt,
    build_study_system_prompt,
    format_history,
)


def test_empty_project_prompt():
    prompt = build_study_system_prompt("Biology 101")

    assert 'material for "Biology 101"' in prompt
    assert "No memories saved yet." in prompt
    assert "No materials uploaded yet." in prompt
    assert "No artifacts created yet." in prompt


def test_memories_materials_and_artifacts_are_listed():
    prompt = build_study_system_prompt(
        "Biology 101",
        memories=[MemoryView(category="weakness", content="Confuses mitosis and meiosis", id="m-1")],
        material_names=["Chapter 3.pdf", "Cell division lecture"],
        artifacts=[
            ArtifactView(
                id="a-1",
                type="study_plan",
                title="Midterm plan",
                content={"items": [{"id": "i1", "completed": True}, {"id": "i2"}]},
            ),
            ArtifactView(
                id="a-2",
                type="lesson",
                title="Mitosis",
                description="Phases",
                content={"sections": [{"type": "content"}, {"type": "question"}, {"type": "question"}]},
            ),
            ArtifactView(
                id="a-3",
                type="flashcards",
                title="Terms",
                content={"cards": [{"id": "c1", "studied": True}, {"id": "c2"}, {"id": "c3"}]},
            ),
        ],
    )

    assert "- [weakness] Confuses mitosis and meiosis (ID: m-1)" in prompt
    assert "- Chapter 3.pdf\n- Cell division lecture" in prompt
    assert '- [study_plan] "Midterm plan" (ID: a-1)\n  Progress: 1/2 items completed' in prompt
    assert "  Description: Phases\n  Sections: 1 content, 2 questions" in prompt
    assert "  Cards: 3 total, 1 studied" in prompt


def test_split_catalogue_numbering():
    prompt = build_study_system_prompt("P")

    assert "### 6. artifact_create_lesson" in prompt
    assert "### 8. artifact_update" in prompt
    assert "### 9. artifact_delete" in prompt


def test_unified_catalogue_numbering():
    prompt = build_study_system_prompt("P", catalogue="unified")

    assert "### 5. artifact_create\n" in prompt
    assert "artifact_create_lesson" not in prompt
    assert "### 6. artifact_update" in prompt
    assert "### 7. artifact_delete" in prompt


def test_latex_percent_guidance_survives_formatting():
    prompt = build_study_system_prompt("Economics")

    assert r"$\frac{\%\Delta Q}{\%\Delta P}$" in prompt


def test_format_history_with_attachments_and_answered_question():
    history = [
        HistoryEntry(role="user", content="Here are my notes", attachments=[{"name": "notes.pdf"}, {"name": "a.png"}]),
        HistoryEntry(
            role="assistant",
            content="Try this one.",
            inline_question={"question": "Is DNA copied in S phase?", "userAnswer": "true", "isCorrect": True},
        ),
        HistoryEntry(
            role="assistant",
            content="Unanswered.",
            inline_question={"question": "Ignored?", "userAnswer": None},
        ),
    ]

    assert format_history(history) == (
        "Student: Here are my notes\n[Attached files: notes.pdf, a.png]"
        "\n\n"
        'Tutor: Try this one.\n\n[Quiz Question Asked: "Is DNA copied in S phase?"]'
        '\n[Student\'s Answer: "true"]\n[Result: Correct]'
        "\n\n"
        "Tutor: Unanswered."
    )


def test_build_chat_prompt_layout():
    prompt = build_chat_prompt("SYSTEM", [HistoryEntry(role="user", content="Hi")])

    assert prompt == "SYSTEM\n\n---\n\nConversation:\nStudent: Hi\n\nTutor:"
