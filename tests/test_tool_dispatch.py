"""Tests for applying tool commands against the database."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from studymode.db.models import Artifact, Project, StudyChat, StudyMemory, User
from studymode.services.tool_calls import parse_tool_call
from studymode.services.tool_dispatch import ToolDispatcher, TurnOutcome, TurnScope


@pytest.fixture
async def chat(db, user, project) -> StudyChat:
    chat = StudyChat(project_id=project.id, user_id=user.id)
    db.add(chat)
    await db.commit()
    return chat


@pytest.fixture
def dispatcher(db, user, project, chat) -> ToolDispatcher:
    return ToolDispatcher(
        db,
        TurnScope(user_id=user.id, project_id=project.id, chat_id=chat.id, message_id=uuid4()),
    )


async def _other_project(db) -> Project:
    other = User(email="other@example.com", name="Other")
    db.add(other)
    await db.flush()
    other_project = Project(user_id=other.id, name="Other project", stats={})
    db.add(other_project)
    await db.flush()
    return other_project


async def _other_users_artifact(db) -> Artifact:
    other_project = await _other_project(db)
    artifact = Artifact(
        project_id=other_project.id,
        user_id=other_project.user_id,
        type="flashcards",
        title="Not yours",
        content={"cards": []},
    )
    db.add(artifact)
    await db.commit()
    return artifact


async def test_memory_create_persists_and_records(db, dispatcher, user, project, chat):
    step = await dispatcher.apply(
        parse_tool_call("memory_create", {"content": "Struggles with meiosis", "category": "weakness", "importance": 4})
    )

    memory = (await db.execute(select(StudyMemory))).scalar_one()
    assert memory.user_id == user.id
    assert memory.project_id == project.id
    assert memory.source_chat_id == chat.id
    assert memory.category == "weakness"
    assert memory.importance == 4

    assert step.record == {
        "tool": "memory_create",
        "data": {"content": "Struggles with meiosis", "category": "weakness", "importance": 4},
        "result": {"memoryId": str(memory.id)},
    }
    assert step.event["type"] == "tool_call"
    assert step.event["result"] == {"memoryId": str(memory.id)}


async def test_memory_update_and_delete(db, dispatcher, user, project):
    memory = StudyMemory(project_id=project.id, user_id=user.id, content="Old", category="other")
    db.add(memory)
    await db.commit()

    await dispatcher.apply(parse_tool_call("memory_update", {"memoryId": str(memory.id), "content": "New"}))
    step = await dispatcher.apply(parse_tool_call("memory_delete", {"memoryId": str(memory.id)}))

    await db.refresh(memory)
    assert memory.content == "New"
    assert memory.is_active is False
    assert step.event == {"type": "tool_call", "tool": "memory_delete", "data": {"memoryId": str(memory.id)}}


async def test_question_create_builds_inline_question(dispatcher):
    step = await dispatcher.apply(
        parse_tool_call(
            "question_create",
            {"type": "true_false", "question": "Mitosis makes identical cells?", "correctAnswer": "true"},
        )
    )

    question = step.inline_question
    assert question["type"] == "true_false"
    assert question["correctAnswer"] == "true"
    assert question["id"]
    assert step.event == {"type": "question", "data": question}
    assert step.artifact_action is None


async def test_artifact_create_normalizes_content(db, dispatcher, chat):
    step = await dispatcher.apply(
        parse_tool_call(
            "artifact_create_lesson",
            {
                "title": "Mitosis",
                "sections": [
                    {"type": "content", "content": "Cells divide."},
                    {"type": "multiple_choice", "question": "Which phase is first?", "options": [], "correctAnswer": "a"},
                ],
            },
        )
    )

    artifact = (await db.execute(select(Artifact))).scalar_one()
    assert artifact.chat_id == chat.id
    assert artifact.version == 1
    assert artifact.last_edited_by == "assistant"
    assert artifact.source_message_id == dispatcher.scope.message_id
    assert artifact.content["sections"][1]["type"] == "question"
    assert artifact.content["sections"][1]["question"]["type"] == "multiple_choice"

    assert step.event["type"] == "artifact_created"
    assert step.event["artifactId"] == str(artifact.id)
    assert step.artifact_action == {
        "artifactId": str(artifact.id),
        "actionType": "created",
        "artifact": {"type": "lesson", "title": "Mitosis", "description": ""},
    }


async def test_artifact_update_bumps_version(db, dispatcher, user, project):
    artifact = Artifact(
        project_id=project.id,
        user_id=user.id,
        type="flashcards",
        title="Terms",
        content={"cards": [{"id": "c1", "front": "ATP", "back": "?"}]},
    )
    db.add(artifact)
    await db.commit()

    step = await dispatcher.apply(
        parse_tool_call(
            "artifact_update",
            {
                "artifactId": str(artifact.id),
                "updates": {"title": "Cell terms", "updateCard": {"cardId": "c1", "back": "Energy"}},
            },
        )
    )

    await db.refresh(artifact)
    assert artifact.version == 2
    assert artifact.title == "Cell terms"
    assert artifact.content["cards"][0]["back"] == "Energy"
    assert step.event["type"] == "artifact_updated"
    assert step.artifact_action["actionType"] == "updated"


async def test_artifact_delete_archives(db, dispatcher, user, project):
    artifact = Artifact(project_id=project.id, user_id=user.id, type="lesson", title="Old", content={"sections": []})
    db.add(artifact)
    await db.commit()

    step = await dispatcher.apply(parse_tool_call("artifact_delete", {"artifactId": str(artifact.id)}))

    await db.refresh(artifact)
    assert artifact.status == "archived"
    assert step.event == {"type": "artifact_deleted", "artifactId": str(artifact.id)}


async def test_other_users_artifact_is_untouched(db, dispatcher):
    artifact = await _other_users_artifact(db)

    update = await dispatcher.apply(
        parse_tool_call("artifact_update", {"artifactId": str(artifact.id), "updates": {"title": "Mine now"}})
    )
    delete = await dispatcher.apply(parse_tool_call("artifact_delete", {"artifactId": str(artifact.id)}))

    await db.refresh(artifact)
    assert update is None
    assert delete is None
    assert artifact.title == "Not yours"
    assert artifact.status == "active"


async def test_turn_outcome_folds_steps_in_order(dispatcher):
    calls = [
        parse_tool_call("question_create", {"type": "short_answer", "question": "First?"}),
        parse_tool_call("artifact_create_flashcards", {"title": "Deck", "cards": []}),
        parse_tool_call("question_create", {"type": "short_answer", "question": "Second?"}),
    ]
    steps = [await dispatcher.apply(call) for call in calls]

    outcome = TurnOutcome()
    for step in steps:
        outcome = outcome.merge(step)

    assert [r["tool"] for r in outcome.tool_calls] == ["question_create", "artifact_create_flashcards", "question_create"]
    assert len(outcome.artifact_actions) == 1
    assert outcome.inline_question["question"] == "Second?"


async def test_memory_tools_only_touch_own_project(db, dispatcher, user):
    other_project = await _other_project(db)
    own_other_project = Project(user_id=user.id, name="Chemistry", stats={})
    db.add(own_other_project)
    await db.flush()
    foreign = StudyMemory(
        project_id=other_project.id, user_id=other_project.user_id, content="Theirs", category="goal"
    )
    sibling = StudyMemory(project_id=own_other_project.id, user_id=user.id, content="Other course", category="goal")
    db.add_all([foreign, sibling])
    await db.commit()

    for memory in (foreign, sibling):
        await dispatcher.apply(parse_tool_call("memory_update", {"memoryId": str(memory.id), "content": "Overwritten"}))
        await dispatcher.apply(parse_tool_call("memory_delete", {"memoryId": str(memory.id)}))

    await db.refresh(foreign)
    await db.refresh(sibling)
    assert (foreign.content, foreign.is_active) == ("Theirs", True)
    assert (sibling.content, sibling.is_active) == ("Other course", True)
