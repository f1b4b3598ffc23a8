"""Tests for artifact and memory endpoints."""

import pytest

from studymode.db.models import Artifact, StudyMemory


@pytest.fixture
async def study_plan(db, user, project) -> Artifact:
    artifact = Artifact(
        project_id=project.id,
        user_id=user.id,
        type="study_plan",
        title="Midterm plan",
        content={
            "items": [
                {"id": "i1", "text": "Read chapter 3", "children": [{"id": "c1", "text": "Section 3.1"}]},
                {"id": "i2", "text": "Practice problems", "children": []},
            ]
        },
    )
    db.add(artifact)
    await db.commit()
    return artifact


@pytest.fixture
async def flashcards(db, user, project) -> Artifact:
    artifact = Artifact(
        project_id=project.id,
        user_id=user.id,
        type="flashcards",
        title="Terms",
        content={"cards": [{"id": "k1", "front": "ATP", "back": "Energy currency"}]},
    )
    db.add(artifact)
    await db.commit()
    return artifact


@pytest.fixture
async def lesson(db, user, project) -> Artifact:
    artifact = Artifact(
        project_id=project.id,
        user_id=user.id,
        type="lesson",
        title="Mitosis",
        content={
            "sections": [
                {"id": "s1", "type": "content", "content": "Intro"},
                {
                    "id": "s2",
                    "type": "question",
                    "question": {
                        "id": "q-s2",
                        "type": "multiple_select",
                        "question": "Which are phases of mitosis?",
                        "options": [],
                        "correctAnswer": ["a", "c"],
                        "explanation": "Prophase and metaphase.",
                    },
                },
            ]
        },
    )
    db.add(artifact)
    await db.commit()
    return artifact


async def test_list_filters_by_status(client, auth_headers, project, study_plan, flashcards):
    await client.delete(f"/study/artifacts/{flashcards.id}", headers=auth_headers)

    active = await client.get("/study/artifacts", params={"projectId": str(project.id)}, headers=auth_headers)
    archived = await client.get(
        "/study/artifacts", params={"projectId": str(project.id), "status": "archived"}, headers=auth_headers
    )

    assert [a["id"] for a in active.json()["artifacts"]] == [str(study_plan.id)]
    assert [a["id"] for a in archived.json()["artifacts"]] == [str(flashcards.id)]


async def test_patch_applies_updates_and_bumps_version(client, auth_headers, flashcards):
    response = await client.patch(
        f"/study/artifacts/{flashcards.id}",
        json={
            "title": "Cell terms",
            "updates": {"addCards": [{"front": "DNA", "back": "Genetic code"}], "updateCard": {"cardId": "k1", "back": "Fuel"}},
        },
        headers=auth_headers,
    )

    body = response.json()
    assert response.status_code == 200
    assert body["title"] == "Cell terms"
    assert body["version"] == 2
    assert body["lastEditedBy"] == "user"
    assert [c["back"] for c in body["content"]["cards"]] == ["Fuel", "Genetic code"]
    assert all(c["id"] for c in body["content"]["cards"])


async def test_study_plan_progress(client, auth_headers, study_plan):
    url = f"/study/artifacts/{study_plan.id}/progress"

    done = await client.patch(url, json={"itemId": "i1", "completed": True}, headers=auth_headers)
    child = await client.patch(url, json={"itemId": "i1", "childId": "c1", "completed": True}, headers=auth_headers)
    undone = await client.patch(url, json={"itemId": "i2", "completed": False}, headers=auth_headers)

    items = undone.json()["content"]["items"]
    assert done.status_code == child.status_code == 200
    assert items[0]["completed"] is True
    assert items[0]["completedAt"]
    assert items[0]["children"][0]["completed"] is True
    assert items[1]["completed"] is False
    assert "completedAt" not in items[1]


async def test_study_plan_progress_errors(client, auth_headers, study_plan):
    url = f"/study/artifacts/{study_plan.id}/progress"

    assert (await client.patch(url, json={"itemId": "i1"}, headers=auth_headers)).status_code == 400
    assert (await client.patch(url, json={"itemId": "nope", "completed": True}, headers=auth_headers)).status_code == 404
    missing_child = await client.patch(url, json={"itemId": "i1", "childId": "x", "completed": True}, headers=auth_headers)
    assert missing_child.status_code == 404


async def test_flashcard_progress(client, auth_headers, flashcards):
    response = await client.patch(
        f"/study/artifacts/{flashcards.id}/progress", json={"cardId": "k1", "studied": True}, headers=auth_headers
    )

    card = response.json()["content"]["cards"][0]
    assert card["studied"] is True
    assert card["lastStudiedAt"]


async def test_progress_on_lesson_is_rejected(client, auth_headers, lesson):
    response = await client.patch(
        f"/study/artifacts/{lesson.id}/progress", json={"itemId": "s1", "completed": True}, headers=auth_headers
    )

    assert response.status_code == 400


async def test_answer_lesson_question(client, auth_headers, lesson, session_factory):
    url = f"/study/artifacts/{lesson.id}/answer"

    response = await client.post(url, json={"sectionId": "s2", "answer": ["c", "a"]}, headers=auth_headers)

    assert response.json() == {"isCorrect": True, "correctAnswer": ["a", "c"], "explanation": "Prophase and metaphase."}
    async with session_factory() as session:
        stored = await session.get(Artifact, lesson.id)
    question = stored.content["sections"][1]["question"]
    assert question["userAnswer"] == ["c", "a"]
    assert question["isCorrect"] is True

    again = await client.post(url, json={"sectionId": "s2", "answer": ["a"]}, headers=auth_headers)
    assert again.status_code == 400


async def test_answer_lesson_errors(client, auth_headers, lesson, flashcards):
    url = f"/study/artifacts/{lesson.id}/answer"

    assert (await client.post(url, json={"sectionId": "s9", "answer": "a"}, headers=auth_headers)).status_code == 404
    assert (await client.post(url, json={"sectionId": "s1", "answer": "a"}, headers=auth_headers)).status_code == 400
    not_lesson = await client.post(
        f"/study/artifacts/{flashcards.id}/answer", json={"sectionId": "s1", "answer": "a"}, headers=auth_headers
    )
    assert not_lesson.status_code == 400


# =============================================================================
# Memories
# =============================================================================


async def test_memories_list_update_delete(client, auth_headers, db, user, project):
    keep = StudyMemory(project_id=project.id, user_id=user.id, content="Visual learner", category="preference")
    inactive = StudyMemory(project_id=project.id, user_id=user.id, content="Old", category="other", is_active=False)
    db.add_all([keep, inactive])
    await db.commit()

    listed = await client.get("/study/memories", params={"projectId": str(project.id)}, headers=auth_headers)
    assert [m["content"] for m in listed.json()["memories"]] == ["Visual learner"]

    updated = await client.patch(
        f"/study/memories/{keep.id}", json={"importance": 11, "category": "strength"}, headers=auth_headers
    )
    assert updated.json()["importance"] == 5
    assert updated.json()["category"] == "strength"

    deleted = await client.delete(f"/study/memories/{keep.id}", headers=auth_headers)
    assert deleted.status_code == 204
    listed = await client.get("/study/memories", params={"projectId": str(project.id)}, headers=auth_headers)
    assert listed.json()["memories"] == []
