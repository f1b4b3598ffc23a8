"""Tests for chat management and message paging."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from studymode.db.models import Project, StudyChat, StudyMessage, User


@pytest.fixture
async def chat(db, user, project) -> StudyChat:
    chat = StudyChat(project_id=project.id, user_id=user.id, title="Cell biology")
    db.add(chat)
    await db.commit()
    return chat


@pytest.fixture
async def messages(db, user, chat) -> list[StudyMessage]:
    """Seven messages; the middle three share a timestamp."""
    base = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    offsets = [0, 1, 2, 2, 2, 3, 4]
    rows = [
        StudyMessage(
            chat_id=chat.id,
            user_id=user.id,
            role="user" if i % 2 == 0 else "assistant",
            content=f"message {i}",
            created_at=base + timedelta(seconds=offset),
        )
        for i, offset in enumerate(offsets)
    ]
    db.add_all(rows)
    await db.commit()
    return sorted(rows, key=lambda m: (m.created_at, m.id))


async def test_create_list_update_delete_chat(client, auth_headers, project):
    created = await client.post("/study/chats", json={"projectId": str(project.id)}, headers=auth_headers)
    assert created.status_code == 201
    chat = created.json()
    assert chat["title"] == "New Chat"
    assert chat["messageCount"] == 0

    listed = await client.get("/study/chats", params={"projectId": str(project.id)}, headers=auth_headers)
    assert [c["id"] for c in listed.json()["chats"]] == [chat["id"]]

    renamed = await client.patch(f"/study/chats/{chat['id']}", json={"title": "Genetics"}, headers=auth_headers)
    assert renamed.json()["title"] == "Genetics"

    archived = await client.patch(f"/study/chats/{chat['id']}", json={"status": "archived"}, headers=auth_headers)
    assert archived.json()["status"] == "archived"
    listed = await client.get("/study/chats", params={"projectId": str(project.id)}, headers=auth_headers)
    assert listed.json()["chats"] == []

    deleted = await client.delete(f"/study/chats/{chat['id']}", headers=auth_headers)
    assert deleted.status_code == 204
    missing = await client.get(f"/study/chats/{chat['id']}", headers=auth_headers)
    assert missing.status_code == 404


async def test_other_users_chat_is_404(client, auth_headers, db):
    other = User(email="other@example.com", name="Other")
    db.add(other)
    await db.flush()
    other_project = Project(user_id=other.id, name="Private", stats={})
    db.add(other_project)
    await db.flush()
    other_chat = StudyChat(project_id=other_project.id, user_id=other.id)
    db.add(other_chat)
    await db.commit()

    assert (await client.get(f"/study/chats/{other_chat.id}", headers=auth_headers)).status_code == 404
    listed = await client.get("/study/chats", params={"projectId": str(other_project.id)}, headers=auth_headers)
    assert listed.status_code == 404


async def test_get_chat_includes_latest_page(client, auth_headers, chat, messages):
    response = await client.get(f"/study/chats/{chat.id}", headers=auth_headers)

    body = response.json()
    assert body["title"] == "Cell biology"
    assert [m["content"] for m in body["messages"]] == [m.content for m in messages]
    assert body["hasMore"] is False
    assert body["nextCursor"] is None


async def test_pages_walk_backwards_without_gaps(client, auth_headers, chat, messages):
    seen = []
    before = None
    pages = 0
    while True:
        params = {"limit": 2}
        if before:
            params["before"] = before
        response = await client.get(f"/study/chats/{chat.id}/messages", params=params, headers=auth_headers)
        assert response.status_code == 200
        page = response.json()
        pages += 1

        ids = [m["id"] for m in page["messages"]]
        seen = ids + seen
        if not page["hasMore"]:
            assert page["nextCursor"] is None
            break
        assert page["nextCursor"] == ids[0]
        before = page["nextCursor"]

    assert pages == 4
    assert seen == [str(m.id) for m in messages]


async def test_first_page_is_most_recent_in_order(client, auth_headers, chat, messages):
    response = await client.get(f"/study/chats/{chat.id}/messages", params={"limit": 3}, headers=auth_headers)

    page = response.json()
    assert [m["id"] for m in page["messages"]] == [str(m.id) for m in messages[-3:]]
    assert page["hasMore"] is True


async def test_limit_is_capped(client, auth_headers, chat, messages):
    response = await client.get(f"/study/chats/{chat.id}/messages", params={"limit": 10_000}, headers=auth_headers)

    assert response.status_code == 200
    assert len(response.json()["messages"]) == len(messages)


@pytest.mark.parametrize("before", ["garbage", str(uuid4())])
async def test_invalid_cursor_is_400(client, auth_headers, chat, messages, before):
    response = await client.get(
        f"/study/chats/{chat.id}/messages", params={"before": before}, headers=auth_headers
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid cursor"


async def test_message_payload_shape(client, auth_headers, chat, messages):
    response = await client.get(f"/study/chats/{chat.id}/messages", params={"limit": 1}, headers=auth_headers)

    message = response.json()["messages"][0]
    assert set(message) == {
        "id",
        "chatId",
        "role",
        "content",
        "attachments",
        "toolCalls",
        "artifactActions",
        "inlineQuestion",
        "metadata",
        "createdAt",
    }
