"""Tests for refreshing provider file handles of materials."""

from datetime import datetime, timedelta, timezone

import pytest

from studymode.db.models import Material
from studymode.services.material_files import (
    ensure_material_files,
    is_provider_file_expired,
    material_file_refs,
)
from studymode.services.s3 import StorageError

OLD_URI = "https://generativelanguage.test/files/old"


class FakeStorage:
    """In-memory stand-in for S3Service; unknown keys fail like a missing object."""

    def __init__(self, blobs: dict[str, tuple[bytes, str | None]]):
        self.blobs = blobs
        self.downloads: list[str] = []

    async def download_material(self, file_key: str) -> tuple[bytes, str | None]:
        self.downloads.append(file_key)
        if file_key not in self.blobs:
            raise StorageError(f"Failed to download material from S3: NoSuchKey {file_key}")
        return self.blobs[file_key]


def _hours_ago(hours: float) -> datetime:
    return datetime.now(timezone.utc) - timedelta(hours=hours)


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage(
        {
            "materials/notes.pdf": (b"%PDF notes", "application/pdf"),
            "materials/lecture.mp4": (b"fake video", "video/mp4"),
            "materials/current.pdf": (b"%PDF current", "application/pdf"),
        }
    )


@pytest.fixture
async def materials(db, user, project) -> dict[str, Material]:
    def _material(name, **fields) -> Material:
        return Material(project_id=project.id, user_id=user.id, name=name, status="ready", **fields)

    rows = {
        "expired": _material(
            "Notes",
            type="pdf",
            storage_key="materials/notes.pdf",
            file_name="notes.pdf",
            file_mime_type="application/pdf",
            gemini_uri=OLD_URI,
            gemini_file_name="files/old",
            gemini_uploaded_at=_hours_ago(72),
        ),
        "video": _material(
            "Lecture",
            type="video",
            storage_key="materials/lecture.mp4",
            file_name="lecture.mp4",
            file_mime_type="video/mp4",
        ),
        "broken": _material(
            "Lost scan",
            type="pdf",
            storage_key="materials/missing.pdf",
            file_mime_type="application/pdf",
        ),
        "current": _material(
            "Current",
            type="pdf",
            storage_key="materials/current.pdf",
            file_mime_type="application/pdf",
            gemini_uri="https://generativelanguage.test/files/current",
            gemini_file_name="files/current",
            gemini_uploaded_at=_hours_ago(1),
        ),
        "text": _material("Summary", type="text", text_content="Cells divide."),
    }
    db.add_all(rows.values())
    await db.commit()
    return rows


async def test_expired_handle_is_reuploaded_and_saved(db, materials, fake_client, storage, session_factory):
    fresh = await ensure_material_files(db, list(materials.values()), fake_client, storage)

    expired = materials["expired"]
    assert set(fresh) == {expired.id, materials["video"].id}
    assert ("notes.pdf", "application/pdf") in fake_client.uploads
    assert fresh[expired.id].mime_type == "application/pdf"
    assert fresh[expired.id].uri != OLD_URI

    async with session_factory() as session:
        stored = await session.get(Material, expired.id)
    assert stored.gemini_uri == fresh[expired.id].uri
    assert stored.gemini_file_name == fresh[expired.id].uri.removeprefix("https://generativelanguage.test/")
    assert not is_provider_file_expired(stored.gemini_uploaded_at)


async def test_video_waits_for_processing(db, materials, fake_client, storage):
    fresh = await ensure_material_files(db, list(materials.values()), fake_client, storage)

    video_upload = fake_client.uploads.index(("lecture.mp4", "video/mp4")) + 1
    assert fake_client.processed == [f"files/{video_upload}"]
    assert fresh[materials["video"].id].uri.endswith(f"files/{video_upload}")


async def test_failed_download_is_skipped(db, materials, fake_client, storage, session_factory):
    fresh = await ensure_material_files(db, list(materials.values()), fake_client, storage)
    refs = material_file_refs(list(materials.values()), fresh)

    broken = materials["broken"]
    assert "materials/missing.pdf" in storage.downloads
    assert broken.id not in fresh
    assert [r.uri for r in refs] == [
        fresh[materials["expired"].id].uri,
        fresh[materials["video"].id].uri,
        "https://generativelanguage.test/files/current",
    ]
    async with session_factory() as session:
        assert (await session.get(Material, broken.id)).gemini_uri is None


async def test_fresh_handle_is_left_alone(db, materials, fake_client, storage, session_factory):
    current = materials["current"]
    fresh = await ensure_material_files(db, [current, materials["text"]], fake_client, storage)

    assert fresh == {}
    assert storage.downloads == []
    assert fake_client.uploads == []
    async with session_factory() as session:
        stored = await session.get(Material, current.id)
    assert stored.gemini_uri == "https://generativelanguage.test/files/current"
    assert stored.gemini_file_name == "files/current"


@pytest.mark.parametrize(
    ("uploaded_at", "expired"),
    [
        (None, True),
        (_hours_ago(48), True),
        (_hours_ago(46), False),
        (_hours_ago(48).replace(tzinfo=None), True),
    ],
)
def test_is_provider_file_expired(uploaded_at, expired):
    assert is_provider_file_expired(uploaded_at) is expired
