"""Keep material file handles on the generation provider fresh and turn materials into file references."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from studymode.config import get_settings
from studymode.db.models import Material, MaterialType
from studymode.services.gemini import FileRef, GeminiClient
from studymode.services.s3 import S3Service, s3_service

logger = logging.getLogger(__name__)
settings = get_settings()


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_provider_file_expired(uploaded_at: datetime | None, now: datetime | None = None) -> bool:
    if uploaded_at is None:
        return True
    now = now or datetime.now(timezone.utc)
    return now - as_utc(uploaded_at) > timedelta(hours=settings.gemini_file_ttl_hours)


def _has_file(material: Material) -> bool:
    return bool(material.storage_key or material.gemini_uri)


async def _refresh(
    material: Material, client: GeminiClient, storage: S3Service
) -> tuple[Material, FileRef, str] | None:
    """Return (material, fresh ref, provider file name), or None if the current handle is still valid."""
    if material.gemini_uri and material.file_mime_type and not is_provider_file_expired(material.gemini_uploaded_at):
        return None

    if not material.storage_key:
        raise ValueError(f"Material {material.id} has no stored file to re-upload")

    logger.info("Re-uploading expired provider file for material %s", material.id)
    data, content_type = await storage.download_material(material.storage_key)
    mime_type = material.file_mime_type or content_type or "application/octet-stream"

    uploaded = await client.upload_file(data, mime_type, material.file_name or material.name)
    if mime_type.startswith(("video/", "audio/")):
        uploaded = await client.wait_for_processing(uploaded.name)

    return material, FileRef(uri=uploaded.uri, mime_type=mime_type), uploaded.name


async def ensure_material_files(
    db: AsyncSession,
    materials: list[Material],
    client: GeminiClient,
    storage: S3Service | None = None,
) -> dict[UUID, FileRef]:
    """
    Make sure every file-backed material has a live provider file.

    Re-uploads run with bounded concurrency; a material that cannot be
    refreshed is logged and skipped so one bad blob never fails the turn.
    The material rows are updated afterwards, one at a time on ``db``.

    Returns:
        Map of material id to the fresh file reference for refreshed materials.
    """
    storage = storage or s3_service
    semaphore = asyncio.Semaphore(settings.material_file_concurrency)

    async def _guarded(material: Material):
        async with semaphore:
            try:
                return await _refresh(material, client, storage)
            except Exception:
                logger.exception("Failed to ensure provider file for material %s", material.id)
                return None

    results = await asyncio.gather(*(_guarded(m) for m in materials if _has_file(m)))

    fresh: dict[UUID, FileRef] = {}
    now = datetime.now(timezone.utc)
    for result in results:
        if result is None:
            continue
        material, ref, provider_name = result
        fresh[material.id] = ref
        await db.execute(
            update(Material)
            .where(
                Material.id == material.id,
                Material.user_id == material.user_id,
                Material.project_id == material.project_id,
            )
            .values(gemini_uri=ref.uri, gemini_file_name=provider_name, gemini_uploaded_at=now)
        )
    if fresh:
        await db.commit()
    return fresh


def material_file_refs(materials: list[Material], fresh: dict[UUID, FileRef] | None = None) -> list[FileRef]:
    """YouTube materials by URL, uploaded files by (possibly refreshed) provider URI."""
    fresh = fresh or {}
    refs: list[FileRef] = []
    for material in materials:
        if material.type == MaterialType.YOUTUBE.value and material.youtube_url:
            refs.append(FileRef(uri=material.youtube_url))
        elif material.id in fresh:
            refs.append(fresh[material.id])
        elif material.gemini_uri and material.file_mime_type:
            refs.append(FileRef(uri=material.gemini_uri, mime_type=material.file_mime_type))
    return refs
