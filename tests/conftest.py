"""Pytest configuration and fixtures.

Provides:
- ``session_factory`` / ``db``: a fresh SQLite schema per test
- ``user`` / ``project`` / ``auth_headers``: an authenticated owner
- ``fake_client``: scripted stand-in for the Gemini client
- ``client``: httpx AsyncClient over the app with the above wired in
"""

import json
import os

# Required settings must exist before studymode.config is imported
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
os.environ.setdefault("ENVIRONMENT", "development")

from collections.abc import AsyncGenerator, AsyncIterator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sse_starlette.sse import AppStatus

from studymode.api.deps import create_access_token
from studymode.db.base import Base
from studymode.db.models import Project, User
from studymode.db.session import get_db, get_session_factory
from studymode.main import app
from studymode.services.gemini import (
    FileRef,
    FunctionDeclaration,
    GenerationChunk,
    UploadedFile,
    get_generation_client,
)


class FakeGenerationClient:
    """
    Replays scripted chunks instead of calling the provider.

    ``script`` is what the next ``stream`` call yields; an Exception in the
    script is raised at that point. Every call is recorded for assertions.
    """

    def __init__(self):
        self.script: list[GenerationChunk | Exception] = []
        self.json_response: str | Exception = "{}"
        self.stream_calls: list[dict[str, Any]] = []
        self.json_calls: list[dict[str, Any]] = []
        self.uploads: list[tuple[str, str]] = []
        self.processed: list[str] = []

    async def stream(
        self,
        prompt: str,
        files: list[FileRef] | None = None,
        *,
        tools: list[FunctionDeclaration] | None = None,
        response_schema: dict[str, Any] | None = None,
        include_thoughts: bool = False,
        model: str | None = None,
    ) -> AsyncIterator[GenerationChunk]:
        self.stream_calls.append(
            {"prompt": prompt, "files": list(files or []), "tools": tools, "response_schema": response_schema}
        )
        for item in self.script:
            if isinstance(item, Exception):
                raise item
            yield item

    async def generate_json(self, prompt, response_schema, *, files=None, model=None) -> str:
        self.json_calls.append({"prompt": prompt, "model": model})
        if isinstance(self.json_response, Exception):
            raise self.json_response
        return self.json_response

    async def upload_file(self, data: bytes, mime_type: str, display_name: str) -> UploadedFile:
        self.uploads.append((display_name, mime_type))
        name = f"files/{len(self.uploads)}"
        return UploadedFile(
            name=name,
            uri=f"https://generativelanguage.test/{name}",
            mime_type=mime_type,
            state="PROCESSING",
        )

    async def wait_for_processing(self, name: str, **kwargs) -> UploadedFile:
        self.processed.append(name)
        return UploadedFile(name=name, uri=f"https://generativelanguage.test/{name}", mime_type="", state="ACTIVE")


def text(value: str) -> GenerationChunk:
    return GenerationChunk(kind="text", text=value)


def thought(value: str) -> GenerationChunk:
    return GenerationChunk(kind="thought", text=value)


def function_call(name: str, **args: Any) -> GenerationChunk:
    return GenerationChunk(kind="function_call", name=name, args=args)


def parse_sse(body: str) -> list[dict[str, Any]]:
    """Decode the `data:` lines of an SSE body into event dicts."""
    return [
        json.loads(line[len("data:"):].strip())
        for line in body.splitlines()
        if line.startswith("data:")
    ]


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette caches an exit event bound to the first event loop."""
    AppStatus.should_exit_event = None
    yield


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    # File-backed so concurrent sessions see each other's commits
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'study.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def user(db) -> User:
    user = User(email="student@example.com", name="Test Student")
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def project(db, user) -> Project:
    project = Project(user_id=user.id, name="Biology 101", stats={})
    db.add(project)
    await db.commit()
    return project


@pytest.fixture
def auth_headers(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def fake_client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
async def client(session_factory, fake_client) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_generation_client] = lambda: fake_client

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()

