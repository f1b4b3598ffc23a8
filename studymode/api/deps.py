"""
Request dependencies: who is calling, which session to use, what they may touch.

Every lookup of a study resource filters by the caller's user_id in SQL, and
a resource the caller does not own is reported as missing (404), never 403.
Tokens are issued by the web app's auth layer; this service only verifies them.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated, TypeVar
from uuid import UUID

from fastapi import Cookie, Depends, Header, HTTPException, status
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studymode.config import get_settings
from studymode.db.models import Project, User
from studymode.db.session import get_db, get_session_factory
from studymode.services.gemini import GeminiClient, get_generation_client

settings = get_settings()

ModelT = TypeVar("ModelT")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# =============================================================================
# TOKENS
# =============================================================================


def create_access_token(user_id: UUID, expires_in: timedelta | None = None) -> str:
    """Sign a token for user_id. Used by tests and local tooling."""
    expires_at = datetime.now(timezone.utc) + (expires_in or timedelta(minutes=settings.jwt_expire_minutes))
    return jwt.encode(
        {"sub": str(user_id), "exp": expires_at},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def user_id_from_token(token: str) -> UUID:
    """Verify a token and return its subject; 401 on anything unexpected."""
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        return UUID(claims["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise _unauthorized("Could not validate credentials")


async def get_token_from_request(
    authorization: Annotated[str | None, Header()] = None,
    access_token: Annotated[str | None, Cookie()] = None,
) -> str:
    """The `access_token` cookie if present, else an `Authorization: Bearer` header."""
    if access_token:
        return access_token

    scheme, _, credentials = (authorization or "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()

    raise _unauthorized("Not authenticated")


async def get_current_user(
    token: Annotated[str, Depends(get_token_from_request)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    user = await db.get(User, user_id_from_token(token))
    if user is None:
        raise _unauthorized("Could not validate credentials")
    return user


# Type aliases for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
GenerationClient = Annotated[GeminiClient, Depends(get_generation_client)]


# =============================================================================
# QUERY HELPERS (enforce user scoping at query level)
# =============================================================================


def parse_id_or_404(value: str, detail: str = "Resource not found") -> UUID:
    """
    Parse a path/query identifier.

    Malformed ids are reported exactly like missing ones so callers cannot
    distinguish the two.
    """
    try:
        return UUID(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


async def get_user_resource_or_404(
    db: AsyncSession,
    model: type[ModelT],
    resource_id: UUID,
    user_id: UUID,
    detail: str = "Resource not found",
) -> ModelT:
    """
    Generic helper to fetch a user-owned resource by ID.

    Usage:
        chat = await get_user_resource_or_404(db, StudyChat, chat_id, current_user.id)

    This enforces user scoping at the SQL level (WHERE user_id = ...).
    """
    result = await db.execute(
        select(model).where(model.id == resource_id, model.user_id == user_id)
    )
    resource = result.scalar_one_or_none()

    if resource is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

    return resource


async def get_project_or_404(db: AsyncSession, project_id: str | UUID, user_id: UUID) -> Project:
    """Fetch a project owned by the user, accepting a raw string id."""
    if not isinstance(project_id, UUID):
        project_id = parse_id_or_404(project_id, "Project not found")
    return await get_user_resource_or_404(db, Project, project_id, user_id, "Project not found")
