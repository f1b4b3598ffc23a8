"""
Study Mode FastAPI Application Entry Point.

Run with: uvicorn studymode.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from studymode.config import get_settings
from studymode.api.routes import (
    artifacts,
    assessments,
    chats,
    memories,
    messages,
)
from studymode.db.session import engine

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown."""
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Study Mode API: tutor chat, study artifacts and assessments",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(chats.router)
app.include_router(messages.router)
app.include_router(memories.router)
app.include_router(artifacts.router)
app.include_router(assessments.router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
